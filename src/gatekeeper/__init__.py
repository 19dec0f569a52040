"""Gatekeeper - abuse-prevention and security-telemetry core."""

__version__ = "0.1.0"
__author__ = "Gatekeeper Team"

# Core exports
from gatekeeper.core.types import (
    ANONYMOUS,
    AnonymousActor,
    CentralActor,
    Severity,
    TenantActor,
)
from gatekeeper.service import LoginOutcome, SecurityService

__all__ = [
    "ANONYMOUS",
    "AnonymousActor",
    "CentralActor",
    "Severity",
    "TenantActor",
    "LoginOutcome",
    "SecurityService",
]
