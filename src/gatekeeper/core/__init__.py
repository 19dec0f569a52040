"""Core types shared by every component."""

from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.core.types import (
    ANONYMOUS,
    Actor,
    ActorType,
    AnonymousActor,
    CentralActor,
    Severity,
    TenantActor,
    actor_id,
    actor_role,
    actor_tenant,
    subject_key,
)

__all__ = [
    "Clock",
    "SystemClock",
    "ANONYMOUS",
    "Actor",
    "ActorType",
    "AnonymousActor",
    "CentralActor",
    "Severity",
    "TenantActor",
    "actor_id",
    "actor_role",
    "actor_tenant",
    "subject_key",
]
