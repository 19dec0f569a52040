"""Login attempt tracking and lockout."""

from gatekeeper.lockout.schema import LoginAttempt, normalize_identity
from gatekeeper.lockout.repository import (
    LoginAttemptRepository,
    InMemoryLoginAttemptRepository,
    FileLoginAttemptRepository,
)
from gatekeeper.lockout.tracker import LockoutStatus, LockoutTracker

__all__ = [
    "LoginAttempt",
    "normalize_identity",
    "LoginAttemptRepository",
    "InMemoryLoginAttemptRepository",
    "FileLoginAttemptRepository",
    "LockoutStatus",
    "LockoutTracker",
]
