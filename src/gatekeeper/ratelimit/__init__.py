"""Rate limiting and progressive escalation."""

from gatekeeper.ratelimit.limiter import RateLimiter
from gatekeeper.ratelimit.escalator import EscalationDecision, ProgressiveEscalator
from gatekeeper.ratelimit.service import (
    LimitDecision,
    LimitKind,
    RateLimitService,
    SuspicionResult,
)

__all__ = [
    "RateLimiter",
    "EscalationDecision",
    "ProgressiveEscalator",
    "LimitDecision",
    "LimitKind",
    "RateLimitService",
    "SuspicionResult",
]
