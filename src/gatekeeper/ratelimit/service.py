"""Rate Limit Service - the named limit policies built on RateLimiter.

Key layout:
    auth_ip:<origin>                 failed auth per origin
    auth:<sha1(identity|origin)>     failed auth per identity and origin
    api:<identifier>                 API calls per caller
    sensitive:<operation>:<id>       sensitive operations per caller
    rapid:<origin>                   raw request rate per origin
    progressive:<origin>             tiered limit (see escalator)
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from gatekeeper.audit.pipeline import AuditPipeline
from gatekeeper.common.config.policy import SecurityPolicy
from gatekeeper.common.exceptions import ValidationError
from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.core.types import ANONYMOUS, Actor, AnonymousActor, subject_key
from gatekeeper.lockout.schema import normalize_identity
from gatekeeper.ratelimit.escalator import ProgressiveEscalator
from gatekeeper.ratelimit.limiter import RateLimiter

logger = logging.getLogger(__name__)


class LimitKind(str, Enum):
    """Which named limit a check applies."""
    AUTH = "auth"
    API = "api"
    SENSITIVE = "sensitive"
    PROGRESSIVE = "progressive"


@dataclass(frozen=True)
class LimitDecision:
    """Typed outcome of a rate-limit check. Denials are not errors."""
    allowed: bool
    kind: LimitKind
    key: str
    limit: int
    remaining: int
    retry_after: int = 0
    reason: Optional[str] = None
    message: Optional[str] = None
    reset_at: Optional[datetime] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "kind": self.kind.value,
            "limit": self.limit,
            "remaining": self.remaining,
            "retry_after": self.retry_after,
            "reason": self.reason,
            "message": self.message,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
        }


@dataclass(frozen=True)
class SuspicionResult:
    """Outcome of the suspicious-activity heuristics."""
    suspicious: bool
    reason: Optional[str] = None
    action: Optional[str] = None  # "throttle" or "monitor"


class RateLimitService:
    """Authentication, API, sensitive-operation and suspicious-activity limits."""
    
    def __init__(
        self,
        limiter: RateLimiter,
        audit: AuditPipeline,
        policy: Optional[SecurityPolicy] = None,
        clock: Optional[Clock] = None,
        escalator: Optional[ProgressiveEscalator] = None,
    ):
        self.limiter = limiter
        self.audit = audit
        self.policy = policy or SecurityPolicy.default()
        self.clock = clock or SystemClock()
        self.escalator = escalator or ProgressiveEscalator(
            limiter, self.policy.progressive, audit
        )
    
    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    
    @staticmethod
    def auth_origin_key(origin: str) -> str:
        return f"auth_ip:{origin}"
    
    @staticmethod
    def auth_identity_key(identity: str, origin: str) -> str:
        digest = hashlib.sha1(
            f"{normalize_identity(identity)}|{origin}".encode("utf-8")
        ).hexdigest()
        return f"auth:{digest}"
    
    @staticmethod
    def api_identifier(actor: Actor, origin: str) -> str:
        if isinstance(actor, AnonymousActor):
            return f"ip:{origin}"
        return f"user:{subject_key(actor)}"
    
    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    
    def check_auth(
        self,
        identity: str,
        origin: str,
        user_agent: Optional[str] = None,
    ) -> LimitDecision:
        """Read-only check before a credential comparison.
        
        The origin limit is checked first; it is the broader of the two.
        """
        rules = self.policy.auth_limits
        
        origin_key = self.auth_origin_key(origin)
        if self.limiter.too_many_attempts(origin_key, rules.origin_max):
            self._log_violation("auth_ip_limit", identity, origin, user_agent)
            return LimitDecision(
                allowed=False,
                kind=LimitKind.AUTH,
                key=origin_key,
                limit=rules.origin_max,
                remaining=0,
                retry_after=self.limiter.available_in(origin_key),
                reason="ip_limit",
                message="Too many authentication attempts from this IP address.",
            )
        
        identity_key = self.auth_identity_key(identity, origin)
        if self.limiter.too_many_attempts(identity_key, rules.identity_max):
            self._log_violation("auth_email_limit", identity, origin, user_agent)
            return LimitDecision(
                allowed=False,
                kind=LimitKind.AUTH,
                key=identity_key,
                limit=rules.identity_max,
                remaining=0,
                retry_after=self.limiter.available_in(identity_key),
                reason="identity_limit",
                message="Too many authentication attempts for this account.",
            )
        
        return LimitDecision(
            allowed=True,
            kind=LimitKind.AUTH,
            key=identity_key,
            limit=rules.identity_max,
            remaining=self.limiter.remaining(identity_key, rules.identity_max),
        )
    
    def record_failed_auth(self, identity: str, origin: str) -> None:
        rules = self.policy.auth_limits
        identity_key = self.auth_identity_key(identity, origin)
        origin_key = self.auth_origin_key(origin)
        
        identity_attempts = self.limiter.hit(identity_key, rules.window_seconds)
        origin_attempts = self.limiter.hit(origin_key, rules.window_seconds)
        
        logger.warning(
            f"Failed authentication attempt: {normalize_identity(identity)} from {origin} "
            f"(identity attempts: {identity_attempts}, origin attempts: {origin_attempts})"
        )
    
    def clear_auth(self, identity: str, origin: str) -> None:
        """Reset the per-identity counter after a successful login."""
        self.limiter.clear(self.auth_identity_key(identity, origin))
    
    # ------------------------------------------------------------------
    # API and sensitive operations
    # ------------------------------------------------------------------
    
    def check_api(self, identifier: str, authenticated: bool = False) -> LimitDecision:
        """Count one API call. Authenticated callers get the higher ceiling."""
        rules = self.policy.api_limits
        limit = rules.authenticated_max if authenticated else rules.anonymous_max
        key = f"api:{identifier}"
        
        count = self.limiter.hit(key, rules.window_seconds)
        if count > limit:
            self._log_violation("api_limit", identifier)
            return LimitDecision(
                allowed=False,
                kind=LimitKind.API,
                key=key,
                limit=limit,
                remaining=0,
                retry_after=self.limiter.available_in(key),
                reason="api_limit",
                message="API rate limit exceeded.",
            )
        
        return LimitDecision(
            allowed=True,
            kind=LimitKind.API,
            key=key,
            limit=limit,
            remaining=limit - count,
            reset_at=self.clock.now() + timedelta(seconds=self.limiter.available_in(key)),
        )
    
    def check_sensitive_operation(self, operation: str, identifier: str) -> LimitDecision:
        rule = self.policy.sensitive_operations.limit_for(operation)
        key = f"sensitive:{operation}:{identifier}"
        
        count = self.limiter.hit(key, rule.window_minutes * 60)
        if count > rule.attempts:
            self._log_violation("sensitive_operation_limit", operation)
            return LimitDecision(
                allowed=False,
                kind=LimitKind.SENSITIVE,
                key=key,
                limit=rule.attempts,
                remaining=0,
                retry_after=self.limiter.available_in(key),
                reason="sensitive_operation_limit",
                message=f"Rate limit exceeded for operation: {operation}",
            )
        
        return LimitDecision(
            allowed=True,
            kind=LimitKind.SENSITIVE,
            key=key,
            limit=rule.attempts,
            remaining=rule.attempts - count,
        )
    
    def check_progressive(self, origin: str) -> LimitDecision:
        decision = self.escalator.evaluate(origin)
        return LimitDecision(
            allowed=decision.allowed,
            kind=LimitKind.PROGRESSIVE,
            key=self.escalator.counter_key(origin),
            limit=decision.ceiling,
            remaining=decision.remaining,
            retry_after=decision.retry_after,
            reason=decision.reason,
            message=None if decision.allowed else (
                "Progressive rate limit applied due to previous violations."
            ),
        )
    
    def check(
        self,
        kind: LimitKind,
        key: str,
        identity: Optional[str] = None,
        operation: Optional[str] = None,
        authenticated: bool = False,
    ) -> LimitDecision:
        """Dispatch a check by limit kind.
        
        Args:
            kind: Which limit to apply
            key: Origin for AUTH and PROGRESSIVE, caller identifier otherwise
            identity: Claimed identity (AUTH only)
            operation: Operation name (SENSITIVE only)
            authenticated: Whether the API caller is authenticated (API only)
        
        Raises:
            ValidationError: If a kind-specific argument is missing.
        """
        kind = LimitKind(kind)
        if kind == LimitKind.AUTH:
            if not identity:
                raise ValidationError("identity is required for auth limits", field="identity")
            return self.check_auth(identity, key)
        if kind == LimitKind.API:
            return self.check_api(key, authenticated=authenticated)
        if kind == LimitKind.SENSITIVE:
            if not operation:
                raise ValidationError("operation is required for sensitive limits", field="operation")
            return self.check_sensitive_operation(operation, key)
        return self.check_progressive(key)
    
    # ------------------------------------------------------------------
    # Suspicious activity
    # ------------------------------------------------------------------
    
    def is_unusual_user_agent(self, user_agent: Optional[str]) -> bool:
        rules = self.policy.suspicious_activity
        if not user_agent:
            return True
        
        lowered = user_agent.lower()
        if any(pattern in lowered for pattern in rules.bot_patterns):
            return True
        if len(user_agent) < rules.min_user_agent_length:
            return True
        return any(marker in lowered for marker in rules.generic_markers)
    
    def check_suspicious_activity(
        self,
        origin: str,
        user_agent: Optional[str],
        actor: Actor = ANONYMOUS,
    ) -> SuspicionResult:
        rules = self.policy.suspicious_activity
        rapid_key = f"rapid:{origin}"
        
        count = self.limiter.hit(rapid_key, rules.rapid_window_seconds)
        if count > rules.rapid_request_max:
            self.audit.log_suspicious_activity(
                "rapid_requests",
                "Unusually high request rate detected",
                actor=actor,
                evidence={"ip_address": origin, "user_agent": user_agent, "request_count": count},
                ip=origin,
                user_agent=user_agent,
            )
            return SuspicionResult(True, "rapid_requests", "throttle")
        
        if self.is_unusual_user_agent(user_agent):
            self.audit.log_suspicious_activity(
                "unusual_user_agent",
                "Unusual user agent detected",
                actor=actor,
                evidence={"ip_address": origin, "user_agent": user_agent},
                ip=origin,
                user_agent=user_agent,
            )
            return SuspicionResult(True, "unusual_user_agent", "monitor")
        
        return SuspicionResult(False)
    
    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------
    
    def status(self, origin: str, identifier: Optional[str] = None) -> Dict[str, Dict[str, int]]:
        """Current attempts and seconds-to-reset for the per-caller keys."""
        keys = {
            "api": f"api:{identifier or 'ip:' + origin}",
            "auth_ip": self.auth_origin_key(origin),
            "rapid": f"rapid:{origin}",
            "progressive": self.escalator.counter_key(origin),
            "violations": self.escalator.violation_key(origin),
        }
        return {
            name: {
                "attempts": self.limiter.attempts(key),
                "remaining_time": self.limiter.available_in(key),
            }
            for name, key in keys.items()
        }
    
    def _log_violation(
        self,
        limit_type: str,
        identifier: str,
        origin: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        logger.warning(f"Rate limit violation: type={limit_type} identifier={identifier}")
        self.audit.log_security_violation(
            "rate_limit_exceeded",
            f"Rate limit exceeded: {limit_type}",
            details={"limit_type": limit_type, "identifier": identifier},
            ip=origin,
            user_agent=user_agent,
        )
