"""Progressive Escalator - tighter limits for repeat offenders.

The tier (ceiling, window) applied to an origin is a pure function of the
origin's current violation count. Evaluating never escalates; callers
escalate explicitly through record_violation().
"""

import logging
from dataclasses import dataclass
from typing import Optional

from gatekeeper.audit.pipeline import AuditPipeline
from gatekeeper.common.config.policy import EscalationTier, ProgressiveRules
from gatekeeper.core.types import ANONYMOUS, Actor, Severity
from gatekeeper.ratelimit.limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EscalationDecision:
    """Result of one progressive rate-limit evaluation."""
    allowed: bool
    ceiling: int
    window_seconds: int
    tier: str
    violations: int
    remaining: int
    retry_after: int = 0
    
    @property
    def reason(self) -> Optional[str]:
        return None if self.allowed else "rate_limit_exceeded"


class ProgressiveEscalator:
    """Applies the violation-count tier to a per-origin counter."""
    
    def __init__(
        self,
        limiter: RateLimiter,
        rules: Optional[ProgressiveRules] = None,
        audit: Optional[AuditPipeline] = None,
    ):
        self.limiter = limiter
        self.rules = rules or ProgressiveRules()
        self.audit = audit
    
    @staticmethod
    def violation_key(origin: str) -> str:
        return f"violations:{origin}"
    
    @staticmethod
    def counter_key(origin: str) -> str:
        return f"progressive:{origin}"
    
    def tier_for(self, violations: int) -> EscalationTier:
        """Highest tier whose threshold the violation count reaches."""
        selected = self.rules.tiers[0]
        for tier in self.rules.tiers:
            if violations >= tier.min_violations:
                selected = tier
        return selected
    
    def violations(self, origin: str) -> int:
        return self.limiter.attempts(self.violation_key(origin))
    
    def evaluate(self, origin: str) -> EscalationDecision:
        """Count one request from origin against its current tier.
        
        The hit is taken before the comparison so that concurrent callers
        cannot both pass on the last free slot.
        """
        violations = self.violations(origin)
        tier = self.tier_for(violations)
        key = self.counter_key(origin)
        
        count = self.limiter.hit(key, tier.window_seconds)
        allowed = count <= tier.ceiling
        
        decision = EscalationDecision(
            allowed=allowed,
            ceiling=tier.ceiling,
            window_seconds=tier.window_seconds,
            tier=tier.name,
            violations=violations,
            remaining=max(0, tier.ceiling - count),
            retry_after=0 if allowed else self.limiter.available_in(key),
        )
        
        if not allowed:
            logger.info(
                f"Progressive limit reached for {origin}: tier={tier.name} "
                f"ceiling={tier.ceiling} violations={violations}"
            )
        return decision
    
    def record_violation(
        self,
        origin: str,
        actor: Actor = ANONYMOUS,
        user_agent: Optional[str] = None,
    ) -> int:
        """Escalate origin by one violation and audit it.
        
        Returns:
            The origin's violation count after this one.
        """
        total = self.limiter.hit(self.violation_key(origin), self.rules.violation_ttl_seconds)
        logger.warning(f"Rate limit violation from {origin} (total: {total})")
        
        if self.audit is not None:
            self.audit.record(
                actor,
                "rate_limit_violation",
                f"Rate limit violation from {origin}",
                context={"identifier": origin, "total_violations": total},
                severity=Severity.ERROR,
                ip=origin,
                user_agent=user_agent,
            )
        return total
