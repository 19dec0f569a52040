"""Security Service - the inbound surface of the abuse-prevention core.

The request-handling layer talks to this facade only. It is the one place
that applies the configured store-failure policy: components raise
StoreUnavailableError and the facade turns it into an allow (fail-open) or
a deny (fail-closed) decision. Second-factor verification never fails open.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from gatekeeper.analysis.analyzer import SecurityAnalyzer
from gatekeeper.analysis.report import Report
from gatekeeper.audit.pipeline import AuditPipeline
from gatekeeper.audit.schemas import SecurityEvent
from gatekeeper.audit.sinks import AlertSink, LoggingAlertSink, StructuredLogSink
from gatekeeper.audit.store import FileSecurityEventStore
from gatekeeper.common.config.policy import SecurityPolicy, load_policy
from gatekeeper.common.config.settings import Config, StoreBackend, get_config
from gatekeeper.common.exceptions import StoreUnavailableError
from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.core.types import ANONYMOUS, Actor, Severity
from gatekeeper.lockout.repository import FileLoginAttemptRepository
from gatekeeper.lockout.schema import LoginAttempt
from gatekeeper.lockout.tracker import LockoutStatus, LockoutTracker
from gatekeeper.ratelimit.limiter import RateLimiter
from gatekeeper.ratelimit.service import LimitDecision, LimitKind, RateLimitService
from gatekeeper.store.base import KeyStore
from gatekeeper.store.dynamodb import DynamoDBKeyStore
from gatekeeper.store.memory import InMemoryKeyStore
from gatekeeper.twofactor.manager import TwoFactorChallengeManager
from gatekeeper.twofactor.notifier import DeliveryMethod, Notifier
from gatekeeper.twofactor.schema import ChallengeState, IssueResult, VerifyResult

logger = logging.getLogger(__name__)

STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True)
class LoginOutcome:
    """Result of a guarded login."""
    allowed: bool
    reason: Optional[str] = None
    retry_after: int = 0
    subject_id: Optional[str] = None
    attempt: Optional[LoginAttempt] = None


class SecurityService:
    """Composes lockout, rate limiting, 2FA, audit and analysis."""
    
    def __init__(
        self,
        tracker: LockoutTracker,
        rate_limits: RateLimitService,
        two_factor: TwoFactorChallengeManager,
        audit: AuditPipeline,
        analyzer: Optional[SecurityAnalyzer] = None,
        fail_open: bool = False,
        recheck_lockout_after_verify: bool = True,
    ):
        self.tracker = tracker
        self.rate_limits = rate_limits
        self.two_factor = two_factor
        self.audit_pipeline = audit
        self.analyzer = analyzer
        self.fail_open = fail_open
        self.recheck_lockout_after_verify = recheck_lockout_after_verify
    
    @classmethod
    def from_config(
        cls,
        config: Optional[Config] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        alert_sink: Optional[AlertSink] = None,
        store: Optional[KeyStore] = None,
    ) -> "SecurityService":
        """Wire the full core from environment configuration."""
        config = config or get_config()
        clock = clock or SystemClock()
        policy = _load_configured_policy(config)
        
        if store is None:
            if config.store_backend == StoreBackend.DYNAMODB:
                store = DynamoDBKeyStore(config.dynamodb_table, config.aws_region, clock=clock)
            else:
                store = InMemoryKeyStore(clock)
        
        audit = AuditPipeline(
            log_sink=StructuredLogSink(),
            event_store=FileSecurityEventStore(config.events_dir, clock=clock),
            alert_sink=alert_sink or LoggingAlertSink(),
            clock=clock,
            persist_anonymous_events=config.persist_anonymous_events,
        )
        attempts = FileLoginAttemptRepository(config.attempts_dir)
        
        return cls(
            tracker=LockoutTracker(store, attempts, clock, policy.lockout),
            rate_limits=RateLimitService(RateLimiter(store), audit, policy, clock),
            two_factor=TwoFactorChallengeManager(store, notifier, clock, policy.two_factor, audit),
            audit=audit,
            analyzer=SecurityAnalyzer(attempts, audit.event_store, audit, clock, policy.analysis),
            fail_open=config.fails_open,
            recheck_lockout_after_verify=config.recheck_lockout_after_verify,
        )
    
    def _store_failure(self, operation: str, error: Exception) -> None:
        mode = "open" if self.fail_open else "closed"
        logger.error(f"Store unavailable during {operation}; failing {mode}: {error}")
    
    # ------------------------------------------------------------------
    # Lockout
    # ------------------------------------------------------------------
    
    def check_lockout(self, identity: str, origin: str) -> LockoutStatus:
        try:
            return self.tracker.status(identity, origin)
        except StoreUnavailableError as e:
            self._store_failure("check_lockout", e)
            return LockoutStatus(
                locked=not self.fail_open,
                identity_failures=0,
                origin_failures=0,
                max_attempts=self.tracker.rules.max_attempts,
                reason=None if self.fail_open else STORE_UNAVAILABLE,
            )
    
    def record_attempt(
        self,
        identity: str,
        origin: str,
        succeeded: bool,
        subject_id: Optional[str] = None,
        user_agent: str = "",
    ) -> LoginAttempt:
        """Record the attempt and keep the auth rate-limit counters in step."""
        attempt = self.tracker.record_attempt(
            identity, origin, succeeded, subject_id=subject_id, user_agent=user_agent
        )
        try:
            if succeeded:
                self.rate_limits.clear_auth(identity, origin)
            else:
                self.rate_limits.record_failed_auth(identity, origin)
        except StoreUnavailableError as e:
            logger.error(f"Could not update auth counters for {attempt.identity}: {e}")
        return attempt
    
    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------
    
    def check_rate_limit(
        self,
        key: str,
        kind: Union[LimitKind, str],
        **options: Any,
    ) -> LimitDecision:
        """Apply one named limit; see RateLimitService.check for options."""
        kind = LimitKind(kind)
        try:
            return self.rate_limits.check(kind, key, **options)
        except StoreUnavailableError as e:
            self._store_failure(f"check_rate_limit({kind.value})", e)
            return LimitDecision(
                allowed=self.fail_open,
                kind=kind,
                key=key,
                limit=0,
                remaining=0,
                reason=None if self.fail_open else STORE_UNAVAILABLE,
            )
    
    def record_violation(
        self,
        origin: str,
        actor: Actor = ANONYMOUS,
        user_agent: Optional[str] = None,
    ) -> Optional[int]:
        """Escalate an origin. Returns the new violation count, None if the store failed."""
        try:
            return self.rate_limits.escalator.record_violation(origin, actor, user_agent)
        except StoreUnavailableError as e:
            logger.error(f"Could not record rate limit violation for {origin}: {e}")
            return None
    
    # ------------------------------------------------------------------
    # Second factor
    # ------------------------------------------------------------------
    
    def issue_two_factor(
        self,
        actor: Actor,
        method: Union[DeliveryMethod, str] = DeliveryMethod.EMAIL,
    ) -> IssueResult:
        try:
            return self.two_factor.issue(actor, method)
        except StoreUnavailableError as e:
            logger.error(f"Could not issue 2FA code: {e}")
            return IssueResult(
                success=False,
                message="Two-factor authentication is temporarily unavailable.",
            )
    
    def verify_two_factor(self, actor: Actor, code: Optional[str]) -> VerifyResult:
        try:
            return self.two_factor.verify(actor, code)
        except StoreUnavailableError as e:
            logger.error(f"Could not verify 2FA code: {e}")
            return VerifyResult(
                success=False,
                state=ChallengeState.NONE,
                message="Two-factor authentication is temporarily unavailable.",
            )
    
    # ------------------------------------------------------------------
    # Audit and analysis
    # ------------------------------------------------------------------
    
    def audit(
        self,
        action: str,
        actor: Actor = ANONYMOUS,
        description: str = "",
        context: Optional[Dict[str, Any]] = None,
        severity: Severity = Severity.INFO,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SecurityEvent:
        return self.audit_pipeline.record(
            actor, action, description, context, severity, ip, user_agent
        )
    
    def analyze(
        self,
        hours: Optional[int] = None,
        alert_threshold: Optional[int] = None,
    ) -> Report:
        if self.analyzer is None:
            raise RuntimeError("SecurityService was built without an analyzer")
        return self.analyzer.analyze(hours, alert_threshold)
    
    # ------------------------------------------------------------------
    # Login flow
    # ------------------------------------------------------------------
    
    def guard_login(
        self,
        identity: str,
        origin: str,
        verify_credentials: Callable[[], Optional[str]],
        user_agent: str = "",
    ) -> LoginOutcome:
        """Run a login through the edge checks.
        
        Args:
            identity: Claimed principal
            origin: Client network address
            verify_credentials: Compares the credentials; returns the subject
                id on success, None on failure. Not called when the request
                is rate limited or locked out.
            user_agent: Client user agent
        
        Returns:
            LoginOutcome
        """
        status = self.check_lockout(identity, origin)
        if status.locked:
            reason = STORE_UNAVAILABLE if status.reason == STORE_UNAVAILABLE else "locked_out"
            self._audit_login(False, identity, origin, user_agent, reason)
            return LoginOutcome(False, reason, retry_after=status.retry_after_seconds)
        
        limit = self._auth_limit(identity, origin, user_agent)
        if not limit.allowed:
            reason = STORE_UNAVAILABLE if limit.reason == STORE_UNAVAILABLE else "rate_limited"
            self._audit_login(False, identity, origin, user_agent, reason)
            return LoginOutcome(False, reason, retry_after=limit.retry_after)
        
        subject_id = verify_credentials()
        succeeded = subject_id is not None
        attempt = self.record_attempt(
            identity, origin, succeeded, subject_id=subject_id, user_agent=user_agent
        )
        
        if not succeeded:
            self._audit_login(False, identity, origin, user_agent, "invalid_credentials")
            return LoginOutcome(False, "invalid_credentials", attempt=attempt)
        
        if self.recheck_lockout_after_verify:
            status = self.check_lockout(identity, origin)
            if status.locked:
                self._audit_login(False, identity, origin, user_agent, "locked_out")
                return LoginOutcome(
                    False,
                    "locked_out",
                    retry_after=status.retry_after_seconds,
                    attempt=attempt,
                )
        
        self._audit_login(True, identity, origin, user_agent)
        return LoginOutcome(True, subject_id=subject_id, attempt=attempt)
    
    def _auth_limit(self, identity: str, origin: str, user_agent: str) -> LimitDecision:
        try:
            return self.rate_limits.check_auth(identity, origin, user_agent or None)
        except StoreUnavailableError as e:
            self._store_failure("check_auth", e)
            return LimitDecision(
                allowed=self.fail_open,
                kind=LimitKind.AUTH,
                key=self.rate_limits.auth_origin_key(origin),
                limit=0,
                remaining=0,
                reason=None if self.fail_open else STORE_UNAVAILABLE,
            )
    
    def _audit_login(
        self,
        success: bool,
        identity: str,
        origin: str,
        user_agent: str,
        reason: Optional[str] = None,
    ) -> None:
        context: Dict[str, Any] = {"identity": identity.strip().lower()}
        if reason:
            context["reason"] = reason
        self.audit_pipeline.log_auth_event(
            "login", success, context=context, ip=origin, user_agent=user_agent or None
        )


def _load_configured_policy(config: Config) -> SecurityPolicy:
    """An explicit policy file must exist; the bundled one is optional."""
    if config.policy_file is not None:
        return load_policy(config.policy_file)
    path = config.resolved_policy_file
    if path.exists():
        return load_policy(path)
    logger.info(f"No policy file at {path}; using built-in defaults")
    return SecurityPolicy.default()
