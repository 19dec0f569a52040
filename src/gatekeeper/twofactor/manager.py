"""Two-Factor Challenge Manager - short-lived one-time codes.

State per subject lives entirely in the KeyStore:
    2fa_code:<subject>                  the current challenge (TTL = code expiry + retention)
    2fa_attempts:<subject>:<challenge>  verifications against that challenge
    2fa_misses:<subject>                verifications with no challenge (TTL = lockout window)
    2fa_lockout:<subject>               lockout marker (TTL = lockout window)

Every verification that reaches a stored challenge reserves one attempt
with an atomic increment before the codes are compared, so concurrent
verifications cannot exceed the attempt budget between them. Each issued
challenge gets its own budget.
"""

import hmac
import logging
import math
import secrets
from datetime import timedelta
from typing import Optional, Union

import pydantic

from gatekeeper.audit.pipeline import AuditPipeline
from gatekeeper.common.config.policy import TwoFactorRules
from gatekeeper.common.constants import TwoFactorConstants
from gatekeeper.common.exceptions import DeliveryError, ValidationError
from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.core.types import (
    Actor,
    AnonymousActor,
    CentralActor,
    TenantActor,
    subject_key,
)
from gatekeeper.store.base import KeyStore
from gatekeeper.twofactor.notifier import DeliveryMethod, LoggingNotifier, Notifier
from gatekeeper.twofactor.schema import (
    ChallengeState,
    IssueResult,
    TwoFactorChallenge,
    VerifyResult,
)

logger = logging.getLogger(__name__)


class TwoFactorChallengeManager:
    """Issues, stores and verifies second-factor codes."""
    
    def __init__(
        self,
        store: KeyStore,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        rules: Optional[TwoFactorRules] = None,
        audit: Optional[AuditPipeline] = None,
    ):
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock or SystemClock()
        self.rules = rules or TwoFactorRules()
        self.audit = audit
    
    # ------------------------------------------------------------------
    # Keys and lockout
    # ------------------------------------------------------------------
    
    @staticmethod
    def _code_key(subject: str) -> str:
        return f"2fa_code:{subject}"
    
    @staticmethod
    def _attempts_key(subject: str, challenge_id: str) -> str:
        return f"2fa_attempts:{subject}:{challenge_id}"
    
    @staticmethod
    def _misses_key(subject: str) -> str:
        return f"2fa_misses:{subject}"
    
    @staticmethod
    def _lockout_key(subject: str) -> str:
        return f"2fa_lockout:{subject}"
    
    @property
    def _lockout_seconds(self) -> int:
        return self.rules.lockout_minutes * 60
    
    def _lockout_remaining(self, subject: str) -> Optional[int]:
        """Whole seconds of lockout left, or None when not locked."""
        ttl = self.store.ttl(self._lockout_key(subject))
        if ttl is None:
            return None
        return max(0, math.ceil(ttl))
    
    def _lock(self, subject: str, challenge: TwoFactorChallenge) -> None:
        locked_until = self.clock.now() + timedelta(seconds=self._lockout_seconds)
        self.store.set(
            self._lockout_key(subject),
            {"locked_until": locked_until.isoformat()},
            self._lockout_seconds,
        )
        self.store.delete(self._code_key(subject))
        self.store.delete(self._attempts_key(subject, challenge.challenge_id))
        self.store.delete(self._misses_key(subject))
    
    def _load_challenge(self, subject: str) -> Optional[TwoFactorChallenge]:
        raw = self.store.get(self._code_key(subject))
        if raw is None:
            return None
        try:
            return TwoFactorChallenge.model_validate(raw)
        except pydantic.ValidationError as e:
            logger.error(f"Discarding unreadable 2FA challenge for {subject}: {e}")
            self.store.delete(self._code_key(subject))
            return None
    
    def _generate_code(self) -> str:
        length = self.rules.code_length
        return str(secrets.randbelow(10 ** length)).zfill(length)
    
    @staticmethod
    def _method(method: Union[DeliveryMethod, str]) -> DeliveryMethod:
        try:
            return DeliveryMethod(method)
        except ValueError as e:
            raise ValidationError(
                f"Unsupported delivery method: {method}", field="method"
            ) from e
    
    # ------------------------------------------------------------------
    # Role rules
    # ------------------------------------------------------------------
    
    def is_enabled_for(self, actor: Actor) -> bool:
        if isinstance(actor, CentralActor):
            return actor.role in self.rules.central_roles
        if isinstance(actor, TenantActor):
            return actor.role in self.rules.tenant_roles
        if isinstance(actor, AnonymousActor):
            return False
        raise TypeError(f"not an actor: {actor!r}")
    
    def is_required(self, actor: Actor, action: str) -> bool:
        """True when the actor's role uses 2FA and the action is sensitive."""
        return self.is_enabled_for(actor) and action in self.rules.sensitive_actions
    
    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    
    def state(self, actor: Actor) -> ChallengeState:
        subject = subject_key(actor)
        if self.store.get(self._lockout_key(subject)) is not None:
            return ChallengeState.LOCKED
        challenge = self._load_challenge(subject)
        if challenge is None:
            return ChallengeState.NONE
        if challenge.expires_at <= self.clock.now():
            return ChallengeState.EXPIRED
        return ChallengeState.ISSUED
    
    def issue(
        self,
        actor: Actor,
        method: Union[DeliveryMethod, str] = DeliveryMethod.EMAIL,
    ) -> IssueResult:
        """Generate, store and deliver a new code, replacing any previous one.
        
        A delivery failure is reported in the result; the stored challenge
        stays valid and can be re-sent with resend().
        
        Raises:
            ValidationError: If the delivery method is unknown.
            TypeError: For anonymous actors.
        """
        method = self._method(method)
        subject = subject_key(actor)
        
        lockout_remaining = self._lockout_remaining(subject)
        if lockout_remaining is not None:
            return IssueResult(
                success=False,
                message="Too many failed attempts. Please try again later.",
                lockout_remaining=lockout_remaining,
            )
        
        now = self.clock.now()
        expiry_seconds = self.rules.code_expiry_minutes * 60
        challenge = TwoFactorChallenge(
            challenge_id=secrets.token_hex(8),
            code=self._generate_code(),
            method=method,
            created_at=now,
            expires_at=now + timedelta(seconds=expiry_seconds),
        )
        self.store.set(
            self._code_key(subject),
            challenge.model_dump(mode="json"),
            expiry_seconds + TwoFactorConstants.EXPIRED_RETENTION_SECONDS,
        )
        
        return self._deliver(actor, subject, challenge, method)
    
    def resend(
        self,
        actor: Actor,
        method: Optional[Union[DeliveryMethod, str]] = None,
    ) -> IssueResult:
        """Deliver the current challenge again without regenerating it."""
        subject = subject_key(actor)
        
        lockout_remaining = self._lockout_remaining(subject)
        if lockout_remaining is not None:
            return IssueResult(
                success=False,
                message="Too many failed attempts. Please try again later.",
                lockout_remaining=lockout_remaining,
            )
        
        challenge = self._load_challenge(subject)
        if challenge is None or challenge.expires_at <= self.clock.now():
            return IssueResult(
                success=False,
                message="No valid 2FA code found. Please request a new one.",
            )
        
        resend_method = self._method(method) if method is not None else challenge.method
        return self._deliver(actor, subject, challenge, resend_method)
    
    def _deliver(
        self,
        actor: Actor,
        subject: str,
        challenge: TwoFactorChallenge,
        method: DeliveryMethod,
    ) -> IssueResult:
        try:
            self.notifier.send(actor, challenge.code, method)
        except DeliveryError as e:
            logger.error(f"Failed to send 2FA code to {subject} via {method.value}: {e.message}")
            return IssueResult(
                success=False,
                delivered=False,
                message="Failed to send 2FA code. Please try again.",
                method=method,
                expires_at=challenge.expires_at,
                code=challenge.code,
            )
        
        logger.info(
            f"2FA code sent to {subject} via {method.value}, "
            f"expires at {challenge.expires_at.isoformat()}"
        )
        return IssueResult(
            success=True,
            delivered=True,
            message="2FA code sent successfully.",
            method=method,
            expires_at=challenge.expires_at,
            code=challenge.code,
        )
    
    def verify(self, actor: Actor, submitted_code: Optional[str]) -> VerifyResult:
        """Check a submitted code.
        
        Raises:
            ValidationError: If no code was submitted.
            TypeError: For anonymous actors.
        """
        if submitted_code is None or not str(submitted_code).strip():
            raise ValidationError("A 2FA code is required", field="code")
        submitted_code = str(submitted_code).strip()
        subject = subject_key(actor)
        
        lockout_remaining = self._lockout_remaining(subject)
        if lockout_remaining is not None:
            return VerifyResult(
                success=False,
                state=ChallengeState.LOCKED,
                message="Account temporarily locked due to too many failed attempts.",
                lockout_remaining=lockout_remaining,
            )
        
        challenge = self._load_challenge(subject)
        if challenge is None:
            misses = self.store.increment(self._misses_key(subject), self._lockout_seconds)
            logger.warning(f"2FA verification for {subject} without a challenge (misses: {misses})")
            self._audit(actor, success=False, reason="no_challenge", misses=misses)
            return self._no_challenge()
        
        if challenge.expires_at <= self.clock.now():
            self.store.delete(self._code_key(subject))
            self.store.delete(self._attempts_key(subject, challenge.challenge_id))
            return VerifyResult(
                success=False,
                state=ChallengeState.EXPIRED,
                message="2FA code has expired. Please request a new one.",
            )
        
        attempts_key = self._attempts_key(subject, challenge.challenge_id)
        used = self.store.increment(
            attempts_key,
            self.rules.code_expiry_minutes * 60 + TwoFactorConstants.EXPIRED_RETENTION_SECONDS,
        )
        max_attempts = self.rules.max_attempts
        
        if used > max_attempts:
            # Budget already spent by concurrent verifications of this challenge
            lockout_remaining = self._lockout_remaining(subject)
            if lockout_remaining is None:
                return self._no_challenge()
            return VerifyResult(
                success=False,
                state=ChallengeState.LOCKED,
                message="Account temporarily locked due to too many failed attempts.",
                lockout_remaining=lockout_remaining,
            )
        
        if hmac.compare_digest(challenge.code.encode("utf-8"), submitted_code.encode("utf-8")):
            consumed = self.store.pop(self._code_key(subject))
            if consumed is None or consumed.get("challenge_id") != challenge.challenge_id:
                # Another verification consumed it, or a new code replaced it.
                return self._no_challenge()
            self.store.delete(attempts_key)
            self.store.delete(self._misses_key(subject))
            logger.info(f"2FA verification successful for {subject}")
            self._audit(actor, success=True)
            return VerifyResult(
                success=True,
                state=ChallengeState.VERIFIED,
                message="2FA verification successful.",
            )
        
        remaining = max(0, max_attempts - used)
        logger.warning(f"2FA verification failed for {subject} (remaining attempts: {remaining})")
        self._audit(actor, success=False, remaining_attempts=remaining)
        
        if remaining == 0:
            self._lock(subject, challenge)
            logger.warning(f"2FA locked for {subject} for {self.rules.lockout_minutes} minutes")
            if self.audit is not None:
                self.audit.log_security_violation(
                    "2fa_lockout",
                    "Too many failed 2FA attempts",
                    actor=actor,
                    details={"lockout_minutes": self.rules.lockout_minutes},
                )
            return VerifyResult(
                success=False,
                state=ChallengeState.LOCKED,
                message="Too many failed attempts. Account temporarily locked.",
                remaining_attempts=0,
                lockout_remaining=self._lockout_seconds,
            )
        
        return VerifyResult(
            success=False,
            state=ChallengeState.ISSUED,
            message="Invalid 2FA code.",
            remaining_attempts=remaining,
        )
    
    def _audit(self, actor: Actor, success: bool, **context) -> None:
        if self.audit is None:
            return
        self.audit.log_auth_event(
            "2fa_verification", success, actor=actor, context=context or None
        )
    
    @staticmethod
    def _no_challenge() -> VerifyResult:
        return VerifyResult(
            success=False,
            state=ChallengeState.NONE,
            message="No valid 2FA code found. Please request a new one.",
        )
