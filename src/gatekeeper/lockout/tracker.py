"""Lockout Tracker - dual-key (identity and origin) login lockout.

Counts failed attempts in a sliding window for the claimed identity and,
independently, for the network origin. Either key reaching the threshold
locks the pair out. Successes never count and never clear earlier
failures; the window simply ages them out.

Live lockout state sits in the shared KeyStore, one ring of recent failure
timestamps per key:
    lockout:<kind>:<value>:seq   failure sequence number (atomic increment)
    lockout:<kind>:<value>:<n>   timestamp of a failure, slot n = seq mod size

The ring holds the most recent failures, enough to decide the threshold
and the warning levels, so a check costs a fixed number of reads however
much attack traffic a day brings. The attempt repository keeps the
durable facts for statistics and analysis only.

Callers check the lockout BEFORE comparing credentials so that attack
traffic does not cost password-hash work.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pydantic

from gatekeeper.common.config.policy import LockoutRules
from gatekeeper.common.exceptions import StoreUnavailableError, ValidationError
from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.lockout.repository import LoginAttemptRepository
from gatekeeper.lockout.schema import LoginAttempt, normalize_identity
from gatekeeper.store.base import KeyStore

logger = logging.getLogger(__name__)

IDENTITY = "identity"
ORIGIN = "origin"


@dataclass(frozen=True)
class LockoutStatus:
    """Typed lockout decision for an (identity, origin) pair.
    
    Failure counts are exact up to the ring size and capped there.
    """
    locked: bool
    identity_failures: int
    origin_failures: int
    max_attempts: int
    retry_after: Optional[timedelta] = None
    reason: Optional[str] = None
    
    @property
    def allowed(self) -> bool:
        return not self.locked
    
    @property
    def retry_after_seconds(self) -> int:
        if self.retry_after is None:
            return 0
        return max(0, int(self.retry_after.total_seconds() + 0.999))


class LockoutTracker:
    """Records login attempts and answers lockout queries."""
    
    def __init__(
        self,
        store: KeyStore,
        repository: LoginAttemptRepository,
        clock: Optional[Clock] = None,
        rules: Optional[LockoutRules] = None,
    ):
        self.store = store
        self.repository = repository
        self.clock = clock or SystemClock()
        self.rules = rules or LockoutRules()
    
    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.rules.lockout_minutes)
    
    @property
    def ring_size(self) -> int:
        return max(
            self.rules.max_attempts,
            self.rules.identity_warning_failures,
            self.rules.origin_warning_failures,
        )
    
    # ------------------------------------------------------------------
    # Failure rings
    # ------------------------------------------------------------------
    
    @staticmethod
    def _ring_key(kind: str, value: str, suffix: Any) -> str:
        return f"lockout:{kind}:{value}:{suffix}"
    
    def _push_failure(self, kind: str, value: str, occurred_at: datetime) -> None:
        seq = self.store.increment(
            self._ring_key(kind, value, "seq"), self.rules.retention_days * 86400
        )
        self.store.set(
            self._ring_key(kind, value, (seq - 1) % self.ring_size),
            occurred_at.isoformat(),
            # +1s: a failure exactly one window old still counts
            self.window.total_seconds() + 1,
        )
    
    def _window_failures(self, kind: str, value: str) -> List[datetime]:
        """Timestamps of the ring's failures inside the window."""
        start = self.clock.now() - self.window
        failures = []
        for slot in range(self.ring_size):
            raw = self.store.get(self._ring_key(kind, value, slot))
            if raw is None:
                continue
            occurred_at = datetime.fromisoformat(raw)
            if occurred_at >= start:
                failures.append(occurred_at)
        return failures
    
    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------
    
    def record_attempt(
        self,
        identity: str,
        origin: str,
        succeeded: bool,
        subject_id: Optional[str] = None,
        user_agent: str = "",
    ) -> LoginAttempt:
        """Record one authentication attempt.
        
        Args:
            identity: Claimed principal (normalized to lower case)
            origin: Client network address
            succeeded: Whether the credentials were accepted
            subject_id: Authenticated subject (successes only)
            user_agent: Client user agent
        
        Returns:
            The recorded LoginAttempt
        
        Raises:
            ValidationError: If identity or origin is malformed.
        """
        try:
            attempt = LoginAttempt(
                identity=identity,
                origin=origin,
                user_agent=user_agent or "",
                succeeded=succeeded,
                occurred_at=self.clock.now(),
                subject_id=subject_id if succeeded else None,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(
                "Invalid login attempt",
                details={"errors": e.errors(include_url=False)},
            ) from e
        
        try:
            self.repository.add(attempt)
        except OSError as e:
            # The attempt still happened; losing the record must not fail the login.
            logger.error(f"Failed to persist login attempt for {attempt.identity}: {e}")
        
        if attempt.succeeded:
            logger.info(f"Successful login attempt: {attempt.identity} from {attempt.origin}")
            return attempt
        
        logger.warning(f"Failed login attempt: {attempt.identity} from {attempt.origin}")
        try:
            self._push_failure(IDENTITY, attempt.identity, attempt.occurred_at)
            self._push_failure(ORIGIN, attempt.origin, attempt.occurred_at)
            self._warn_on_repeated_failures(attempt)
        except StoreUnavailableError as e:
            logger.error(f"Failed to count login failure for {attempt.identity}: {e}")
        
        return attempt
    
    def _warn_on_repeated_failures(self, attempt: LoginAttempt) -> None:
        identity_failures = len(self._window_failures(IDENTITY, attempt.identity))
        origin_failures = len(self._window_failures(ORIGIN, attempt.origin))
        
        if (identity_failures >= self.rules.identity_warning_failures
                or origin_failures >= self.rules.origin_warning_failures):
            logger.warning(
                "Multiple failed login attempts detected: "
                f"identity={attempt.identity} ({identity_failures}), "
                f"origin={attempt.origin} ({origin_failures})"
            )
    
    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    
    def recent_failures_for_identity(self, identity: str) -> int:
        return len(self._window_failures(IDENTITY, normalize_identity(identity)))
    
    def recent_failures_from_origin(self, origin: str) -> int:
        return len(self._window_failures(ORIGIN, origin.strip()))
    
    def status(self, identity: str, origin: str) -> LockoutStatus:
        """Evaluate both keys and return the full lockout decision.
        
        Raises:
            StoreUnavailableError: If the key store cannot be read.
        """
        identity_failures = self._window_failures(IDENTITY, normalize_identity(identity))
        origin_failures = self._window_failures(ORIGIN, origin.strip())
        max_attempts = self.rules.max_attempts
        
        identity_locked = len(identity_failures) >= max_attempts
        origin_locked = len(origin_failures) >= max_attempts
        locked = identity_locked or origin_locked
        
        retry_after = None
        reason = None
        if locked:
            latest = max(identity_failures + origin_failures)
            retry_after = max(latest + self.window - self.clock.now(), timedelta(0))
            reason = "identity_locked" if identity_locked else "origin_locked"
        
        return LockoutStatus(
            locked=locked,
            identity_failures=len(identity_failures),
            origin_failures=len(origin_failures),
            max_attempts=max_attempts,
            retry_after=retry_after,
            reason=reason,
        )
    
    def is_locked_out(self, identity: str, origin: str) -> bool:
        """True if the identity OR the origin has too many recent failures."""
        return self.status(identity, origin).locked
    
    def time_remaining(self, identity: str, origin: str) -> Optional[timedelta]:
        """Time until the most recent triggering failure ages out; None if not locked."""
        return self.status(identity, origin).retry_after
    
    # ------------------------------------------------------------------
    # Durable facts
    # ------------------------------------------------------------------
    
    def purge(self, days_to_keep: Optional[int] = None) -> int:
        """Delete attempts older than the retention horizon."""
        days = days_to_keep if days_to_keep is not None else self.rules.retention_days
        cutoff = self.clock.now() - timedelta(days=days)
        removed = self.repository.purge_before(cutoff)
        logger.info(f"Purged {removed} login attempts older than {cutoff.isoformat()}")
        return removed
    
    def statistics(self, days: int = 7) -> Dict[str, Any]:
        """Attempt counts over the last N days."""
        now = self.clock.now()
        start = (now - timedelta(days=days)).replace(hour=0, minute=0, second=0, microsecond=0)
        attempts = list(self.repository.between(start, now))
        
        total = len(attempts)
        successful = sum(1 for a in attempts if a.succeeded)
        
        return {
            "period_days": days,
            "total_attempts": total,
            "successful_attempts": successful,
            "failed_attempts": total - successful,
            "success_rate": round(successful / total * 100, 2) if total else 0,
            "unique_identities": len({a.identity for a in attempts}),
            "unique_origins": len({a.origin for a in attempts}),
        }
    
    def top_failed_origins(self, limit: int = 10, days: int = 7) -> List[Dict[str, Any]]:
        """Origins with the most failed attempts over the last N days."""
        now = self.clock.now()
        start = (now - timedelta(days=days)).replace(hour=0, minute=0, second=0, microsecond=0)
        counts = Counter(a.origin for a in self.repository.failures(start, now))
        return [
            {"origin": origin, "failed_count": count}
            for origin, count in counts.most_common(limit)
        ]
