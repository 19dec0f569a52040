"""Login attempt persistence.

Attempts are write-once facts. The tracker asks for failures in a time
window; the analyzer scans whole windows.
"""

import bisect
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Union

from gatekeeper.lockout.schema import LoginAttempt
from gatekeeper.store.jsonl import DailyJsonlLog

logger = logging.getLogger(__name__)


class LoginAttemptRepository(ABC):
    """Abstract storage for LoginAttempt records."""
    
    @abstractmethod
    def add(self, attempt: LoginAttempt) -> None:
        """Append an attempt. Must be safe under concurrent callers."""
        pass
    
    @abstractmethod
    def between(self, start: datetime, end: datetime) -> Iterator[LoginAttempt]:
        """Yield attempts with start <= occurred_at <= end."""
        pass
    
    @abstractmethod
    def purge_before(self, cutoff: datetime) -> int:
        """Delete attempts older than cutoff. Returns the number removed."""
        pass
    
    def failures(
        self,
        start: datetime,
        end: datetime,
        identity: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> List[LoginAttempt]:
        """Failed attempts in the window, filtered by identity and/or origin."""
        return [
            attempt for attempt in self.between(start, end)
            if not attempt.succeeded
            and (identity is None or attempt.identity == identity)
            and (origin is None or attempt.origin == origin)
        ]


class InMemoryLoginAttemptRepository(LoginAttemptRepository):
    """Attempts kept in a time-ordered list."""
    
    def __init__(self):
        self._attempts: List[LoginAttempt] = []
        self._lock = threading.Lock()
    
    def add(self, attempt: LoginAttempt) -> None:
        with self._lock:
            keys = [a.occurred_at for a in self._attempts]
            self._attempts.insert(bisect.bisect_right(keys, attempt.occurred_at), attempt)
    
    def between(self, start: datetime, end: datetime) -> Iterator[LoginAttempt]:
        with self._lock:
            snapshot = list(self._attempts)
        for attempt in snapshot:
            if start <= attempt.occurred_at <= end:
                yield attempt
    
    def purge_before(self, cutoff: datetime) -> int:
        with self._lock:
            before = len(self._attempts)
            self._attempts = [a for a in self._attempts if a.occurred_at >= cutoff]
            return before - len(self._attempts)
    
    def __len__(self) -> int:
        return len(self._attempts)


class FileLoginAttemptRepository(LoginAttemptRepository):
    """Attempts in daily JSONL files (login_attempts_YYYY-MM-DD.jsonl)."""
    
    def __init__(
        self,
        log_dir: Union[str, Path],
        filename_pattern: str = "login_attempts_{date}.jsonl",
        fsync_on_write: bool = False,
    ):
        self.log = DailyJsonlLog(log_dir, filename_pattern, fsync_on_write=fsync_on_write)
    
    def add(self, attempt: LoginAttempt) -> None:
        self.log.append(attempt.model_dump(mode="json"), attempt.occurred_at.date())
    
    def between(self, start: datetime, end: datetime) -> Iterator[LoginAttempt]:
        for record in self.log.read_range(start, end):
            try:
                attempt = LoginAttempt.model_validate(record)
            except ValueError as e:
                logger.warning(f"Skipped invalid login attempt record: {e}")
                continue
            if start <= attempt.occurred_at <= end:
                yield attempt
    
    def purge_before(self, cutoff: datetime) -> int:
        # Whole days only; the partial cutoff day is kept.
        return self.log.purge_before(cutoff.date())
