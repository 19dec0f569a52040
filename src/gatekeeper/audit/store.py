"""Security Event Store - durable, append-only event persistence.

Design principles:
- Append-only; events are never mutated or deleted here
- Hash chain for tamper detection (per daily file for the file backend)
- Thread-safe operations; file locking for cross-process appends
"""

import hashlib
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from gatekeeper.audit.schemas import SecurityEvent
from gatekeeper.common.constants import AuditConstants
from gatekeeper.common.exceptions import AuditLogIntegrityError
from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.core.types import Severity
from gatekeeper.store.jsonl import DailyJsonlLog

logger = logging.getLogger(__name__)


class SecurityEventStore(ABC):
    """Abstract base class for security event storage backends."""
    
    @abstractmethod
    def append(self, event: SecurityEvent) -> SecurityEvent:
        """Append an event.
        
        Returns:
            The stored event with hash chain fields populated
        
        Raises:
            OSError: If the write fails
        """
        pass
    
    @abstractmethod
    def between(self, start: datetime, end: datetime) -> Iterator[SecurityEvent]:
        """Yield events with start <= occurred_at <= end."""
        pass
    
    @abstractmethod
    def verify_integrity(self, day: Optional[date] = None) -> bool:
        """Verify the hash chain.
        
        Raises:
            AuditLogIntegrityError: If the chain is broken
        """
        pass
    
    def query(
        self,
        start: datetime,
        end: datetime,
        actions: Optional[Iterable[str]] = None,
        actor_id: Optional[str] = None,
        severities: Optional[Iterable[Severity]] = None,
    ) -> List[SecurityEvent]:
        """Events in the window with optional filtering."""
        action_set = set(actions) if actions is not None else None
        severity_set = set(severities) if severities is not None else None
        
        results = []
        for event in self.between(start, end):
            if action_set is not None and event.action not in action_set:
                continue
            if actor_id is not None and event.actor_id != actor_id:
                continue
            if severity_set is not None and event.severity not in severity_set:
                continue
            results.append(event)
        return results


class HashChain:
    """Canonical serialization and hashing shared by the store backends."""
    
    def __init__(self, hash_algorithm: str = AuditConstants.HASH_ALGORITHM):
        self.hash_algorithm = hash_algorithm
    
    def compute(self, event_dict: Dict[str, Any]) -> str:
        """Hash an event dict with entry_hash blanked."""
        payload = dict(event_dict)
        payload["entry_hash"] = None
        content = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
        hasher = hashlib.new(self.hash_algorithm)
        hasher.update(content.encode("utf-8"))
        return hasher.hexdigest()
    
    def link(self, event: SecurityEvent, previous_hash: Optional[str]) -> Dict[str, Any]:
        """Return the event as a JSON dict with chain fields set."""
        event_dict = event.model_dump(mode="json")
        event_dict["previous_hash"] = previous_hash
        event_dict["entry_hash"] = None
        event_dict["entry_hash"] = self.compute(event_dict)
        return event_dict
    
    def verify(self, records: Iterable[Dict[str, Any]], source: str) -> bool:
        previous_hash = None
        for position, record in enumerate(records, start=1):
            if record.get("previous_hash") != previous_hash:
                raise AuditLogIntegrityError(
                    f"Hash chain broken at record {position} of {source}. "
                    f"Expected previous_hash={previous_hash}, "
                    f"got {record.get('previous_hash')}"
                )
            stored_hash = record.get("entry_hash")
            if self.compute(record) != stored_hash:
                raise AuditLogIntegrityError(
                    f"Entry hash mismatch at record {position} of {source}. "
                    f"Event may have been tampered with."
                )
            previous_hash = stored_hash
        return True


class InMemorySecurityEventStore(SecurityEventStore):
    """Events held in process memory with a single hash chain."""
    
    def __init__(self, hash_algorithm: str = AuditConstants.HASH_ALGORITHM):
        self.chain = HashChain(hash_algorithm)
        self._records: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
    
    def append(self, event: SecurityEvent) -> SecurityEvent:
        with self._lock:
            previous_hash = self._records[-1]["entry_hash"] if self._records else None
            record = self.chain.link(event, previous_hash)
            self._records.append(record)
            return SecurityEvent.model_validate(record)
    
    def between(self, start: datetime, end: datetime) -> Iterator[SecurityEvent]:
        with self._lock:
            snapshot = list(self._records)
        for record in snapshot:
            event = SecurityEvent.model_validate(record)
            if start <= event.occurred_at <= end:
                yield event
    
    def verify_integrity(self, day: Optional[date] = None) -> bool:
        with self._lock:
            snapshot = [dict(r) for r in self._records]
        return self.chain.verify(snapshot, "memory")
    
    def __len__(self) -> int:
        return len(self._records)


class FileSecurityEventStore(SecurityEventStore):
    """Daily JSONL files with a hash chain per file.
    
    Each event is written to the file of its own UTC date. The last hash of
    each day is cached after the first write to that day.
    """
    
    def __init__(
        self,
        log_dir: Union[str, Path],
        filename_pattern: str = "security_events_{date}.jsonl",
        enable_hash_chain: bool = True,
        hash_algorithm: str = AuditConstants.HASH_ALGORITHM,
        fsync_on_write: bool = False,
        clock: Optional[Clock] = None,
    ):
        """Initialize file event store.
        
        Args:
            log_dir: Directory for event files.
            filename_pattern: Pattern for filenames. {date} is replaced.
            enable_hash_chain: Whether to enable hash chain integrity.
            hash_algorithm: Hash algorithm for integrity checks.
            fsync_on_write: Whether to fsync after each write (slower but safer).
            clock: Time source used to pick "today" for verify_integrity.
        """
        self.log = DailyJsonlLog(log_dir, filename_pattern, fsync_on_write=fsync_on_write)
        self.enable_hash_chain = enable_hash_chain
        self.chain = HashChain(hash_algorithm)
        self.clock = clock or SystemClock()
        
        self._lock = threading.Lock()
        self._last_hash: Dict[date, Optional[str]] = {}
    
    def _previous_hash(self, day: date) -> Optional[str]:
        if day not in self._last_hash:
            last = self.log.last_record(day)
            self._last_hash[day] = last.get("entry_hash") if last else None
        return self._last_hash[day]
    
    def append(self, event: SecurityEvent) -> SecurityEvent:
        day = event.occurred_at.date()
        with self._lock:
            if self.enable_hash_chain:
                record = self.chain.link(event, self._previous_hash(day))
            else:
                record = event.model_dump(mode="json")
            
            self.log.append(record, day)
            
            if self.enable_hash_chain:
                self._last_hash[day] = record["entry_hash"]
            return SecurityEvent.model_validate(record)
    
    def between(self, start: datetime, end: datetime) -> Iterator[SecurityEvent]:
        for record in self.log.read_range(start, end):
            try:
                event = SecurityEvent.model_validate(record)
            except ValueError as e:
                logger.warning(f"Skipped malformed security event: {e}")
                continue
            if start <= event.occurred_at <= end:
                yield event
    
    def verify_integrity(self, day: Optional[date] = None) -> bool:
        if not self.enable_hash_chain:
            return True
        
        day = day or self.clock.now().date()
        path = self.log.path_for(day)
        if not path.exists():
            return True  # Empty log is valid
        
        records = []
        with open(path, "r") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError as e:
                    raise AuditLogIntegrityError(
                        f"Malformed JSON at line {line_number} of {path.name}: {e}"
                    ) from e
        
        return self.chain.verify(records, path.name)
    
    def files(self) -> List[Path]:
        return self.log.files()
