"""Daily-rotated, append-only JSONL files.

Shared by the file-backed login attempt repository and security event store.
Each record lands in the file for its own UTC date, so a time-window query
only opens the files that can hold matching records.
"""

import fcntl
import json
import logging
import os
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

logger = logging.getLogger(__name__)


class DailyJsonlLog:
    """Append-only JSONL files named by date."""
    
    def __init__(
        self,
        log_dir: Union[str, Path],
        filename_pattern: str,
        fsync_on_write: bool = False,
    ):
        """Initialize the log.
        
        Args:
            log_dir: Directory for the files. Created with 0700 permissions.
            filename_pattern: Pattern for filenames. {date} is replaced.
            fsync_on_write: Whether to fsync after each write (slower but safer).
        """
        self.log_dir = Path(log_dir)
        self.filename_pattern = filename_pattern
        self.fsync_on_write = fsync_on_write
        self._lock = threading.Lock()
        
        self.log_dir.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.log_dir, 0o700)
        except OSError:
            logger.debug(f"Could not restrict permissions on {self.log_dir}")
    
    def path_for(self, day: date) -> Path:
        filename = self.filename_pattern.replace("{date}", day.strftime("%Y-%m-%d"))
        return self.log_dir / filename
    
    def append(self, record: Dict[str, Any], day: date) -> None:
        """Append one record with an exclusive file lock (cross-process safe)."""
        line = json.dumps(record, default=str) + "\n"
        with self._lock:
            fd = os.open(
                str(self.path_for(day)),
                os.O_WRONLY | os.O_CREAT | os.O_APPEND,
                0o600
            )
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                try:
                    os.write(fd, line.encode("utf-8"))
                    if self.fsync_on_write:
                        os.fsync(fd)
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)
    
    def read_day(self, day: date) -> Iterator[Dict[str, Any]]:
        """Yield records of one day, skipping malformed lines."""
        path = self.path_for(day)
        if not path.exists():
            return
        
        with open(path, "r") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning(f"Skipped malformed line {line_number} in {path.name}: {e}")
    
    def read_range(self, start: datetime, end: datetime) -> Iterator[Dict[str, Any]]:
        """Yield records from every daily file between start and end (inclusive)."""
        day = start.date()
        while day <= end.date():
            yield from self.read_day(day)
            day += timedelta(days=1)
    
    def last_record(self, day: date) -> Optional[Dict[str, Any]]:
        last = None
        for record in self.read_day(day):
            last = record
        return last
    
    def files(self) -> List[Path]:
        suffix = self.filename_pattern.split("{date}")[-1]
        return sorted(self.log_dir.glob(f"*{suffix}"))
    
    def purge_before(self, cutoff: date) -> int:
        """Delete whole daily files older than cutoff. Returns records removed."""
        removed = 0
        with self._lock:
            day = cutoff - timedelta(days=1)
            for path in self.files():
                file_day = self._day_of(path)
                if file_day is None or file_day > day:
                    continue
                with open(path, "r") as f:
                    removed += sum(1 for line in f if line.strip())
                path.unlink()
        return removed
    
    def _day_of(self, path: Path) -> Optional[date]:
        prefix, _, suffix = self.filename_pattern.partition("{date}")
        stamp = path.name[len(prefix):len(path.name) - len(suffix)]
        try:
            return datetime.strptime(stamp, "%Y-%m-%d").date()
        except ValueError:
            return None
