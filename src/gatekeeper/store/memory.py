"""In-process key store for single-node deployments and tests."""

import threading
from typing import Any, Dict, Optional, Tuple

from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.store.base import KeyStore


class InMemoryKeyStore(KeyStore):
    """Thread-safe dictionary store with lazy, clock-driven expiry."""
    
    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._data: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
    
    def _live(self, key: str) -> Optional[Tuple[Any, float]]:
        """Return (value, expires_at) if present and unexpired. Caller holds the lock."""
        item = self._data.get(key)
        if item is None:
            return None
        if item[1] <= self.clock.timestamp():
            del self._data[key]
            return None
        return item
    
    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._live(key)
            return item[0] if item else None
    
    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._data[key] = (value, self.clock.timestamp() + ttl_seconds)
    
    def increment(self, key: str, ttl_seconds: float, amount: int = 1) -> int:
        with self._lock:
            item = self._live(key)
            if item is None:
                self._data[key] = (amount, self.clock.timestamp() + ttl_seconds)
                return amount
            value, expires_at = item
            new_value = int(value) + amount
            self._data[key] = (new_value, expires_at)
            return new_value
    
    def ttl(self, key: str) -> Optional[float]:
        with self._lock:
            item = self._live(key)
            if item is None:
                return None
            return item[1] - self.clock.timestamp()
    
    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)
    
    def pop(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._live(key)
            if item is None:
                return None
            del self._data[key]
            return item[0]
    
    def __len__(self) -> int:
        with self._lock:
            now = self.clock.timestamp()
            return sum(1 for _, expires_at in self._data.values() if expires_at > now)
