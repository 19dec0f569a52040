"""Fixed-window keyed counters.

A counter is created by its first hit with a TTL and disappears when the
TTL elapses, however many hits land in between. There is no sliding
window and no token refill; pick the key granularity instead.
"""

import math
from typing import Optional

from gatekeeper.store.base import KeyStore


class RateLimiter:
    """Thin counter API over a KeyStore."""
    
    def __init__(self, store: KeyStore):
        self.store = store
    
    def hit(self, key: str, ttl_seconds: float) -> int:
        """Atomically count one hit. Returns the new count."""
        return self.store.increment(key, ttl_seconds)
    
    def attempts(self, key: str) -> int:
        value = self.store.get(key)
        return int(value) if value is not None else 0
    
    def too_many_attempts(self, key: str, max_attempts: int) -> bool:
        return self.attempts(key) >= max_attempts
    
    def remaining(self, key: str, max_attempts: int) -> int:
        return max(0, max_attempts - self.attempts(key))
    
    def available_in(self, key: str) -> int:
        """Whole seconds until the window for key resets; 0 if no window is open."""
        ttl: Optional[float] = self.store.ttl(key)
        if ttl is None:
            return 0
        return max(0, math.ceil(ttl))
    
    def clear(self, key: str) -> None:
        self.store.delete(key)
