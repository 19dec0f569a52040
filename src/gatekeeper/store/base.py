"""Key store - counter and blob storage with expiry.

Every stateful component (lockout counters, rate limits, 2FA challenges)
keeps its state here. Expiry is enforced by the store's TTL, never by
in-process timers or sweeps.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class KeyStore(ABC):
    """Abstract key-value store with atomic increment and TTL.
    
    Implementations must make increment() and pop() atomic with respect to
    concurrent callers on the same key. Values passed to set() must be
    JSON-serializable.
    """
    
    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the live value for key, or None if absent or expired."""
        pass
    
    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store value under key, replacing any previous value and expiry."""
        pass
    
    @abstractmethod
    def increment(self, key: str, ttl_seconds: float, amount: int = 1) -> int:
        """Atomically add amount to the counter under key.
        
        A missing or expired counter is created with the given TTL. An
        existing counter keeps its original expiry (fixed window).
        
        Returns:
            The counter value after the increment.
        """
        pass
    
    @abstractmethod
    def ttl(self, key: str) -> Optional[float]:
        """Seconds until key expires, or None if absent or expired."""
        pass
    
    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""
        pass
    
    @abstractmethod
    def pop(self, key: str) -> Optional[Any]:
        """Atomically remove key and return its live value.
        
        Of several concurrent callers at most one receives the value.
        """
        pass
