"""Time source injected into every stateful component."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Abstract time source.
    
    Components never call datetime.now() directly so that expiry and
    windowing can be driven deterministically.
    """
    
    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""
        pass
    
    def timestamp(self) -> float:
        """Current time as epoch seconds."""
        return self.now().timestamp()


class SystemClock(Clock):
    """Wall-clock time in UTC."""
    
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
