"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from gatekeeper.core.clock import Clock


class ManualClock(Clock):
    """Clock that only moves when told to."""
    
    def __init__(self, start: datetime):
        self.current = start
    
    def now(self) -> datetime:
        return self.current
    
    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    """A manual clock fixed at 2026-01-15 12:00 UTC."""
    return ManualClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc))
