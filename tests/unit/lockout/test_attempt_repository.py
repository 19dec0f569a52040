"""Unit tests for login attempt repositories."""

from datetime import datetime, timedelta, timezone

import pytest

from gatekeeper.lockout.repository import (
    FileLoginAttemptRepository,
    InMemoryLoginAttemptRepository,
)
from gatekeeper.lockout.schema import LoginAttempt

T0 = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def _attempt(minutes=0, identity="alice@example.com", origin="10.0.0.1", succeeded=False):
    return LoginAttempt(
        identity=identity,
        origin=origin,
        succeeded=succeeded,
        occurred_at=T0 + timedelta(minutes=minutes),
        subject_id="u1" if succeeded else None,
    )


@pytest.fixture(params=["memory", "file"])
def repository(request, tmp_path):
    if request.param == "memory":
        return InMemoryLoginAttemptRepository()
    return FileLoginAttemptRepository(tmp_path / "attempts")


class TestLoginAttemptSchema:
    """Test LoginAttempt validation."""
    
    def test_identity_is_normalized(self):
        attempt = _attempt(identity="  Alice@Example.COM ")
        assert attempt.identity == "alice@example.com"
    
    def test_blank_identity_rejected(self):
        with pytest.raises(ValueError):
            _attempt(identity="   ")
    
    def test_blank_origin_rejected(self):
        with pytest.raises(ValueError):
            _attempt(origin="")
    
    def test_subject_only_on_success(self):
        with pytest.raises(ValueError):
            LoginAttempt(
                identity="a@b.c",
                origin="10.0.0.1",
                succeeded=False,
                occurred_at=T0,
                subject_id="u1",
            )
    
    def test_attempt_is_immutable(self):
        attempt = _attempt()
        with pytest.raises(ValueError):
            attempt.succeeded = True


class TestRepository:
    """Behaviour shared by both repository backends."""
    
    def test_between_is_inclusive(self, repository):
        for minutes in (0, 5, 10):
            repository.add(_attempt(minutes))
        
        found = list(repository.between(T0 + timedelta(minutes=5), T0 + timedelta(minutes=10)))
        assert len(found) == 2
    
    def test_failures_filters(self, repository):
        repository.add(_attempt(0))
        repository.add(_attempt(1, identity="bob@example.com"))
        repository.add(_attempt(2, origin="10.0.0.2"))
        repository.add(_attempt(3, succeeded=True))
        
        end = T0 + timedelta(hours=1)
        assert len(repository.failures(T0, end)) == 3
        assert len(repository.failures(T0, end, identity="alice@example.com")) == 2
        assert len(repository.failures(T0, end, origin="10.0.0.1")) == 2
    
    def test_round_trip_preserves_fields(self, repository):
        original = _attempt(succeeded=True)
        repository.add(original)
        
        stored = list(repository.between(T0, T0))[0]
        assert stored == original


class TestPurge:
    """Test retention purge."""
    
    def test_memory_purge(self):
        repository = InMemoryLoginAttemptRepository()
        repository.add(_attempt(-60 * 24 * 40))
        repository.add(_attempt(0))
        
        assert repository.purge_before(T0 - timedelta(days=30)) == 1
        assert len(repository) == 1
    
    def test_file_purge_removes_old_days(self, tmp_path):
        repository = FileLoginAttemptRepository(tmp_path)
        repository.add(_attempt(-60 * 24 * 40))
        repository.add(_attempt(0))
        
        assert repository.purge_before(T0 - timedelta(days=30)) == 1
        assert len(list(repository.between(T0 - timedelta(days=50), T0))) == 1
