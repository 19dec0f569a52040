"""Unit tests for the dual-key lockout tracker."""

import logging
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from gatekeeper.common.config.policy import LockoutRules
from gatekeeper.common.exceptions import StoreUnavailableError, ValidationError
from gatekeeper.lockout.repository import InMemoryLoginAttemptRepository
from gatekeeper.lockout.tracker import LockoutTracker
from gatekeeper.store.memory import InMemoryKeyStore

ALICE = "alice@example.com"
IP = "10.0.0.1"


@pytest.fixture
def store(clock):
    return InMemoryKeyStore(clock)


@pytest.fixture
def tracker(store, clock):
    return LockoutTracker(store, InMemoryLoginAttemptRepository(), clock)


def fail(tracker, n, identity=ALICE, origin=IP):
    for _ in range(n):
        tracker.record_attempt(identity, origin, succeeded=False)


class TestRecordAttempt:
    """Test attempt recording."""
    
    def test_returns_recorded_attempt(self, tracker, clock):
        attempt = tracker.record_attempt(ALICE, IP, succeeded=True, subject_id="u1",
                                         user_agent="Mozilla/5.0")
        assert attempt.identity == ALICE
        assert attempt.subject_id == "u1"
        assert attempt.occurred_at == clock.now()
    
    def test_subject_dropped_on_failure(self, tracker):
        attempt = tracker.record_attempt(ALICE, IP, succeeded=False, subject_id="u1")
        assert attempt.subject_id is None
    
    def test_blank_identity_is_validation_error(self, tracker):
        with pytest.raises(ValidationError) as exc_info:
            tracker.record_attempt("  ", IP, succeeded=False)
        assert exc_info.value.code == "VALIDATION_ERROR"
    
    def test_persist_failure_does_not_raise(self, store, clock):
        repository = MagicMock()
        repository.add.side_effect = OSError("disk full")
        tracker = LockoutTracker(store, repository, clock)
        
        attempt = tracker.record_attempt(ALICE, IP, succeeded=False)
        assert attempt.identity == ALICE
    
    def test_lockout_counts_survive_persist_failure(self, store, clock):
        repository = MagicMock()
        repository.add.side_effect = OSError("disk full")
        tracker = LockoutTracker(store, repository, clock)
        
        fail(tracker, 5)
        assert tracker.is_locked_out(ALICE, IP)
    
    def test_counter_failure_is_logged(self, clock, caplog):
        store = MagicMock()
        store.increment.side_effect = StoreUnavailableError("timed out", backend="test")
        tracker = LockoutTracker(store, InMemoryLoginAttemptRepository(), clock)
        
        with caplog.at_level(logging.ERROR, logger="gatekeeper.lockout.tracker"):
            attempt = tracker.record_attempt(ALICE, IP, succeeded=False)
        
        assert attempt.identity == ALICE
        assert "Failed to count login failure" in caplog.text
    
    def test_repeated_failures_warning(self, tracker, caplog):
        with caplog.at_level(logging.WARNING, logger="gatekeeper.lockout.tracker"):
            fail(tracker, 3)
        assert any("Multiple failed login attempts" in r.message for r in caplog.records)


class TestLockoutThreshold:
    """Lockout trips at exactly the configured count."""
    
    @pytest.mark.parametrize("failures,locked", [(0, False), (4, False), (5, True), (7, True)])
    def test_threshold(self, tracker, failures, locked):
        fail(tracker, failures)
        assert tracker.is_locked_out(ALICE, IP) is locked
    
    def test_identity_key_alone_locks(self, tracker):
        for n in range(5):
            tracker.record_attempt(ALICE, f"10.0.1.{n}", succeeded=False)
        assert tracker.is_locked_out(ALICE, "192.168.0.9")
    
    def test_origin_key_alone_locks(self, tracker):
        for n in range(5):
            tracker.record_attempt(f"user{n}@example.com", IP, succeeded=False)
        assert tracker.is_locked_out("someone.else@example.com", IP)
    
    def test_identity_is_case_insensitive(self, tracker):
        fail(tracker, 5, identity="Alice@Example.com")
        assert tracker.is_locked_out("ALICE@example.com", "172.16.0.1")
    
    def test_successes_do_not_count(self, tracker):
        for _ in range(10):
            tracker.record_attempt(ALICE, IP, succeeded=True, subject_id="u1")
        assert not tracker.is_locked_out(ALICE, IP)
    
    def test_success_does_not_clear_failures(self, tracker):
        fail(tracker, 4)
        tracker.record_attempt(ALICE, IP, succeeded=True, subject_id="u1")
        fail(tracker, 1)
        assert tracker.is_locked_out(ALICE, IP)
    
    def test_custom_rules(self, store, clock):
        tracker = LockoutTracker(
            store, InMemoryLoginAttemptRepository(), clock, LockoutRules(max_attempts=2)
        )
        fail(tracker, 2)
        assert tracker.is_locked_out(ALICE, IP)


class TestWindow:
    """Failures age out of the sliding window."""
    
    def test_old_failures_do_not_count(self, tracker, clock):
        fail(tracker, 5)
        clock.advance(minutes=15, seconds=1)
        assert not tracker.is_locked_out(ALICE, IP)
    
    def test_partial_ageing(self, tracker, clock):
        fail(tracker, 3)
        clock.advance(minutes=10)
        fail(tracker, 2)
        assert tracker.is_locked_out(ALICE, IP)
        clock.advance(minutes=6)
        assert not tracker.is_locked_out(ALICE, IP)
    
    def test_window_start_is_inclusive(self, tracker, clock):
        fail(tracker, 5)
        clock.advance(minutes=15)
        assert tracker.is_locked_out(ALICE, IP)
    
    def test_counts_capped_at_ring_size(self, tracker):
        fail(tracker, 9)
        status = tracker.status(ALICE, IP)
        assert status.locked
        assert status.identity_failures == tracker.ring_size == 5


class TestTimeRemaining:
    """Test time until unlock."""
    
    def test_none_when_not_locked(self, tracker):
        fail(tracker, 4)
        assert tracker.time_remaining(ALICE, IP) is None
    
    def test_counts_from_most_recent_failure(self, tracker, clock):
        fail(tracker, 4)
        clock.advance(minutes=5)
        fail(tracker, 1)
        clock.advance(minutes=2)
        assert tracker.time_remaining(ALICE, IP) == timedelta(minutes=13)
    
    def test_status_fields(self, tracker):
        fail(tracker, 5)
        status = tracker.status(ALICE, IP)
        assert status.locked
        assert not status.allowed
        assert status.identity_failures == 5
        assert status.origin_failures == 5
        assert status.reason == "identity_locked"
        assert status.retry_after_seconds == 15 * 60


class TestStatistics:
    """Test reporting helpers."""
    
    def test_statistics(self, tracker):
        fail(tracker, 3)
        tracker.record_attempt("bob@example.com", "10.0.0.2", succeeded=True, subject_id="b")
        
        stats = tracker.statistics(days=7)
        assert stats["total_attempts"] == 4
        assert stats["failed_attempts"] == 3
        assert stats["successful_attempts"] == 1
        assert stats["success_rate"] == 25.0
        assert stats["unique_identities"] == 2
        assert stats["unique_origins"] == 2
    
    def test_statistics_empty(self, tracker):
        assert tracker.statistics()["success_rate"] == 0
    
    def test_top_failed_origins(self, tracker):
        fail(tracker, 3, origin="10.0.0.9")
        fail(tracker, 1, origin="10.0.0.8")
        
        top = tracker.top_failed_origins(limit=1)
        assert top == [{"origin": "10.0.0.9", "failed_count": 3}]
    
    def test_purge(self, tracker, clock):
        fail(tracker, 2)
        clock.advance(days=31)
        fail(tracker, 1)
        
        assert tracker.purge() == 2
        assert tracker.statistics(days=60)["total_attempts"] == 1


class TestSharedState:
    """Lockout state lives in the key store, not in the attempt history."""
    
    def test_trackers_sharing_a_store_agree(self, store, clock):
        """Test that a lockout recorded on one node is seen by another."""
        node_a = LockoutTracker(store, InMemoryLoginAttemptRepository(), clock)
        node_b = LockoutTracker(store, InMemoryLoginAttemptRepository(), clock)
        
        fail(node_a, 5)
        assert node_b.is_locked_out(ALICE, IP)
    
    def test_check_cost_independent_of_history(self, store, clock):
        """Test that a check reads a fixed number of keys and no history."""
        repository = MagicMock(wraps=InMemoryLoginAttemptRepository())
        tracker = LockoutTracker(store, repository, clock)
        for n in range(200):
            tracker.record_attempt(f"user{n}@example.com", f"10.0.{n // 250}.{n % 250}",
                                   succeeded=False)
        clock.advance(hours=2)
        repository.reset_mock()
        
        with patch.object(store, "get", wraps=store.get) as get:
            assert not tracker.is_locked_out(ALICE, IP)
        
        assert get.call_count == 2 * tracker.ring_size
        repository.between.assert_not_called()
        repository.failures.assert_not_called()
    
    def test_status_raises_when_store_unavailable(self, clock):
        store = MagicMock()
        store.get.side_effect = StoreUnavailableError("timed out", backend="test")
        tracker = LockoutTracker(store, InMemoryLoginAttemptRepository(), clock)
        
        with pytest.raises(StoreUnavailableError):
            tracker.status(ALICE, IP)
