"""Unit tests for per-origin risk scoring."""

import pytest

from gatekeeper.analysis.scoring import RiskProfile, calculate_risk_score


class TestCalculateRiskScore:
    """Test the weighted formula and its bounds."""
    
    @pytest.mark.parametrize("failed,violations,suspicious,expected", [
        (0, 0, 0, 0),
        (3, 1, 0, 11),
        (1, 1, 1, 17),
        (11, 0, 0, 32),   # more than 10 events
        (21, 0, 0, 62),   # more than 20 events
        (0, 0, 11, 100),  # clamped
        (500, 500, 500, 100),
    ])
    def test_formula(self, failed, violations, suspicious, expected):
        assert calculate_risk_score(failed, violations, suspicious) == expected
    
    def test_frequency_bonus_uses_total_events(self):
        assert calculate_risk_score(1, 0, 0, total_events=25) == 22
    
    def test_negative_inputs_clamped(self):
        assert calculate_risk_score(-10, -1, -3) == 0
    
    @pytest.mark.parametrize("failed", range(0, 80, 7))
    def test_always_in_bounds(self, failed):
        score = calculate_risk_score(failed, failed // 2, failed // 3)
        assert 0 <= score <= 100


class TestRiskProfile:
    """Test profile construction from event counts."""
    
    def test_from_counts(self):
        profile = RiskProfile.from_counts(
            "203.0.113.4", {"login_failed": 20, "security_violation": 2}
        )
        assert profile.total_events == 22
        assert profile.risk_score == 70
        assert profile.flagged_as_high_risk
    
    def test_threshold_is_exclusive(self):
        profile = RiskProfile.from_counts("203.0.113.4", {"suspicious_activity": 5})
        assert profile.risk_score == 50
        assert not profile.flagged_as_high_risk
    
    def test_unknown_types_only_count_toward_frequency(self):
        profile = RiskProfile.from_counts("203.0.113.4", {"other": 12})
        assert profile.risk_score == 10
