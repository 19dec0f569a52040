"""Unit tests for the batch security analyzer."""

from datetime import timedelta

import pytest

from gatekeeper.analysis.analyzer import SecurityAnalyzer
from gatekeeper.audit.pipeline import AuditPipeline
from gatekeeper.audit.schemas import SecurityEvent
from gatekeeper.audit.sinks import LoggingAlertSink
from gatekeeper.audit.store import InMemorySecurityEventStore
from gatekeeper.core.types import Severity
from gatekeeper.lockout.repository import InMemoryLoginAttemptRepository
from gatekeeper.lockout.schema import LoginAttempt

BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0"


@pytest.fixture
def attempts():
    return InMemoryLoginAttemptRepository()


@pytest.fixture
def events():
    return InMemorySecurityEventStore()


@pytest.fixture
def alert_sink():
    return LoggingAlertSink()


@pytest.fixture
def analyzer(attempts, events, alert_sink, clock):
    pipeline = AuditPipeline(alert_sink=alert_sink, event_store=events, clock=clock)
    return SecurityAnalyzer(attempts, events, pipeline=pipeline, clock=clock)


def add_failures(attempts, clock, count, origin="198.51.100.7", identity="alice@example.com",
                 user_agent=BROWSER_UA, ago=timedelta(minutes=30)):
    for _ in range(count):
        attempts.add(LoginAttempt(
            identity=identity,
            origin=origin,
            user_agent=user_agent,
            succeeded=False,
            occurred_at=clock.now() - ago,
        ))


def add_events(events, clock, count, action, origin="203.0.113.9",
               severity=Severity.WARNING, context=None, user_agent=None):
    for _ in range(count):
        events.append(SecurityEvent(
            occurred_at=clock.now() - timedelta(minutes=10),
            action=action,
            severity=severity,
            ip=origin,
            user_agent=user_agent,
            context=context or {},
        ))


class TestEmptyWindow:
    """Test analysis with nothing to report."""
    
    def test_empty_report(self, analyzer, alert_sink):
        report = analyzer.analyze()
        
        assert report.failed_logins.total == 0
        assert report.failed_logins.peak_hour is None
        assert report.ip_analysis.total_unique_origins == 0
        assert report.recommendations == []
        assert report.alerts == []
        assert alert_sink.sent == []
    
    def test_period(self, analyzer, clock):
        report = analyzer.analyze(hours=6)
        assert report.period.hours == 6
        assert report.period.end_time - report.period.start_time == timedelta(hours=6)


class TestFailedLogins:
    """Test the failed login section."""
    
    def test_counts(self, analyzer, attempts, clock):
        add_failures(attempts, clock, 4, identity="alice@example.com")
        add_failures(attempts, clock, 2, identity="bob@example.com", origin="192.0.2.1")
        attempts.add(LoginAttempt(
            identity="alice@example.com", origin="198.51.100.7",
            succeeded=True, occurred_at=clock.now(),
        ))
        
        section = analyzer.analyze().failed_logins
        assert section.total == 6
        assert section.unique_identities == 2
        assert section.unique_origins == 2
        assert section.top_targeted_identities == {"alice@example.com": 4, "bob@example.com": 2}
    
    def test_peak_hour_is_busiest(self, analyzer, attempts, clock):
        add_failures(attempts, clock, 2, ago=timedelta(hours=3))
        add_failures(attempts, clock, 5, ago=timedelta(hours=1))
        
        section = analyzer.analyze().failed_logins
        assert section.peak_hour == "2026-01-15 11:00"
        assert section.hourly_distribution == {"2026-01-15 09:00": 2, "2026-01-15 11:00": 5}
    
    def test_attempts_outside_window_ignored(self, analyzer, attempts, clock):
        add_failures(attempts, clock, 3, ago=timedelta(hours=25))
        assert analyzer.analyze().failed_logins.total == 0
        assert analyzer.analyze(hours=48).failed_logins.total == 3


class TestViolations:
    """Test the violation and rate limit sections."""
    
    def test_rate_limit_sources(self, analyzer, events, clock):
        add_events(events, clock, 6, "rate_limit_violation", severity=Severity.ERROR)
        add_events(
            events, clock, 2, "security_violation", origin="192.0.2.1",
            severity=Severity.ERROR, context={"violation_type": "rate_limit_exceeded"},
        )
        add_events(
            events, clock, 1, "security_violation", origin="192.0.2.1",
            severity=Severity.ERROR, context={"violation_type": "2fa_lockout"},
        )
        
        report = analyzer.analyze()
        assert report.rate_limit_violations.total == 8
        assert report.rate_limit_violations.repeat_offenders == {"203.0.113.9": 6}
        assert report.security_violations.total == 9
        assert report.security_violations.by_type == {
            "rate_limit_violation": 6, "rate_limit_exceeded": 2, "2fa_lockout": 1,
        }
    
    def test_critical_violation_alerts(self, analyzer, events, alert_sink, clock):
        add_events(events, clock, 1, "security_violation", severity=Severity.CRITICAL,
                   context={"violation_type": "account_takeover"})
        
        report = analyzer.analyze()
        assert report.security_violations.critical_count == 1
        assert "CRITICAL_SECURITY_VIOLATIONS" in report.alerts
        assert any(p["action"] == "security_analysis_alerts" for p in alert_sink.sent)


class TestRecommendationsAndAlerts:
    """Test the thresholds that drive recommendations and alerts."""
    
    def test_attack_scenario(self, analyzer, attempts, events, alert_sink, clock):
        add_failures(attempts, clock, 150)
        add_events(events, clock, 60, "suspicious_activity",
                   context={"activity_type": "rapid_requests"})
        
        report = analyzer.analyze()
        types = report.recommendation_types()
        
        assert "high_failed_logins" in types
        assert "investigate_suspicious" in types
        assert types.count("block_ip") == 2
        assert "HIGH_FAILED_LOGINS" in report.alerts
        assert "HIGH_SUSPICIOUS_ACTIVITY" in report.alerts
        assert report.suspicious_activities.by_type == {"rapid_requests": 60}
        
        payload = alert_sink.sent[-1]
        assert payload["alerts"] == report.alerts
        assert payload["analysis_summary"]["failed_logins"] == 150
    
    def test_alert_threshold(self, analyzer, attempts, clock):
        add_failures(attempts, clock, 11)
        assert analyzer.analyze().alerts == ["HIGH_FAILED_LOGINS"]
        assert analyzer.analyze(alert_threshold=20).alerts == []
    
    def test_many_high_risk_origins(self, analyzer, attempts, clock):
        for i in range(6):
            add_failures(attempts, clock, 30, origin=f"192.0.2.{i}")
        
        report = analyzer.analyze(alert_threshold=1000)
        assert report.ip_analysis.high_risk_count == 6
        assert report.alerts == ["MULTIPLE_HIGH_RISK_IPS"]
        # A score of exactly 80 does not trigger a block recommendation
        assert "block_ip" not in report.recommendation_types()
    
    def test_high_risk_list_is_capped(self, analyzer, attempts, clock):
        for i in range(12):
            add_failures(attempts, clock, 30, origin=f"192.0.2.{i}")
        
        origins = analyzer.analyze(alert_threshold=1000).ip_analysis
        assert origins.high_risk_count == 12
        assert len(origins.high_risk_origins) == 10
    
    def test_bot_protection(self, analyzer, attempts, clock):
        add_failures(attempts, clock, 25, user_agent="python-requests/2.31.0",
                     identity="bob@example.com", origin="192.0.2.1")
        
        report = analyzer.analyze(alert_threshold=1000)
        assert report.user_agent_analysis.bot_activity_count == 25
        assert report.user_agent_analysis.suspicious_agents == {"python-requests/2.31.0": 25}
        assert "bot_protection" in report.recommendation_types()
    
    def test_browser_agents_are_not_bots(self, analyzer, attempts, clock):
        add_failures(attempts, clock, 25)
        assert analyzer.analyze().user_agent_analysis.bot_activity_count == 0
