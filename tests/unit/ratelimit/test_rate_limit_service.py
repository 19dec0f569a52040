"""Unit tests for the named rate-limit policies."""

from unittest.mock import MagicMock

import pytest

from gatekeeper.audit.pipeline import AuditPipeline
from gatekeeper.audit.store import InMemorySecurityEventStore
from gatekeeper.common.exceptions import ValidationError
from gatekeeper.core.types import ANONYMOUS, CentralActor, TenantActor
from gatekeeper.ratelimit.limiter import RateLimiter
from gatekeeper.ratelimit.service import LimitKind, RateLimitService
from gatekeeper.store.memory import InMemoryKeyStore

IP = "203.0.113.4"
BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0"


@pytest.fixture
def events():
    return InMemorySecurityEventStore()


@pytest.fixture
def alert_sink():
    return MagicMock()


@pytest.fixture
def service(clock, events, alert_sink):
    pipeline = AuditPipeline(
        log_sink=MagicMock(),
        event_store=events,
        alert_sink=alert_sink,
        clock=clock,
        persist_anonymous_events=True,
    )
    return RateLimitService(RateLimiter(InMemoryKeyStore(clock)), pipeline, clock=clock)


class TestKeys:
    """Test key derivation."""
    
    def test_identity_key_is_case_insensitive(self):
        a = RateLimitService.auth_identity_key("Alice@Example.com", IP)
        b = RateLimitService.auth_identity_key("alice@example.com", IP)
        assert a == b
        assert a.startswith("auth:")
    
    def test_identity_key_is_scoped_to_origin(self):
        a = RateLimitService.auth_identity_key("alice@example.com", IP)
        b = RateLimitService.auth_identity_key("alice@example.com", "198.51.100.1")
        assert a != b
    
    def test_api_identifier(self):
        assert RateLimitService.api_identifier(ANONYMOUS, IP) == f"ip:{IP}"
        assert RateLimitService.api_identifier(CentralActor(id="9"), IP) == "user:central:9"
        assert (
            RateLimitService.api_identifier(TenantActor(id="9", tenant_id="acme"), IP)
            == "user:tenant:acme:9"
        )


class TestAuthLimits:
    """Test the per-origin and per-identity authentication limits."""
    
    def test_allowed_initially(self, service):
        decision = service.check_auth("alice@example.com", IP)
        assert decision.allowed
        assert decision.remaining == 5
    
    def test_check_is_read_only(self, service):
        for _ in range(20):
            service.check_auth("alice@example.com", IP)
        assert service.check_auth("alice@example.com", IP).allowed
    
    def test_identity_limit(self, service, events):
        for _ in range(5):
            service.record_failed_auth("alice@example.com", IP)
        
        decision = service.check_auth("alice@example.com", IP)
        assert not decision.allowed
        assert decision.reason == "identity_limit"
        assert decision.retry_after == 3600
        
        stored = events.query(service.clock.now(), service.clock.now(), actions=["security_violation"])
        assert stored[0].context["details"]["limit_type"] == "auth_email_limit"
    
    def test_origin_limit_checked_first(self, service):
        for i in range(10):
            service.record_failed_auth(f"user{i}@example.com", IP)
        
        decision = service.check_auth("user0@example.com", IP)
        assert not decision.allowed
        assert decision.reason == "ip_limit"
        assert service.check_auth("bob@example.com", "198.51.100.1").allowed
    
    def test_clear_resets_identity_only(self, service):
        for _ in range(5):
            service.record_failed_auth("alice@example.com", IP)
        service.clear_auth("alice@example.com", IP)
        
        assert service.check_auth("alice@example.com", IP).allowed
        assert service.limiter.attempts(service.auth_origin_key(IP)) == 5
    
    def test_window_expiry(self, service, clock):
        for _ in range(5):
            service.record_failed_auth("alice@example.com", IP)
        clock.advance(seconds=3600)
        assert service.check_auth("alice@example.com", IP).allowed


class TestApiLimits:
    """Test API call limits."""
    
    def test_anonymous_ceiling(self, service):
        for _ in range(100):
            assert service.check_api(f"ip:{IP}").allowed
        
        decision = service.check_api(f"ip:{IP}")
        assert not decision.allowed
        assert decision.limit == 100
        assert decision.remaining == 0
        assert decision.retry_after > 0
    
    def test_authenticated_ceiling(self, service):
        decision = service.check_api("user:central:1", authenticated=True)
        assert decision.limit == 1000
        assert decision.remaining == 999
    
    def test_reset_at(self, service, clock):
        decision = service.check_api(f"ip:{IP}")
        assert (decision.reset_at - clock.now()).total_seconds() == 3600
    
    def test_to_dict(self, service):
        payload = service.check_api(f"ip:{IP}").to_dict()
        assert payload["kind"] == "api"
        assert payload["allowed"] is True


class TestSensitiveOperations:
    """Test the per-operation table."""
    
    def test_export_data(self, service):
        for _ in range(3):
            assert service.check_sensitive_operation("export_data", "central:1").allowed
        
        decision = service.check_sensitive_operation("export_data", "central:1")
        assert not decision.allowed
        assert decision.retry_after == 3600
        assert decision.message == "Rate limit exceeded for operation: export_data"
    
    def test_password_reset_window(self, service, clock):
        for _ in range(4):
            service.check_sensitive_operation("password_reset", "central:1")
        clock.advance(minutes=15)
        assert service.check_sensitive_operation("password_reset", "central:1").allowed
    
    def test_unknown_operation_uses_default(self, service):
        decision = service.check_sensitive_operation("rotate_keys", "central:1")
        assert decision.limit == 5
    
    def test_operations_are_independent(self, service):
        for _ in range(4):
            service.check_sensitive_operation("export_data", "central:1")
        assert service.check_sensitive_operation("delete_user", "central:1").allowed


class TestDispatch:
    """Test check() routing."""
    
    def test_auth_requires_identity(self, service):
        with pytest.raises(ValidationError):
            service.check(LimitKind.AUTH, IP)
    
    def test_sensitive_requires_operation(self, service):
        with pytest.raises(ValidationError):
            service.check(LimitKind.SENSITIVE, "central:1")
    
    def test_progressive(self, service):
        decision = service.check("progressive", IP)
        assert decision.kind == LimitKind.PROGRESSIVE
        assert decision.limit == 1000
    
    def test_auth(self, service):
        decision = service.check(LimitKind.AUTH, IP, identity="alice@example.com")
        assert decision.allowed


class TestSuspiciousActivity:
    """Test rapid request and user agent heuristics."""
    
    @pytest.mark.parametrize("user_agent", [
        None,
        "",
        "curl/8.4.0",
        "python-requests/2.31.0",
        "Mozilla/5.0 (compatible; Googlebot/2.1)",
        "short agent",
        "Mozilla/5.0 generic browser build for testing",
    ])
    def test_unusual_user_agents(self, service, user_agent):
        assert service.is_unusual_user_agent(user_agent)
    
    def test_normal_browser(self, service):
        assert not service.is_unusual_user_agent(BROWSER_UA)
    
    def test_rapid_requests(self, service, alert_sink):
        for _ in range(50):
            assert not service.check_suspicious_activity(IP, BROWSER_UA).suspicious
        
        result = service.check_suspicious_activity(IP, BROWSER_UA)
        assert result.suspicious
        assert result.reason == "rapid_requests"
        assert result.action == "throttle"
        alert_sink.critical.assert_called_once()
    
    def test_unusual_agent_is_monitored(self, service, events):
        result = service.check_suspicious_activity(IP, "curl/8.4.0")
        assert result.suspicious
        assert result.action == "monitor"
        
        stored = events.query(service.clock.now(), service.clock.now())
        assert stored[0].action == "suspicious_activity"
        assert stored[0].context["activity_type"] == "unusual_user_agent"


class TestStatus:
    """Test the monitoring snapshot."""
    
    def test_status(self, service):
        service.record_failed_auth("alice@example.com", IP)
        service.check_api(f"ip:{IP}")
        
        status = service.status(IP)
        assert status["auth_ip"]["attempts"] == 1
        assert status["api"]["attempts"] == 1
        assert status["rapid"] == {"attempts": 0, "remaining_time": 0}
        assert set(status) == {"api", "auth_ip", "rapid", "progressive", "violations"}
