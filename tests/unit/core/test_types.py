"""Tests for actor variants and severities."""

import pytest

from gatekeeper.core.types import (
    ANONYMOUS,
    ActorType,
    CentralActor,
    Severity,
    TenantActor,
    actor_id,
    actor_role,
    actor_tenant,
    subject_key,
)


class TestSeverity:
    """Tests for Severity enum."""
    
    @pytest.mark.parametrize("severity,alerting", [
        (Severity.INFO, False),
        (Severity.NOTICE, False),
        (Severity.WARNING, False),
        (Severity.ERROR, False),
        (Severity.CRITICAL, True),
        (Severity.EMERGENCY, True),
    ])
    def test_is_alerting(self, severity, alerting):
        assert severity.is_alerting is alerting
    
    def test_from_string(self):
        assert Severity("warning") == Severity.WARNING


class TestActors:
    """Tests for the actor helpers."""
    
    def test_subject_keys(self):
        assert subject_key(CentralActor(id="7")) == "central:7"
        assert subject_key(TenantActor(id="7", tenant_id="acme")) == "tenant:acme:7"
    
    def test_same_id_different_scope(self):
        """Central and tenant users with one id never share state."""
        assert subject_key(CentralActor(id="7")) != subject_key(TenantActor(id="7", tenant_id="acme"))
        assert (
            subject_key(TenantActor(id="7", tenant_id="acme"))
            != subject_key(TenantActor(id="7", tenant_id="globex"))
        )
    
    def test_anonymous_has_no_subject(self):
        with pytest.raises(TypeError):
            subject_key(ANONYMOUS)
    
    def test_not_an_actor(self):
        with pytest.raises(TypeError):
            actor_id("7")
    
    def test_accessors(self):
        tenant = TenantActor(id="7", tenant_id="acme", role="admin")
        assert actor_id(tenant) == "7"
        assert actor_tenant(tenant) == "acme"
        assert actor_role(tenant) == "admin"
        assert tenant.actor_type == ActorType.TENANT
        
        assert actor_id(ANONYMOUS) is None
        assert actor_tenant(CentralActor(id="1")) is None
        assert actor_role(ANONYMOUS) is None
        assert ANONYMOUS.actor_type == ActorType.ANONYMOUS
    
    def test_actors_are_immutable(self):
        actor = CentralActor(id="7")
        with pytest.raises(AttributeError):
            actor.role = "admin"
