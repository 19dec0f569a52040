"""Audit Pipeline - capture, persistence and alerting of security events.

Every recorded occurrence goes, in order, to:
1. the structured log sink (always),
2. the durable event store (actors only, unless anonymous persistence is on),
3. the alert sink (alerting severity, always-alert action, or forced).

Every step is best-effort: a failure is logged and never propagates to
the operation being audited.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from gatekeeper.audit.schemas import ALWAYS_ALERT_ACTIONS, SecurityEvent
from gatekeeper.audit.sinks import AlertSink, LogSink, LoggingAlertSink, StructuredLogSink
from gatekeeper.audit.store import SecurityEventStore
from gatekeeper.common.constants import AuditConstants
from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.core.types import (
    ANONYMOUS,
    Actor,
    Severity,
    actor_id,
    actor_role,
    actor_tenant,
)

logger = logging.getLogger(__name__)

AUTH_DESCRIPTIONS = {
    "login": "Login attempt {status}",
    "logout": "Logout {status}",
    "password_reset": "Password reset {status}",
    "2fa_verification": "2FA verification {status}",
    "token_refresh": "Token refresh {status}",
}

DEFAULT_EVENT_SEVERITIES = (
    Severity.WARNING,
    Severity.ERROR,
    Severity.CRITICAL,
    Severity.EMERGENCY,
)


class AuditPipeline:
    """Normalizes security occurrences into SecurityEvents and routes them."""
    
    def __init__(
        self,
        log_sink: Optional[LogSink] = None,
        event_store: Optional[SecurityEventStore] = None,
        alert_sink: Optional[AlertSink] = None,
        clock: Optional[Clock] = None,
        persist_anonymous_events: bool = False,
    ):
        self.log_sink = log_sink or StructuredLogSink()
        self.event_store = event_store
        self.alert_sink = alert_sink or LoggingAlertSink()
        self.clock = clock or SystemClock()
        self.persist_anonymous_events = persist_anonymous_events
    
    def record(
        self,
        actor: Actor,
        action: str,
        description: str = "",
        context: Optional[Dict[str, Any]] = None,
        severity: Severity = Severity.INFO,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        force_alert: bool = False,
    ) -> SecurityEvent:
        """Record one security event.
        
        Args:
            actor: Acting principal (ANONYMOUS if none)
            action: Action tag
            description: Human-readable summary
            context: Structured details
            severity: Event severity
            ip: Client network address
            user_agent: Client user agent
            force_alert: Page even if severity/action would not
        
        Returns:
            The event (with hash chain fields when it was persisted)
        """
        event = SecurityEvent(
            occurred_at=self.clock.now(),
            actor_id=actor_id(actor),
            actor_type=actor.actor_type,
            tenant_id=actor_tenant(actor),
            action=action,
            description=description,
            severity=severity,
            ip=ip,
            user_agent=user_agent,
            context=context or {},
        )
        
        fields = event.model_dump(mode="json", exclude={"previous_hash", "entry_hash"})
        role = actor_role(actor)
        if role is not None:
            fields["actor_role"] = role
        try:
            self.log_sink.write(severity, description or action, fields)
        except Exception as e:
            logger.error(f"Failed to write security event {event.event_id} ({action}) to log sink: {e}")
        
        if not event.is_anonymous or self.persist_anonymous_events:
            event = self._persist(event)
        else:
            logger.debug(f"Skipping durable storage for anonymous event: {action}")
        
        if force_alert or severity.is_alerting or action in ALWAYS_ALERT_ACTIONS:
            self.emit_alert(self._alert_payload(event))
        
        return event
    
    def _persist(self, event: SecurityEvent) -> SecurityEvent:
        if self.event_store is None:
            return event
        try:
            return self.event_store.append(event)
        except Exception as e:
            logger.error(f"Failed to store security event {event.event_id} ({event.action}): {e}")
            return event
    
    def _alert_payload(self, event: SecurityEvent) -> Dict[str, Any]:
        return {
            "event_id": event.event_id,
            "action": event.action,
            "description": event.description,
            "severity": event.severity.value,
            "actor_id": event.actor_id,
            "actor_type": event.actor_type.value,
            "tenant_id": event.tenant_id,
            "ip": event.ip,
            "context": event.context,
            "occurred_at": event.occurred_at.isoformat(),
        }
    
    def emit_alert(self, payload: Dict[str, Any]) -> None:
        """Send a payload to the alert sink; failures are logged."""
        try:
            self.alert_sink.critical(payload)
        except Exception as e:
            logger.error(f"Failed to dispatch security alert {payload.get('action')}: {e}")
    
    # ------------------------------------------------------------------
    # Convenience wrappers. All of them funnel through record().
    # ------------------------------------------------------------------
    
    def log_auth_event(
        self,
        action: str,
        success: bool,
        actor: Actor = ANONYMOUS,
        context: Optional[Dict[str, Any]] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SecurityEvent:
        status = "successful" if success else "failed"
        if action in AUTH_DESCRIPTIONS:
            description = AUTH_DESCRIPTIONS[action].format(status=status)
        else:
            description = f"Authentication action '{action}' {status}"
        details = dict(context or {})
        details.update({"success": success, "auth_action": action})
        
        return self.record(
            actor,
            action,
            description,
            context=details,
            severity=Severity.INFO if success else Severity.WARNING,
            ip=ip,
            user_agent=user_agent,
        )
    
    def log_authorization_event(
        self,
        actor: Actor,
        resource: str,
        permission: str,
        granted: bool,
        context: Optional[Dict[str, Any]] = None,
        ip: Optional[str] = None,
    ) -> SecurityEvent:
        details = dict(context or {})
        details.update({
            "resource": resource,
            "permission_action": permission,
            "granted": granted,
        })
        description = f"Access {'granted' if granted else 'denied'} to {permission} {resource}"
        
        return self.record(
            actor,
            "authorization_check",
            description,
            context=details,
            severity=Severity.INFO if granted else Severity.WARNING,
            ip=ip,
        )
    
    def log_suspicious_activity(
        self,
        activity_type: str,
        description: str,
        actor: Actor = ANONYMOUS,
        evidence: Optional[Dict[str, Any]] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SecurityEvent:
        """Suspicious activity always pages, whatever its severity."""
        context = {
            "activity_type": activity_type,
            "evidence": evidence or {},
            "detected_at": self.clock.now().isoformat(),
        }
        return self.record(
            actor,
            "suspicious_activity",
            description,
            context=context,
            severity=Severity.WARNING,
            ip=ip,
            user_agent=user_agent,
            force_alert=True,
        )
    
    def log_security_violation(
        self,
        violation_type: str,
        description: str,
        actor: Actor = ANONYMOUS,
        details: Optional[Dict[str, Any]] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SecurityEvent:
        return self.record(
            actor,
            "security_violation",
            description,
            context={"violation_type": violation_type, "details": details or {}},
            severity=Severity.ERROR,
            ip=ip,
            user_agent=user_agent,
        )
    
    def log_data_access(
        self,
        actor: Actor,
        data_type: str,
        operation: str,
        identifiers: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> SecurityEvent:
        details = dict(context or {})
        details.update({
            "data_type": data_type,
            "data_action": operation,
            "identifiers": identifiers or [],
        })
        return self.record(actor, "data_access", f"Data access: {operation} {data_type}", details)
    
    def log_config_change(
        self,
        actor: Actor,
        config_type: str,
        changes: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> SecurityEvent:
        details = dict(context or {})
        details.update({"config_type": config_type, "changes": changes})
        return self.record(
            actor,
            "config_change",
            f"Configuration changed: {config_type}",
            context=details,
            severity=Severity.NOTICE,
        )
    
    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    
    def actor_trail(
        self,
        actor: Actor,
        days: int = AuditConstants.DEFAULT_TRAIL_DAYS,
    ) -> List[SecurityEvent]:
        """Stored events of one actor, most recent first. Empty for anonymous."""
        subject = actor_id(actor)
        if subject is None or self.event_store is None:
            return []
        
        now = self.clock.now()
        tenant = actor_tenant(actor)
        events = [
            event for event in self.event_store.query(
                now - timedelta(days=days), now, actor_id=subject
            )
            if event.actor_type == actor.actor_type and event.tenant_id == tenant
        ]
        return sorted(events, key=lambda e: e.occurred_at, reverse=True)
    
    def security_events(
        self,
        hours: int = AuditConstants.DEFAULT_EVENT_HOURS,
        severities: Iterable[Severity] = DEFAULT_EVENT_SEVERITIES,
    ) -> List[SecurityEvent]:
        """Stored events at the given severities, most recent first."""
        if self.event_store is None:
            return []
        now = self.clock.now()
        events = self.event_store.query(
            now - timedelta(hours=hours), now, severities=severities
        )
        return sorted(events, key=lambda e: e.occurred_at, reverse=True)
