"""Security event audit pipeline."""

from gatekeeper.audit.schemas import ALWAYS_ALERT_ACTIONS, SecurityEvent
from gatekeeper.audit.store import (
    FileSecurityEventStore,
    HashChain,
    InMemorySecurityEventStore,
    SecurityEventStore,
)
from gatekeeper.audit.sinks import (
    AlertSink,
    LogSink,
    LoggingAlertSink,
    StructuredLogSink,
)
from gatekeeper.audit.pipeline import AuditPipeline

__all__ = [
    "ALWAYS_ALERT_ACTIONS",
    "SecurityEvent",
    "SecurityEventStore",
    "HashChain",
    "InMemorySecurityEventStore",
    "FileSecurityEventStore",
    "AlertSink",
    "LogSink",
    "LoggingAlertSink",
    "StructuredLogSink",
    "AuditPipeline",
]
