"""Security event schema."""

from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from gatekeeper.core.types import ActorType, Severity


# Actions that page regardless of severity. Matched by exact membership.
ALWAYS_ALERT_ACTIONS: FrozenSet[str] = frozenset({
    "user_deleted",
    "role_escalation",
    "security_settings_changed",
    "data_export",
    "bulk_operation",
    "suspicious_activity",
    "brute_force_detected",
    "account_takeover_attempt",
})


class SecurityEvent(BaseModel):
    """A single append-only security event."""
    event_id: str = Field(
        default_factory=lambda: f"sev_{uuid4().hex[:12]}",
        description="Unique event identifier"
    )
    occurred_at: datetime = Field(
        ...,
        description="When the event happened (UTC)"
    )
    
    # Actor
    actor_id: Optional[str] = Field(
        default=None,
        description="Acting principal, absent for anonymous events"
    )
    actor_type: ActorType = Field(
        default=ActorType.ANONYMOUS,
        description="Actor variant"
    )
    tenant_id: Optional[str] = Field(
        default=None,
        description="Owning tenant for tenant users"
    )
    
    # What happened
    action: str = Field(
        ...,
        min_length=1,
        description="Machine-readable action tag, e.g. rate_limit_violation"
    )
    description: str = Field(
        default="",
        description="Human-readable summary"
    )
    severity: Severity = Field(
        default=Severity.INFO,
        description="Event severity"
    )
    ip: Optional[str] = Field(
        default=None,
        description="Client network address"
    )
    user_agent: Optional[str] = Field(
        default=None,
        description="Client user agent"
    )
    context: Dict[str, Any] = Field(
        default_factory=dict,
        description="Structured key/value details"
    )
    
    # Integrity
    previous_hash: Optional[str] = Field(
        default=None,
        description="Hash of previous event (for chain integrity)"
    )
    entry_hash: Optional[str] = Field(
        default=None,
        description="Hash of this event"
    )
    
    @property
    def is_anonymous(self) -> bool:
        return self.actor_type == ActorType.ANONYMOUS
    
    def to_jsonl(self) -> str:
        """Serialize to a single JSON line."""
        return self.model_dump_json()
    
    @classmethod
    def from_jsonl(cls, line: str) -> "SecurityEvent":
        """Deserialize from a JSON line."""
        return cls.model_validate_json(line)
