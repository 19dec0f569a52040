"""Core types and enums."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class Severity(str, Enum):
    """Closed set of security event severities, lowest first."""
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    EMERGENCY = "emergency"
    
    @property
    def is_alerting(self) -> bool:
        """Severities that always page."""
        return self in (Severity.CRITICAL, Severity.EMERGENCY)


class ActorType(str, Enum):
    """Discriminator for the actor variant."""
    CENTRAL = "central_user"
    TENANT = "tenant_user"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class CentralActor:
    """A platform-level (central) user."""
    id: str
    role: str = "user"
    email: Optional[str] = None
    
    @property
    def actor_type(self) -> ActorType:
        return ActorType.CENTRAL


@dataclass(frozen=True)
class TenantActor:
    """A user scoped to one tenant."""
    id: str
    tenant_id: str
    role: str = "user"
    email: Optional[str] = None
    
    @property
    def actor_type(self) -> ActorType:
        return ActorType.TENANT


@dataclass(frozen=True)
class AnonymousActor:
    """No authenticated principal."""
    
    @property
    def actor_type(self) -> ActorType:
        return ActorType.ANONYMOUS


Actor = Union[CentralActor, TenantActor, AnonymousActor]

ANONYMOUS = AnonymousActor()


def subject_key(actor: Actor) -> str:
    """Stable '<type>:<id>' key used to scope per-subject state.
    
    Raises:
        TypeError: For anonymous actors (they own no per-subject state) or
            for objects that are not an actor variant.
    """
    if isinstance(actor, CentralActor):
        return f"central:{actor.id}"
    if isinstance(actor, TenantActor):
        return f"tenant:{actor.tenant_id}:{actor.id}"
    if isinstance(actor, AnonymousActor):
        raise TypeError("anonymous actors have no subject key")
    raise TypeError(f"not an actor: {actor!r}")


def actor_id(actor: Actor) -> Optional[str]:
    if isinstance(actor, (CentralActor, TenantActor)):
        return actor.id
    if isinstance(actor, AnonymousActor):
        return None
    raise TypeError(f"not an actor: {actor!r}")


def actor_tenant(actor: Actor) -> Optional[str]:
    if isinstance(actor, TenantActor):
        return actor.tenant_id
    if isinstance(actor, (CentralActor, AnonymousActor)):
        return None
    raise TypeError(f"not an actor: {actor!r}")


def actor_role(actor: Actor) -> Optional[str]:
    if isinstance(actor, (CentralActor, TenantActor)):
        return actor.role
    if isinstance(actor, AnonymousActor):
        return None
    raise TypeError(f"not an actor: {actor!r}")
