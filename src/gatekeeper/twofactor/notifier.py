"""Second-factor code delivery."""

import logging
from abc import ABC, abstractmethod
from enum import Enum

from gatekeeper.core.types import Actor, actor_id

logger = logging.getLogger(__name__)


class DeliveryMethod(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class Notifier(ABC):
    """Delivers a one-time code to its subject.
    
    Implementations raise DeliveryError when the code could not be sent.
    """
    
    @abstractmethod
    def send(self, actor: Actor, code: str, method: DeliveryMethod) -> None:
        pass


class LoggingNotifier(Notifier):
    """Records the dispatch in the log. The code itself is never logged."""
    
    def send(self, actor: Actor, code: str, method: DeliveryMethod) -> None:
        recipient = getattr(actor, "email", None) or actor_id(actor)
        logger.info(f"2FA code dispatched via {method.value} to {recipient}")
