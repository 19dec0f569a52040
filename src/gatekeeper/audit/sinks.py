"""Outbound collaborators of the audit pipeline.

LogSink receives every event; AlertSink receives the ones that must page.
Concrete paging/chat/ticketing integrations live outside this package;
the logging implementations here are the defaults.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from gatekeeper.common.logging import NOTICE, SECURITY_CHANNEL
from gatekeeper.core.types import Severity

logger = logging.getLogger(__name__)

SEVERITY_LEVELS: Dict[Severity, int] = {
    Severity.INFO: logging.INFO,
    Severity.NOTICE: NOTICE,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.CRITICAL: logging.CRITICAL,
    Severity.EMERGENCY: logging.CRITICAL,
}


class LogSink(ABC):
    """Structured log destination."""
    
    @abstractmethod
    def write(self, level: Severity, message: str, fields: Dict[str, Any]) -> None:
        pass


class StructuredLogSink(LogSink):
    """One JSON document per event on the security logging channel."""
    
    def __init__(self, channel: str = SECURITY_CHANNEL):
        self.logger = logging.getLogger(channel)
    
    def write(self, level: Severity, message: str, fields: Dict[str, Any]) -> None:
        document = {"message": message, "severity": level.value, **fields}
        self.logger.log(
            SEVERITY_LEVELS[level],
            json.dumps(document, sort_keys=True, default=str),
        )


class AlertSink(ABC):
    """Paging / chat / ticketing destination."""
    
    @abstractmethod
    def critical(self, payload: Dict[str, Any]) -> None:
        pass


class LoggingAlertSink(AlertSink):
    """Alerts written as CRITICAL records on the security channel.
    
    Also keeps the payloads it has seen, which is what tests and the CLI
    report use.
    """
    
    def __init__(self, channel: str = SECURITY_CHANNEL):
        self.logger = logging.getLogger(channel)
        self.sent: List[Dict[str, Any]] = []
    
    def critical(self, payload: Dict[str, Any]) -> None:
        self.sent.append(payload)
        self.logger.critical(
            "SECURITY ALERT: " + json.dumps(payload, sort_keys=True, default=str)
        )
