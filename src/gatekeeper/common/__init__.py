"""Common utilities - logging, config, exceptions."""

from gatekeeper.common.logging import get_logger
from gatekeeper.common.config import Config, get_config, reset_config
from gatekeeper.common.exceptions import (
    GatekeeperException,
    ConfigurationError,
    ValidationError,
    StoreUnavailableError,
    DeliveryError,
    AuditError,
    AuditLogIntegrityError,
)

__all__ = [
    # Logging
    "get_logger",
    # Config
    "Config",
    "get_config",
    "reset_config",
    # Exceptions
    "GatekeeperException",
    "ConfigurationError",
    "ValidationError",
    "StoreUnavailableError",
    "DeliveryError",
    "AuditError",
    "AuditLogIntegrityError",
]
