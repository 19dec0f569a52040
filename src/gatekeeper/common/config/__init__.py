"""Configuration module - environment settings and security policy."""

from gatekeeper.common.config.settings import (
    Config,
    Environment,
    LogLevel,
    StoreBackend,
    StoreFailureMode,
    get_config,
    reset_config,
)
from gatekeeper.common.config.policy import (
    EscalationTier,
    SecurityPolicy,
    load_policy,
)

__all__ = [
    "Config",
    "Environment",
    "LogLevel",
    "StoreBackend",
    "StoreFailureMode",
    "get_config",
    "reset_config",
    "EscalationTier",
    "SecurityPolicy",
    "load_policy",
]
