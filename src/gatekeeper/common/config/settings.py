"""Configuration management - Centralized configuration for Gatekeeper.

Provides environment-aware configuration with sensible defaults.
All configuration is loaded from environment variables with fallbacks.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from gatekeeper.common.exceptions import ConfigurationError


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StoreBackend(str, Enum):
    """Counter/blob store backends."""
    MEMORY = "memory"
    DYNAMODB = "dynamodb"


class StoreFailureMode(str, Enum):
    """What the inbound service does when the store is unreachable."""
    CLOSED = "closed"  # deny
    OPEN = "open"      # allow


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # settings.py -> config -> common -> gatekeeper -> src -> project_root
    current = Path(__file__).resolve()
    return current.parent.parent.parent.parent.parent


@dataclass
class Config:
    """Central configuration object for Gatekeeper.
    
    All settings can be overridden via environment variables prefixed with
    GATEKEEPER_.
    
    Example:
        GATEKEEPER_ENVIRONMENT=production
        GATEKEEPER_STORE_BACKEND=dynamodb
        GATEKEEPER_DYNAMODB_TABLE=gatekeeper-counters
        GATEKEEPER_STORE_FAILURE_MODE=closed
    """
    
    # Core settings
    environment: Environment = field(
        default_factory=lambda: Environment(
            os.getenv("GATEKEEPER_ENVIRONMENT", "development")
        )
    )
    debug: bool = field(
        default_factory=lambda: _env_flag("GATEKEEPER_DEBUG", "false")
    )
    log_level: LogLevel = field(
        default_factory=lambda: LogLevel(os.getenv("GATEKEEPER_LOG_LEVEL", "INFO"))
    )
    
    # Paths
    project_root: Path = field(default_factory=_get_project_root)
    data_dir: Path = field(
        default_factory=lambda: Path(os.getenv("GATEKEEPER_DATA_DIR", "./data"))
    )
    policy_file: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["GATEKEEPER_POLICY_FILE"])
            if os.getenv("GATEKEEPER_POLICY_FILE") else None
        )
    )
    
    # Counter store
    store_backend: StoreBackend = field(
        default_factory=lambda: StoreBackend(
            os.getenv("GATEKEEPER_STORE_BACKEND", "memory")
        )
    )
    dynamodb_table: Optional[str] = field(
        default_factory=lambda: os.getenv("GATEKEEPER_DYNAMODB_TABLE")
    )
    aws_region: str = field(
        default_factory=lambda: os.getenv("AWS_DEFAULT_REGION", "us-east-1")
    )
    store_failure_mode: StoreFailureMode = field(
        default_factory=lambda: StoreFailureMode(
            os.getenv("GATEKEEPER_STORE_FAILURE_MODE", "closed")
        )
    )
    
    # Behaviour toggles
    persist_anonymous_events: bool = field(
        default_factory=lambda: _env_flag("GATEKEEPER_PERSIST_ANONYMOUS_EVENTS", "false")
    )
    recheck_lockout_after_verify: bool = field(
        default_factory=lambda: _env_flag("GATEKEEPER_RECHECK_LOCKOUT", "true")
    )
    
    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.store_backend == StoreBackend.DYNAMODB and not self.dynamodb_table:
            raise ConfigurationError(
                "GATEKEEPER_DYNAMODB_TABLE must be set when using the DynamoDB store",
                details={"store_backend": self.store_backend.value},
            )
        
        if self.environment == Environment.PRODUCTION and self.debug:
            import warnings
            warnings.warn(
                "Debug mode is enabled in production environment",
                RuntimeWarning,
                stacklevel=2
            )
    
    @property
    def attempts_dir(self) -> Path:
        """Directory holding login attempt JSONL files."""
        return self.data_dir / "login_attempts"
    
    @property
    def events_dir(self) -> Path:
        """Directory holding security event JSONL files."""
        return self.data_dir / "security_events"
    
    @property
    def config_dir(self) -> Path:
        """Get the config directory path."""
        return self.project_root / "config"
    
    @property
    def resolved_policy_file(self) -> Path:
        """Policy file from the environment, else the bundled default."""
        return self.policy_file or self.config_dir / "security_policy.yaml"
    
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION
    
    @property
    def fails_open(self) -> bool:
        return self.store_failure_mode == StoreFailureMode.OPEN


# Singleton instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.
    
    Returns:
        Config: The global configuration singleton.
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
