"""Security policy - thresholds and limit tables loaded from YAML.

This is the in-memory representation of config/security_policy.yaml.
Every section has defaults matching the built-in constants, so a partial
file only needs to name what it overrides.
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import pydantic
import yaml
from pydantic import BaseModel, Field, model_validator

from gatekeeper.common.constants import (
    AnalysisConstants,
    LockoutConstants,
    RateLimitConstants,
    TwoFactorConstants,
)
from gatekeeper.common.exceptions import ConfigurationError


class LockoutRules(BaseModel):
    max_attempts: int = Field(default=LockoutConstants.MAX_ATTEMPTS, ge=1)
    lockout_minutes: int = Field(default=LockoutConstants.LOCKOUT_MINUTES, ge=1)
    retention_days: int = Field(default=LockoutConstants.RETENTION_DAYS, ge=1)
    identity_warning_failures: int = Field(
        default=LockoutConstants.IDENTITY_WARNING_FAILURES, ge=1
    )
    origin_warning_failures: int = Field(
        default=LockoutConstants.ORIGIN_WARNING_FAILURES, ge=1
    )


class EscalationTier(BaseModel):
    """One (ceiling, window) pair selected by prior-violation count."""
    name: str
    min_violations: int = Field(ge=0)
    ceiling: int = Field(ge=1)
    window_seconds: int = Field(ge=1)


def _default_tiers() -> List[EscalationTier]:
    return [
        EscalationTier(name="normal", min_violations=0, ceiling=1000, window_seconds=3600),
        EscalationTier(name="light", min_violations=1, ceiling=200, window_seconds=900),
        EscalationTier(name="moderate", min_violations=3, ceiling=50, window_seconds=1800),
        EscalationTier(name="severe", min_violations=5, ceiling=10, window_seconds=3600),
    ]


class ProgressiveRules(BaseModel):
    violation_ttl_seconds: int = Field(
        default=RateLimitConstants.VIOLATION_TTL_SECONDS, ge=1
    )
    tiers: List[EscalationTier] = Field(default_factory=_default_tiers)
    
    @model_validator(mode="after")
    def _check_tiers(self) -> "ProgressiveRules":
        thresholds = [tier.min_violations for tier in self.tiers]
        if not thresholds or thresholds[0] != 0:
            raise ValueError("the first escalation tier must start at 0 violations")
        if thresholds != sorted(set(thresholds)):
            raise ValueError("escalation tiers must have strictly increasing min_violations")
        return self


class AuthLimitRules(BaseModel):
    origin_max: int = Field(default=RateLimitConstants.AUTH_ORIGIN_MAX, ge=1)
    identity_max: int = Field(default=RateLimitConstants.AUTH_IDENTITY_MAX, ge=1)
    window_seconds: int = Field(default=RateLimitConstants.AUTH_WINDOW_SECONDS, ge=1)


class ApiLimitRules(BaseModel):
    authenticated_max: int = Field(default=RateLimitConstants.API_AUTHENTICATED_MAX, ge=1)
    anonymous_max: int = Field(default=RateLimitConstants.API_ANONYMOUS_MAX, ge=1)
    window_seconds: int = Field(default=RateLimitConstants.API_WINDOW_SECONDS, ge=1)


class OperationLimit(BaseModel):
    attempts: int = Field(ge=1)
    window_minutes: int = Field(ge=1)


def _default_operation_limits() -> Dict[str, OperationLimit]:
    table = {
        "delete_user": (5, 60),
        "change_role": (10, 60),
        "export_data": (3, 60),
        "bulk_operation": (2, 60),
        "password_reset": (3, 15),
        "2fa_verification": (5, 15),
        "admin_action": (20, 60),
    }
    return {
        name: OperationLimit(attempts=attempts, window_minutes=window)
        for name, (attempts, window) in table.items()
    }


class SensitiveOperationRules(BaseModel):
    operations: Dict[str, OperationLimit] = Field(default_factory=_default_operation_limits)
    default: OperationLimit = Field(
        default_factory=lambda: OperationLimit(attempts=5, window_minutes=60)
    )
    
    def limit_for(self, operation: str) -> OperationLimit:
        return self.operations.get(operation, self.default)


class SuspiciousActivityRules(BaseModel):
    rapid_request_max: int = Field(default=RateLimitConstants.RAPID_REQUEST_MAX, ge=1)
    rapid_window_seconds: int = Field(
        default=RateLimitConstants.RAPID_REQUEST_WINDOW_SECONDS, ge=1
    )
    min_user_agent_length: int = Field(
        default=RateLimitConstants.MIN_USER_AGENT_LENGTH, ge=0
    )
    bot_patterns: List[str] = Field(
        default_factory=lambda: [
            "bot", "crawler", "spider", "scraper", "curl", "wget", "python", "postman",
        ]
    )
    generic_markers: List[str] = Field(
        default_factory=lambda: ["test", "unknown", "generic"]
    )


class TwoFactorRules(BaseModel):
    code_length: int = Field(default=TwoFactorConstants.CODE_LENGTH, ge=4, le=12)
    code_expiry_minutes: int = Field(default=TwoFactorConstants.CODE_EXPIRY_MINUTES, ge=1)
    max_attempts: int = Field(default=TwoFactorConstants.MAX_ATTEMPTS, ge=1)
    lockout_minutes: int = Field(default=TwoFactorConstants.LOCKOUT_MINUTES, ge=1)
    central_roles: List[str] = Field(default_factory=lambda: ["admin", "super_admin"])
    tenant_roles: List[str] = Field(default_factory=lambda: ["admin"])
    sensitive_actions: List[str] = Field(
        default_factory=lambda: [
            "delete_user",
            "change_user_role",
            "access_admin_panel",
            "export_data",
            "change_security_settings",
        ]
    )


class AnalysisRules(BaseModel):
    window_hours: int = Field(default=AnalysisConstants.DEFAULT_WINDOW_HOURS, ge=1)
    alert_threshold: int = Field(default=AnalysisConstants.DEFAULT_ALERT_THRESHOLD, ge=0)
    bot_patterns: List[str] = Field(
        default_factory=lambda: ["bot", "crawler", "spider", "curl", "wget", "python"]
    )


class SecurityPolicy(BaseModel):
    """Parsed security policy."""
    version: str = "1.0.0"
    lockout: LockoutRules = Field(default_factory=LockoutRules)
    progressive: ProgressiveRules = Field(default_factory=ProgressiveRules)
    auth_limits: AuthLimitRules = Field(default_factory=AuthLimitRules)
    api_limits: ApiLimitRules = Field(default_factory=ApiLimitRules)
    sensitive_operations: SensitiveOperationRules = Field(
        default_factory=SensitiveOperationRules
    )
    suspicious_activity: SuspiciousActivityRules = Field(
        default_factory=SuspiciousActivityRules
    )
    two_factor: TwoFactorRules = Field(default_factory=TwoFactorRules)
    analysis: AnalysisRules = Field(default_factory=AnalysisRules)
    
    @classmethod
    def default(cls) -> "SecurityPolicy":
        return cls()


def load_policy(policy_file: Optional[Union[str, Path]] = None) -> SecurityPolicy:
    """Load and validate the security policy.
    
    Args:
        policy_file: Path to a YAML policy file. Built-in defaults are
            returned when not provided.
    
    Returns:
        SecurityPolicy
    
    Raises:
        FileNotFoundError: If an explicit policy file does not exist.
        ConfigurationError: If the file is not valid YAML or fails validation.
    """
    if policy_file is None:
        return SecurityPolicy.default()
    
    path = Path(policy_file)
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found: {path}")
    
    try:
        with open(path, "r") as f:
            raw_config = yaml.safe_load(f) or {}
        return SecurityPolicy.model_validate(raw_config)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Policy file is not valid YAML: {path}", details={"error": str(e)}
        ) from e
    except pydantic.ValidationError as e:
        raise ConfigurationError(
            f"Policy file failed validation: {path}",
            details={"errors": e.errors(include_url=False)},
        ) from e
