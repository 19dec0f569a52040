"""Custom exceptions for Gatekeeper.

Provides a hierarchy of exceptions for different error types.
All Gatekeeper exceptions inherit from GatekeeperException.

Policy denials (lockout active, rate limit exceeded, 2FA locked) are NOT
exceptions; they are returned as typed results. Exceptions are reserved for
invalid input, infrastructure failures and delivery failures.
"""

from typing import Any, Dict, Optional


class GatekeeperException(Exception):
    """Base exception for all Gatekeeper errors.
    
    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """
    
    def __init__(
        self,
        message: str,
        code: str = "GATEKEEPER_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(GatekeeperException):
    """Raised when configuration is invalid or missing."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class ValidationError(GatekeeperException):
    """Raised when input validation fails (malformed identity, missing code)."""
    
    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class StoreUnavailableError(GatekeeperException):
    """Raised when the counter/record store cannot be reached in bounded time.
    
    Never interpreted as "allowed" or "denied" by the core; the caller's
    fail-open / fail-closed policy decides.
    """
    
    def __init__(
        self,
        message: str,
        backend: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["backend"] = backend
        super().__init__(message, code="STORE_UNAVAILABLE", details=details)


class DeliveryError(GatekeeperException):
    """Raised by a notifier when a second-factor code could not be sent."""
    
    def __init__(
        self,
        message: str,
        method: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["method"] = method
        super().__init__(message, code="DELIVERY_ERROR", details=details)


class AuditError(GatekeeperException):
    """Raised when a security event cannot be persisted."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="AUDIT_ERROR", details=details)


class AuditLogIntegrityError(AuditError):
    """Raised when the security event hash chain does not verify."""
    pass
