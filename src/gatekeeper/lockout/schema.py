"""Login attempt record."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_identity(identity: str) -> str:
    """Identities compare case-insensitively and without surrounding space."""
    return identity.strip().lower()


class LoginAttempt(BaseModel):
    """One authentication attempt.
    
    Immutable. Created once per attempt, never mutated, purged after the
    retention horizon.
    """
    model_config = ConfigDict(frozen=True)
    
    identity: str = Field(
        ...,
        min_length=1,
        max_length=320,
        description="Claimed principal, e.g. the email supplied at login"
    )
    origin: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Network address the attempt came from"
    )
    user_agent: str = Field(
        default="",
        max_length=1024,
        description="Client user agent"
    )
    succeeded: bool = Field(
        ...,
        description="Whether the credentials were accepted"
    )
    occurred_at: datetime = Field(
        ...,
        description="When the attempt happened (UTC)"
    )
    subject_id: Optional[str] = Field(
        default=None,
        description="Authenticated subject, set only on success"
    )
    
    @field_validator("identity")
    @classmethod
    def _normalize_identity(cls, value: str) -> str:
        value = normalize_identity(value)
        if not value:
            raise ValueError("identity must not be blank")
        return value
    
    @field_validator("origin")
    @classmethod
    def _strip_origin(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("origin must not be blank")
        return value
    
    @field_validator("subject_id")
    @classmethod
    def _subject_only_on_success(cls, value: Optional[str], info) -> Optional[str]:
        if value is not None and info.data.get("succeeded") is False:
            raise ValueError("subject_id is only recorded for successful attempts")
        return value
