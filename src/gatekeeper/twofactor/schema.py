"""Two-factor challenge records and results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from gatekeeper.twofactor.notifier import DeliveryMethod


class ChallengeState(str, Enum):
    """Per-subject challenge lifecycle.
    
    NONE -> ISSUED -> VERIFIED | EXPIRED | LOCKED. VERIFIED and EXPIRED are
    reported by verify() and leave the subject back at NONE.
    """
    NONE = "none"
    ISSUED = "issued"
    VERIFIED = "verified"
    EXPIRED = "expired"
    LOCKED = "locked"


class TwoFactorChallenge(BaseModel):
    """The stored challenge. One per subject; a new issue replaces it."""
    challenge_id: str = Field(..., description="Random id scoping the attempt budget")
    code: str = Field(..., description="Fixed-length numeric secret")
    method: DeliveryMethod = Field(..., description="How the code was delivered")
    created_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssueResult:
    success: bool
    message: str
    delivered: bool = False
    method: Optional[DeliveryMethod] = None
    expires_at: Optional[datetime] = None
    lockout_remaining: Optional[int] = None
    code: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class VerifyResult:
    success: bool
    state: ChallengeState
    message: str
    remaining_attempts: Optional[int] = None
    lockout_remaining: Optional[int] = None
    
    @property
    def locked(self) -> bool:
        return self.state == ChallengeState.LOCKED
