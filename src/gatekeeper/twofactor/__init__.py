"""Second-factor (2FA) challenge lifecycle."""

from gatekeeper.twofactor.notifier import DeliveryMethod, LoggingNotifier, Notifier
from gatekeeper.twofactor.schema import (
    ChallengeState,
    IssueResult,
    TwoFactorChallenge,
    VerifyResult,
)
from gatekeeper.twofactor.manager import TwoFactorChallengeManager

__all__ = [
    "DeliveryMethod",
    "LoggingNotifier",
    "Notifier",
    "ChallengeState",
    "IssueResult",
    "TwoFactorChallenge",
    "VerifyResult",
    "TwoFactorChallengeManager",
]
