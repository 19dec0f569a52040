"""Per-origin risk scoring.

A fixed, auditable formula rather than a learned model:

    score = 2 x failed_logins + 5 x security_violations + 10 x suspicious_activities
            + 20 if more than 20 events, else + 10 if more than 10 events

clamped to [0, 100]. An origin is high risk when its score exceeds 50.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field

from gatekeeper.common.constants import AnalysisConstants as C

FAILED_LOGIN = "login_failed"
SECURITY_VIOLATION = "security_violation"
SUSPICIOUS_ACTIVITY = "suspicious_activity"


def calculate_risk_score(
    failed_logins: int,
    security_violations: int,
    suspicious_activities: int,
    total_events: Optional[int] = None,
) -> int:
    """Risk score in [0, 100] for one origin."""
    failed_logins = max(0, failed_logins)
    security_violations = max(0, security_violations)
    suspicious_activities = max(0, suspicious_activities)
    if total_events is None:
        total_events = failed_logins + security_violations + suspicious_activities
    
    score = (
        failed_logins * C.FAILED_LOGIN_WEIGHT
        + security_violations * C.SECURITY_VIOLATION_WEIGHT
        + suspicious_activities * C.SUSPICIOUS_ACTIVITY_WEIGHT
    )
    
    if total_events > C.HIGH_FREQUENCY_EVENTS:
        score += C.HIGH_FREQUENCY_BONUS
    elif total_events > C.MEDIUM_FREQUENCY_EVENTS:
        score += C.MEDIUM_FREQUENCY_BONUS
    
    return max(0, min(score, C.MAX_RISK_SCORE))


class RiskProfile(BaseModel):
    """Derived summary of one origin's activity in an analysis window."""
    origin: str
    event_counts_by_type: Dict[str, int] = Field(default_factory=dict)
    total_events: int = Field(default=0, ge=0)
    risk_score: int = Field(default=0, ge=0, le=C.MAX_RISK_SCORE)
    flagged_as_high_risk: bool = False
    
    @classmethod
    def from_counts(cls, origin: str, counts: Dict[str, int]) -> "RiskProfile":
        total = sum(counts.values())
        score = calculate_risk_score(
            counts.get(FAILED_LOGIN, 0),
            counts.get(SECURITY_VIOLATION, 0),
            counts.get(SUSPICIOUS_ACTIVITY, 0),
            total,
        )
        return cls(
            origin=origin,
            event_counts_by_type=dict(counts),
            total_events=total,
            risk_score=score,
            flagged_as_high_risk=score > C.HIGH_RISK_SCORE,
        )
