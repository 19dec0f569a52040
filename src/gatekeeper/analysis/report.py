"""Security analysis report document.

Plain structured data; rendering (JSON, log entry, table) is up to the
consumer.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from gatekeeper.analysis.scoring import RiskProfile


class ReportPeriod(BaseModel):
    hours: int
    start_time: datetime
    end_time: datetime


class FailedLoginAnalysis(BaseModel):
    total: int = 0
    unique_identities: int = 0
    unique_origins: int = 0
    top_targeted_identities: Dict[str, int] = Field(default_factory=dict)
    top_attacking_origins: Dict[str, int] = Field(default_factory=dict)
    hourly_distribution: Dict[str, int] = Field(default_factory=dict)
    peak_hour: Optional[str] = None


class SuspiciousActivityAnalysis(BaseModel):
    total: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_origin: Dict[str, int] = Field(default_factory=dict)
    unique_origins: int = 0


class RateLimitAnalysis(BaseModel):
    total: int = 0
    by_origin: Dict[str, int] = Field(default_factory=dict)
    by_type: Dict[str, int] = Field(default_factory=dict)
    repeat_offenders: Dict[str, int] = Field(default_factory=dict)


class SecurityViolationAnalysis(BaseModel):
    total: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_severity: Dict[str, int] = Field(default_factory=dict)
    critical_count: int = 0


class OriginAnalysis(BaseModel):
    total_unique_origins: int = 0
    high_risk_count: int = 0
    high_risk_origins: List[RiskProfile] = Field(default_factory=list)
    top_active_origins: List[RiskProfile] = Field(default_factory=list)


class UserAgentAnalysis(BaseModel):
    total_unique_agents: int = 0
    top_agents: Dict[str, int] = Field(default_factory=dict)
    suspicious_agents: Dict[str, int] = Field(default_factory=dict)
    bot_activity_count: int = 0


class Recommendation(BaseModel):
    type: str = Field(..., description="Recommendation tag, e.g. block_ip")
    priority: str = Field(..., description="critical | high | medium")
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class Report(BaseModel):
    """Result of one SecurityAnalyzer run."""
    period: ReportPeriod
    failed_logins: FailedLoginAnalysis
    suspicious_activities: SuspiciousActivityAnalysis
    rate_limit_violations: RateLimitAnalysis
    security_violations: SecurityViolationAnalysis
    ip_analysis: OriginAnalysis
    user_agent_analysis: UserAgentAnalysis
    recommendations: List[Recommendation] = Field(default_factory=list)
    alerts: List[str] = Field(default_factory=list)
    
    def recommendation_types(self) -> List[str]:
        return [r.type for r in self.recommendations]
