"""Security Analyzer - batch aggregation of attempts and events into a report.

Reads only. Overlapping runs are safe; one run at a time is enough.
"""

import logging
from collections import Counter, defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

from gatekeeper.analysis.report import (
    FailedLoginAnalysis,
    OriginAnalysis,
    RateLimitAnalysis,
    Recommendation,
    Report,
    ReportPeriod,
    SecurityViolationAnalysis,
    SuspiciousActivityAnalysis,
    UserAgentAnalysis,
)
from gatekeeper.analysis.scoring import (
    FAILED_LOGIN,
    SECURITY_VIOLATION,
    SUSPICIOUS_ACTIVITY,
    RiskProfile,
)
from gatekeeper.audit.pipeline import AuditPipeline
from gatekeeper.audit.schemas import SecurityEvent
from gatekeeper.audit.store import SecurityEventStore
from gatekeeper.common.config.policy import AnalysisRules
from gatekeeper.common.constants import AnalysisConstants as C
from gatekeeper.core.clock import Clock, SystemClock
from gatekeeper.lockout.repository import LoginAttemptRepository
from gatekeeper.lockout.schema import LoginAttempt

logger = logging.getLogger(__name__)

RATE_LIMIT_ACTION = "rate_limit_violation"
RATE_LIMIT_VIOLATION_TYPES = frozenset({"rate_limit_exceeded", "rate_limit_violation"})
VIOLATION_ACTIONS = frozenset({SECURITY_VIOLATION, RATE_LIMIT_ACTION})


def _top(counter: Counter, n: int = C.TOP_N) -> Dict[str, int]:
    return dict(counter.most_common(n))


def _violation_type(event: SecurityEvent) -> str:
    if event.action == RATE_LIMIT_ACTION:
        return RATE_LIMIT_ACTION
    return str(event.context.get("violation_type", "unknown"))


def _is_rate_limit_violation(event: SecurityEvent) -> bool:
    return event.action == RATE_LIMIT_ACTION or (
        event.action == SECURITY_VIOLATION
        and event.context.get("violation_type") in RATE_LIMIT_VIOLATION_TYPES
    )


class SecurityAnalyzer:
    """Builds a Report over a window of login attempts and security events."""
    
    def __init__(
        self,
        attempts: LoginAttemptRepository,
        events: SecurityEventStore,
        pipeline: Optional[AuditPipeline] = None,
        clock: Optional[Clock] = None,
        rules: Optional[AnalysisRules] = None,
    ):
        self.attempts = attempts
        self.events = events
        self.pipeline = pipeline
        self.clock = clock or SystemClock()
        self.rules = rules or AnalysisRules()
    
    def analyze(
        self,
        hours: Optional[int] = None,
        alert_threshold: Optional[int] = None,
    ) -> Report:
        """Analyze the last `hours` hours.
        
        Args:
            hours: Window length (default from policy, 24)
            alert_threshold: Failed-login alert threshold (default from policy, 10)
        
        Returns:
            Report with recommendations and triggered alert tags
        """
        hours = hours if hours is not None else self.rules.window_hours
        threshold = alert_threshold if alert_threshold is not None else self.rules.alert_threshold
        
        end = self.clock.now()
        start = end - timedelta(hours=hours)
        logger.info(f"Starting security analysis for the last {hours} hours")
        
        failed = [a for a in self.attempts.between(start, end) if not a.succeeded]
        events = list(self.events.between(start, end))
        suspicious = [e for e in events if e.action == SUSPICIOUS_ACTIVITY]
        violations = [e for e in events if e.action in VIOLATION_ACTIONS]
        
        report = Report(
            period=ReportPeriod(hours=hours, start_time=start, end_time=end),
            failed_logins=self._failed_logins(failed),
            suspicious_activities=self._suspicious(suspicious),
            rate_limit_violations=self._rate_limits(violations),
            security_violations=self._violations(violations),
            ip_analysis=self._origins(failed, violations, suspicious),
            user_agent_analysis=self._user_agents(failed, violations),
        )
        report.recommendations = self._recommendations(report)
        report.alerts = self._alerts(report, threshold)
        
        logger.info(
            f"Security analysis complete: {report.failed_logins.total} failed logins, "
            f"{report.suspicious_activities.total} suspicious activities, "
            f"{len(report.alerts)} alerts"
        )
        return report
    
    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------
    
    def _failed_logins(self, failed: List[LoginAttempt]) -> FailedLoginAnalysis:
        by_identity = Counter(a.identity for a in failed)
        by_origin = Counter(a.origin for a in failed)
        by_hour = Counter(a.occurred_at.strftime("%Y-%m-%d %H:00") for a in failed)
        
        peak_hour = None
        if by_hour:
            peak_hour = max(sorted(by_hour), key=lambda hour: by_hour[hour])
        
        return FailedLoginAnalysis(
            total=len(failed),
            unique_identities=len(by_identity),
            unique_origins=len(by_origin),
            top_targeted_identities=_top(by_identity),
            top_attacking_origins=_top(by_origin),
            hourly_distribution=dict(sorted(by_hour.items())),
            peak_hour=peak_hour,
        )
    
    def _suspicious(self, suspicious: List[SecurityEvent]) -> SuspiciousActivityAnalysis:
        by_type = Counter(
            str(e.context.get("activity_type", "unknown")) for e in suspicious
        )
        by_origin = Counter(e.ip or "unknown" for e in suspicious)
        return SuspiciousActivityAnalysis(
            total=len(suspicious),
            by_type=_top(by_type, len(by_type)),
            by_origin=_top(by_origin),
            unique_origins=len(by_origin),
        )
    
    def _rate_limits(self, violations: List[SecurityEvent]) -> RateLimitAnalysis:
        rate_limited = [e for e in violations if _is_rate_limit_violation(e)]
        by_origin = Counter(e.ip or "unknown" for e in rate_limited)
        by_type = Counter(_violation_type(e) for e in rate_limited)
        return RateLimitAnalysis(
            total=len(rate_limited),
            by_origin=_top(by_origin),
            by_type=_top(by_type, len(by_type)),
            repeat_offenders={
                origin: count for origin, count in by_origin.most_common()
                if count > C.REPEAT_OFFENDER_VIOLATIONS
            },
        )
    
    def _violations(self, violations: List[SecurityEvent]) -> SecurityViolationAnalysis:
        by_type = Counter(_violation_type(e) for e in violations)
        by_severity = Counter(e.severity.value for e in violations)
        return SecurityViolationAnalysis(
            total=len(violations),
            by_type=_top(by_type, len(by_type)),
            by_severity=_top(by_severity, len(by_severity)),
            critical_count=sum(1 for e in violations if e.severity.is_alerting),
        )
    
    def _origins(
        self,
        failed: List[LoginAttempt],
        violations: List[SecurityEvent],
        suspicious: List[SecurityEvent],
    ) -> OriginAnalysis:
        counts: Dict[str, Counter] = defaultdict(Counter)
        for attempt in failed:
            counts[attempt.origin][FAILED_LOGIN] += 1
        for event in violations:
            if event.ip:
                counts[event.ip][SECURITY_VIOLATION] += 1
        for event in suspicious:
            if event.ip:
                counts[event.ip][SUSPICIOUS_ACTIVITY] += 1
        
        profiles = [RiskProfile.from_counts(origin, c) for origin, c in counts.items()]
        high_risk = sorted(
            (p for p in profiles if p.flagged_as_high_risk),
            key=lambda p: (-p.risk_score, p.origin),
        )
        most_active = sorted(profiles, key=lambda p: (-p.total_events, p.origin))
        
        return OriginAnalysis(
            total_unique_origins=len(profiles),
            high_risk_count=len(high_risk),
            high_risk_origins=high_risk[:C.TOP_N],
            top_active_origins=most_active[:C.TOP_N],
        )
    
    def _user_agents(
        self,
        failed: List[LoginAttempt],
        violations: List[SecurityEvent],
    ) -> UserAgentAnalysis:
        agents = Counter(a.user_agent for a in failed if a.user_agent)
        agents.update(e.user_agent for e in violations if e.user_agent)
        
        patterns = [p.lower() for p in self.rules.bot_patterns]
        suspicious = {
            agent: count for agent, count in agents.most_common()
            if any(p in agent.lower() for p in patterns)
        }
        
        return UserAgentAnalysis(
            total_unique_agents=len(agents),
            top_agents=_top(agents),
            suspicious_agents=suspicious,
            bot_activity_count=sum(suspicious.values()),
        )
    
    # ------------------------------------------------------------------
    # Recommendations and alerts
    # ------------------------------------------------------------------
    
    def _recommendations(self, report: Report) -> List[Recommendation]:
        recommendations = []
        
        if report.failed_logins.total > C.FAILED_LOGIN_RECOMMENDATION:
            recommendations.append(Recommendation(
                type="high_failed_logins",
                priority="high",
                message=(
                    "High number of failed login attempts detected. "
                    "Consider implementing additional rate limiting."
                ),
                details={"count": report.failed_logins.total},
            ))
        
        for profile in report.ip_analysis.high_risk_origins:
            if profile.risk_score > C.BLOCK_RISK_SCORE:
                recommendations.append(Recommendation(
                    type="block_ip",
                    priority="critical",
                    message=(
                        f"Consider blocking IP address {profile.origin} "
                        f"due to high risk score ({profile.risk_score})"
                    ),
                    details={"ip_address": profile.origin, "risk_score": profile.risk_score},
                ))
        
        if report.suspicious_activities.total > C.SUSPICIOUS_RECOMMENDATION:
            recommendations.append(Recommendation(
                type="investigate_suspicious",
                priority="medium",
                message="High volume of suspicious activities. Manual investigation recommended.",
                details={"count": report.suspicious_activities.total},
            ))
        
        if report.user_agent_analysis.bot_activity_count > C.BOT_ACTIVITY_RECOMMENDATION:
            recommendations.append(Recommendation(
                type="bot_protection",
                priority="medium",
                message=(
                    "Significant bot activity detected. "
                    "Consider implementing CAPTCHA or bot protection."
                ),
                details={"bot_requests": report.user_agent_analysis.bot_activity_count},
            ))
        
        return recommendations
    
    def _alerts(self, report: Report, threshold: int) -> List[str]:
        alerts = []
        
        if report.failed_logins.total > threshold:
            alerts.append("HIGH_FAILED_LOGINS")
        if report.suspicious_activities.total > threshold / 2:
            alerts.append("HIGH_SUSPICIOUS_ACTIVITY")
        if report.security_violations.critical_count > 0:
            alerts.append("CRITICAL_SECURITY_VIOLATIONS")
        if report.ip_analysis.high_risk_count > C.MAX_HIGH_RISK_ORIGINS:
            alerts.append("MULTIPLE_HIGH_RISK_IPS")
        
        if alerts:
            logger.critical(f"Security alerts triggered: {', '.join(alerts)}")
            if self.pipeline is not None:
                self.pipeline.emit_alert({
                    "action": "security_analysis_alerts",
                    "alerts": alerts,
                    "analysis_summary": {
                        "failed_logins": report.failed_logins.total,
                        "suspicious_activities": report.suspicious_activities.total,
                        "security_violations": report.security_violations.total,
                        "high_risk_ips": report.ip_analysis.high_risk_count,
                    },
                })
        
        return alerts
