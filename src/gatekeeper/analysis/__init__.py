"""Batch security analysis and risk scoring."""

from gatekeeper.analysis.scoring import RiskProfile, calculate_risk_score
from gatekeeper.analysis.report import Recommendation, Report
from gatekeeper.analysis.analyzer import SecurityAnalyzer

__all__ = [
    "RiskProfile",
    "calculate_risk_score",
    "Recommendation",
    "Report",
    "SecurityAnalyzer",
]
