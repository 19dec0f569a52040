"""Centralized constants for Gatekeeper defaults.

Runtime values come from SecurityPolicy (config/security_policy.yaml);
these are the fallbacks used when no policy file is present.
"""


# ===== LOGIN LOCKOUT =====
class LockoutConstants:
    MAX_ATTEMPTS = 5
    LOCKOUT_MINUTES = 15
    RETENTION_DAYS = 30
    
    # Thresholds for the "multiple failures" warning
    IDENTITY_WARNING_FAILURES = 3
    ORIGIN_WARNING_FAILURES = 5


# ===== RATE LIMITING =====
class RateLimitConstants:
    VIOLATION_TTL_SECONDS = 86400  # 24 hours
    
    AUTH_ORIGIN_MAX = 10
    AUTH_IDENTITY_MAX = 5
    AUTH_WINDOW_SECONDS = 3600
    
    API_AUTHENTICATED_MAX = 1000
    API_ANONYMOUS_MAX = 100
    API_WINDOW_SECONDS = 3600
    
    RAPID_REQUEST_MAX = 50
    RAPID_REQUEST_WINDOW_SECONDS = 300
    
    MIN_USER_AGENT_LENGTH = 20


# ===== TWO-FACTOR =====
class TwoFactorConstants:
    CODE_LENGTH = 6
    CODE_EXPIRY_MINUTES = 5
    MAX_ATTEMPTS = 3
    LOCKOUT_MINUTES = 15
    # Expired challenges stay readable this long so verify() can report EXPIRED
    EXPIRED_RETENTION_SECONDS = 300


# ===== AUDIT =====
class AuditConstants:
    HASH_ALGORITHM = "sha256"
    DEFAULT_TRAIL_DAYS = 30
    DEFAULT_EVENT_HOURS = 24


# ===== ANALYSIS =====
class AnalysisConstants:
    DEFAULT_WINDOW_HOURS = 24
    DEFAULT_ALERT_THRESHOLD = 10
    
    # Risk scoring weights
    FAILED_LOGIN_WEIGHT = 2
    SECURITY_VIOLATION_WEIGHT = 5
    SUSPICIOUS_ACTIVITY_WEIGHT = 10
    HIGH_FREQUENCY_EVENTS = 20
    HIGH_FREQUENCY_BONUS = 20
    MEDIUM_FREQUENCY_EVENTS = 10
    MEDIUM_FREQUENCY_BONUS = 10
    MAX_RISK_SCORE = 100
    HIGH_RISK_SCORE = 50
    BLOCK_RISK_SCORE = 80
    
    # Recommendation triggers
    FAILED_LOGIN_RECOMMENDATION = 100
    SUSPICIOUS_RECOMMENDATION = 50
    BOT_ACTIVITY_RECOMMENDATION = 20
    MAX_HIGH_RISK_ORIGINS = 5
    REPEAT_OFFENDER_VIOLATIONS = 5
    TOP_N = 10
