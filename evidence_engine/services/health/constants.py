"""Health scoring constants."""

from __future__ import annotations

FACTOR_SOURCE_DRIFT = "sourceDrift"
FACTOR_EVIDENCE_COVERAGE = "evidenceCoverage"
FACTOR_QA_PASS_RATE = "qaPassRate"
FACTOR_DELIVERY_FEEDBACK = "deliveryFeedback"
FACTOR_SOURCE_AGE = "sourceAge"

FACTORS = (
    FACTOR_SOURCE_DRIFT,
    FACTOR_EVIDENCE_COVERAGE,
    FACTOR_QA_PASS_RATE,
    FACTOR_DELIVERY_FEEDBACK,
    FACTOR_SOURCE_AGE,
)

# Workspace health_weights uses the same keys; missing keys fall back here.
DEFAULT_WEIGHTS: dict[str, float] = {
    FACTOR_SOURCE_DRIFT: 0.30,
    FACTOR_EVIDENCE_COVERAGE: 0.25,
    FACTOR_QA_PASS_RATE: 0.20,
    FACTOR_DELIVERY_FEEDBACK: 0.15,
    FACTOR_SOURCE_AGE: 0.10,
}

# Saturation points: the factor reaches 0 at these counts / ages.
DRIFT_SATURATION_DIFFS = 20
FEEDBACK_SATURATION_ITEMS = 5
AGE_FRESH_DAYS = 7
AGE_STALE_DAYS = 90

STATUS_HEALTHY = "healthy"
STATUS_STALE = "stale"
STATUS_AT_RISK = "at_risk"
STATUS_OUTDATED = "outdated"

# (minimum score, status), checked in order
STATUS_THRESHOLDS = (
    (80, STATUS_HEALTHY),
    (60, STATUS_STALE),
    (40, STATUS_AT_RISK),
)

# Higher is worse
STATUS_TIER_ORDER = {
    STATUS_HEALTHY: 0,
    STATUS_STALE: 1,
    STATUS_AT_RISK: 2,
    STATUS_OUTDATED: 3,
}
