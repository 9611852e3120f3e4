"""Health score computation. Pure functions; no DB access."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from evidence_engine.services.health.constants import (
    AGE_FRESH_DAYS,
    AGE_STALE_DAYS,
    DEFAULT_WEIGHTS,
    DRIFT_SATURATION_DIFFS,
    FACTOR_DELIVERY_FEEDBACK,
    FACTOR_EVIDENCE_COVERAGE,
    FACTOR_QA_PASS_RATE,
    FACTOR_SOURCE_AGE,
    FACTOR_SOURCE_DRIFT,
    FACTORS,
    FEEDBACK_SATURATION_ITEMS,
    STATUS_HEALTHY,
    STATUS_OUTDATED,
    STATUS_THRESHOLDS,
    STATUS_TIER_ORDER,
)


@dataclass
class HealthInputs:
    """Raw counts gathered for one pack version."""

    diff_count: int = 0
    ac_count: int = 0
    covered_ac_count: int = 0
    story_count: int = 0
    passing_story_count: int = 0
    unresolved_feedback_count: int = 0
    days_since_update: int = 0


@dataclass
class HealthResult:
    score: int
    status: str
    factors: dict[str, int]
    weights: dict[str, float]
    inputs: HealthInputs | None = None
    explain: dict[str, Any] = field(default_factory=dict)


def _linear_decay(count: int, saturation: int) -> int:
    if count <= 0:
        return 100
    if count >= saturation:
        return 0
    return round(100 - (count / saturation) * 100)


def normalise_source_drift(diff_count: int) -> int:
    return _linear_decay(diff_count, DRIFT_SATURATION_DIFFS)


def normalise_delivery_feedback(unresolved_count: int) -> int:
    return _linear_decay(unresolved_count, FEEDBACK_SATURATION_ITEMS)


def normalise_source_age(days_since_update: int) -> int:
    if days_since_update <= AGE_FRESH_DAYS:
        return 100
    if days_since_update >= AGE_STALE_DAYS:
        return 0
    span = AGE_STALE_DAYS - AGE_FRESH_DAYS
    return round(100 - ((days_since_update - AGE_FRESH_DAYS) / span) * 100)


def percentage(part: int, total: int) -> int:
    """part/total as a rounded percentage; 100 when total is 0."""
    if total <= 0:
        return 100
    return round(max(0, min(part, total)) / total * 100)


def score_to_status(score: int) -> str:
    for minimum, status in STATUS_THRESHOLDS:
        if score >= minimum:
            return status
    return STATUS_OUTDATED


def status_worsened(previous: str | None, current: str) -> bool:
    """True when current is a worse tier than previous. No previous: False."""
    if previous not in STATUS_TIER_ORDER:
        return False
    return STATUS_TIER_ORDER[current] > STATUS_TIER_ORDER[previous]


def resolve_weights(raw: Any) -> dict[str, float]:
    """Workspace weights with missing factors filled from DEFAULT_WEIGHTS.

    Anything that is not a mapping of factor name to finite, non-negative
    numbers with a positive total yields DEFAULT_WEIGHTS. Unknown keys are
    ignored.
    """
    if not isinstance(raw, dict):
        return dict(DEFAULT_WEIGHTS)
    weights = dict(DEFAULT_WEIGHTS)
    for name in FACTORS:
        if name not in raw:
            continue
        value = raw[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return dict(DEFAULT_WEIGHTS)
        if not math.isfinite(value) or value < 0:
            return dict(DEFAULT_WEIGHTS)
        weights[name] = float(value)
    if sum(weights.values()) <= 0:
        return dict(DEFAULT_WEIGHTS)
    return weights


def compute_factors(inputs: HealthInputs) -> dict[str, int]:
    return {
        FACTOR_SOURCE_DRIFT: normalise_source_drift(inputs.diff_count),
        FACTOR_EVIDENCE_COVERAGE: percentage(inputs.covered_ac_count, inputs.ac_count),
        FACTOR_QA_PASS_RATE: percentage(inputs.passing_story_count, inputs.story_count),
        FACTOR_DELIVERY_FEEDBACK: normalise_delivery_feedback(inputs.unresolved_feedback_count),
        FACTOR_SOURCE_AGE: normalise_source_age(inputs.days_since_update),
    }


def compute_health(inputs: HealthInputs | None, raw_weights: Any = None) -> HealthResult:
    """Composite score in [0, 100] and its status.

    inputs=None means the pack has no version yet: everything scores 100.
    """
    weights = resolve_weights(raw_weights)
    if inputs is None:
        factors = {name: 100 for name in FACTORS}
        return HealthResult(
            score=100,
            status=STATUS_HEALTHY,
            factors=factors,
            weights=weights,
            explain={"weights": weights, "factors": factors, "reason": "no_version"},
        )

    factors = compute_factors(inputs)
    weighted = sum(factors[name] * weights[name] for name in FACTORS)
    score = max(0, min(100, round(weighted)))
    return HealthResult(
        score=score,
        status=score_to_status(score),
        factors=factors,
        weights=weights,
        inputs=inputs,
        explain={
            "weights": weights,
            "factors": factors,
            "counts": {
                "diffs": inputs.diff_count,
                "acs": inputs.ac_count,
                "covered_acs": inputs.covered_ac_count,
                "stories": inputs.story_count,
                "passing_stories": inputs.passing_story_count,
                "unresolved_feedback": inputs.unresolved_feedback_count,
                "days_since_update": inputs.days_since_update,
            },
        },
    )
