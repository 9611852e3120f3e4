"""Pack health: pure scoring engine, input collection, snapshot writer, recompute jobs."""

from evidence_engine.services.health.engine import (
    HealthInputs,
    HealthResult,
    compute_health,
    resolve_weights,
    score_to_status,
)
from evidence_engine.services.health.recompute import recompute_all, recompute_pack_health

__all__ = [
    "HealthInputs",
    "HealthResult",
    "compute_health",
    "recompute_all",
    "recompute_pack_health",
    "resolve_weights",
    "score_to_status",
]
