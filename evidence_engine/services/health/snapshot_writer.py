"""Persist a health result: append a snapshot and move the pack's live pointer."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from evidence_engine.models import HealthSnapshot, Pack, Workspace
from evidence_engine.services.health.constants import (
    FACTOR_DELIVERY_FEEDBACK,
    FACTOR_EVIDENCE_COVERAGE,
    FACTOR_QA_PASS_RATE,
    FACTOR_SOURCE_AGE,
    FACTOR_SOURCE_DRIFT,
)
from evidence_engine.services.health.engine import HealthResult, compute_health
from evidence_engine.services.health.inputs import collect_health_inputs

logger = logging.getLogger(__name__)


def compute_pack_health(db: Session, pack: Pack, now: datetime) -> HealthResult:
    workspace = db.get(Workspace, pack.workspace_id)
    raw_weights = workspace.health_weights if workspace is not None else None
    return compute_health(collect_health_inputs(db, pack, now), raw_weights)


def write_snapshot(
    db: Session, pack: Pack, result: HealthResult, now: datetime
) -> HealthSnapshot:
    """Stage the snapshot and pointer update. The caller commits both together."""
    snapshot = HealthSnapshot(
        pack_id=pack.id,
        score=result.score,
        status=result.status,
        source_drift=result.factors[FACTOR_SOURCE_DRIFT],
        evidence_coverage=result.factors[FACTOR_EVIDENCE_COVERAGE],
        qa_pass_rate=result.factors[FACTOR_QA_PASS_RATE],
        delivery_feedback=result.factors[FACTOR_DELIVERY_FEEDBACK],
        source_age=result.factors[FACTOR_SOURCE_AGE],
        explain=result.explain,
        computed_at=now,
    )
    db.add(snapshot)
    pack.health_score = result.score
    pack.health_status = result.status
    pack.last_health_check = now
    db.flush()
    logger.info(
        "Health snapshot: pack_id=%s score=%d status=%s",
        pack.id,
        result.score,
        result.status,
    )
    return snapshot
