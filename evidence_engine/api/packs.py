"""Pack routes: change impacts and health."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from evidence_engine.api.deps import get_db, parse_uuid_or_422, require_internal_token
from evidence_engine.models import HealthSnapshot, Pack
from evidence_engine.pipeline.errors import NotFoundError
from evidence_engine.schemas.health import HealthSnapshotRead, PackHealthRead
from evidence_engine.schemas.impact import (
    AcknowledgeAllResponse,
    AcknowledgeRequest,
    ChangeImpactRead,
)
from evidence_engine.services import impact_review

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_internal_token)])


def _get_pack_or_404(db: Session, pack_id: str) -> Pack:
    pack = db.get(Pack, parse_uuid_or_422(pack_id, "pack_id"))
    if pack is None:
        raise HTTPException(status_code=404, detail="Pack not found")
    return pack


@router.get("/{pack_id}/impacts", response_model=list[ChangeImpactRead])
async def list_impacts(
    pack_id: str,
    include_acknowledged: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    pack = _get_pack_or_404(db, pack_id)
    impacts = impact_review.list_impacts(
        db, pack.id, include_acknowledged=include_acknowledged, limit=limit
    )
    return [ChangeImpactRead.model_validate(i) for i in impacts]


@router.post("/{pack_id}/impacts/acknowledge_all", response_model=AcknowledgeAllResponse)
async def acknowledge_all(
    pack_id: str,
    body: AcknowledgeRequest,
    db: Session = Depends(get_db),
):
    pack = _get_pack_or_404(db, pack_id)
    count = impact_review.acknowledge_all(db, pack.id, body.acknowledged_by)
    return AcknowledgeAllResponse(acknowledged=count)


@router.post("/{pack_id}/impacts/{impact_id}/acknowledge", response_model=ChangeImpactRead)
async def acknowledge_impact(
    pack_id: str,
    impact_id: str,
    body: AcknowledgeRequest,
    db: Session = Depends(get_db),
):
    pack = _get_pack_or_404(db, pack_id)
    impact_uuid = parse_uuid_or_422(impact_id, "impact_id")
    try:
        impact = impact_review.acknowledge_impact(db, pack.id, impact_uuid, body.acknowledged_by)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Impact not found") from None
    return ChangeImpactRead.model_validate(impact)


@router.get("/{pack_id}/health", response_model=PackHealthRead)
async def current_health(pack_id: str, db: Session = Depends(get_db)):
    pack = _get_pack_or_404(db, pack_id)
    return PackHealthRead(
        pack_id=pack.id,
        health_score=pack.health_score,
        health_status=pack.health_status,
        last_health_check=pack.last_health_check,
    )


@router.get("/{pack_id}/health/history", response_model=list[HealthSnapshotRead])
async def health_history(
    pack_id: str,
    limit: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
):
    pack = _get_pack_or_404(db, pack_id)
    snapshots = (
        db.query(HealthSnapshot)
        .filter(HealthSnapshot.pack_id == pack.id)
        .order_by(HealthSnapshot.computed_at.desc(), HealthSnapshot.id.desc())
        .limit(limit)
        .all()
    )
    return [HealthSnapshotRead.model_validate(s) for s in snapshots]
