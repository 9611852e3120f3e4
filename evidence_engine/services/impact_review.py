"""Change impact review: list and acknowledge impacts for a pack."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.orm import Session

from evidence_engine.db.types import utcnow
from evidence_engine.models import ChangeImpact, Pack
from evidence_engine.pipeline.errors import NotFoundError

logger = logging.getLogger(__name__)


def _require_pack(db: Session, pack_id: uuid.UUID) -> Pack:
    pack = db.get(Pack, pack_id)
    if pack is None:
        raise NotFoundError(f"pack_not_found:{pack_id}")
    return pack


def list_impacts(
    db: Session,
    pack_id: uuid.UUID,
    *,
    include_acknowledged: bool = False,
    limit: int = 50,
) -> list[ChangeImpact]:
    """Impacts of a pack, newest first. Only unacknowledged unless asked otherwise."""
    _require_pack(db, pack_id)
    query = db.query(ChangeImpact).filter(ChangeImpact.pack_id == pack_id)
    if not include_acknowledged:
        query = query.filter(ChangeImpact.is_acknowledged.is_(False))
    return (
        query.order_by(ChangeImpact.created_at.desc(), ChangeImpact.id.desc())
        .limit(limit)
        .all()
    )


def acknowledge_impact(
    db: Session, pack_id: uuid.UUID, impact_id: uuid.UUID, acknowledged_by: str
) -> ChangeImpact:
    """Mark one impact acknowledged. Re-acknowledging keeps the first who/when."""
    impact = db.get(ChangeImpact, impact_id)
    if impact is None or impact.pack_id != pack_id:
        raise NotFoundError(f"impact_not_found:{impact_id}")
    if not impact.is_acknowledged:
        impact.is_acknowledged = True
        impact.acknowledged_at = utcnow()
        impact.acknowledged_by = acknowledged_by
        db.commit()
        logger.info("Impact acknowledged: impact_id=%s by=%s", impact_id, acknowledged_by)
    return impact


def acknowledge_all(db: Session, pack_id: uuid.UUID, acknowledged_by: str) -> int:
    """Acknowledge every open impact of a pack. Returns how many changed."""
    _require_pack(db, pack_id)
    now = utcnow()
    impacts = (
        db.query(ChangeImpact)
        .filter(ChangeImpact.pack_id == pack_id, ChangeImpact.is_acknowledged.is_(False))
        .all()
    )
    for impact in impacts:
        impact.is_acknowledged = True
        impact.acknowledged_at = now
        impact.acknowledged_by = acknowledged_by
    db.commit()
    logger.info("Impacts acknowledged: pack_id=%s count=%d", pack_id, len(impacts))
    return len(impacts)
