"""Pack lookups shared by propagation and health scoring."""

from __future__ import annotations

import uuid

from sqlalchemy.orm import Session

from evidence_engine.models import Pack, PackVersion

LOCKED = "locked"


def latest_pack_version(db: Session, pack_id: uuid.UUID) -> PackVersion | None:
    return (
        db.query(PackVersion)
        .filter(PackVersion.pack_id == pack_id)
        .order_by(PackVersion.version_number.desc())
        .first()
    )


def unlocked_packs(db: Session, project_id: uuid.UUID | None = None) -> list[Pack]:
    """Packs eligible for propagation and scheduled recompute, oldest first."""
    query = db.query(Pack).filter(Pack.review_status != LOCKED)
    if project_id is not None:
        query = query.filter(Pack.project_id == project_id)
    return query.order_by(Pack.created_at.asc(), Pack.id.asc()).all()
