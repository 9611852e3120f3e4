"""Gather raw health counts for a pack's latest version."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from evidence_engine.db.types import as_utc
from evidence_engine.evidence.entity_ref import EntityType
from evidence_engine.evidence.link_ledger import high_confidence_ac_ids
from evidence_engine.models import (
    AcceptanceCriterion,
    ChunkDiff,
    DeliveryFeedback,
    EvidenceSource,
    Pack,
    PackVersion,
    QAFlag,
    Story,
)
from evidence_engine.services.health.engine import HealthInputs
from evidence_engine.services.pack_queries import latest_pack_version

_SECONDS_PER_DAY = 24 * 60 * 60


def _source_ids(version: PackVersion) -> list[uuid.UUID]:
    ids = []
    for raw in version.source_ids or []:
        try:
            ids.append(uuid.UUID(str(raw)))
        except ValueError:
            continue
    return ids


def _unflagged_story_count(
    db: Session,
    version: PackVersion,
    story_ids: list[uuid.UUID],
    ac_story: dict[uuid.UUID, uuid.UUID],
) -> int:
    if not story_ids:
        return 0
    conditions = [
        (QAFlag.entity_type == EntityType.STORY.value) & QAFlag.entity_id.in_(story_ids)
    ]
    if ac_story:
        conditions.append(
            (QAFlag.entity_type == EntityType.ACCEPTANCE_CRITERION.value)
            & QAFlag.entity_id.in_(list(ac_story))
        )
    flags = (
        db.query(QAFlag.entity_type, QAFlag.entity_id)
        .filter(
            QAFlag.pack_version_id == version.id,
            QAFlag.resolved_by.is_(None),
            or_(*conditions),
        )
        .all()
    )
    flagged: set[uuid.UUID] = set()
    for entity_type, entity_id in flags:
        if entity_type == EntityType.STORY.value:
            flagged.add(entity_id)
        elif entity_id in ac_story:
            flagged.add(ac_story[entity_id])
    return sum(1 for s in story_ids if s not in flagged)


def collect_health_inputs(db: Session, pack: Pack, now: datetime) -> HealthInputs | None:
    """Counts for the pack's latest version, or None when it has no version."""
    version = latest_pack_version(db, pack.id)
    if version is None:
        return None

    source_ids = _source_ids(version)
    version_created = as_utc(version.created_at)

    diff_count = 0
    if source_ids:
        diff_count = (
            db.query(func.count(ChunkDiff.id))
            .filter(
                ChunkDiff.source_id.in_(source_ids),
                ChunkDiff.created_at > version_created,
            )
            .scalar()
            or 0
        )

    story_ids = [
        row[0]
        for row in db.query(Story.id)
        .filter(Story.pack_version_id == version.id, Story.deleted_at.is_(None))
        .all()
    ]
    acs = (
        db.query(AcceptanceCriterion.id, AcceptanceCriterion.story_id)
        .filter(
            AcceptanceCriterion.story_id.in_(story_ids),
            AcceptanceCriterion.deleted_at.is_(None),
        )
        .all()
        if story_ids
        else []
    )
    ac_story = {ac_id: story_id for ac_id, story_id in acs}
    covered = high_confidence_ac_ids(db, list(ac_story))

    unresolved_feedback = (
        db.query(func.count(DeliveryFeedback.id))
        .filter(DeliveryFeedback.pack_id == pack.id, DeliveryFeedback.is_resolved.is_(False))
        .scalar()
        or 0
    )

    most_recent = version_created
    if source_ids:
        latest_source = (
            db.query(func.max(EvidenceSource.updated_at))
            .filter(EvidenceSource.id.in_(source_ids))
            .scalar()
        )
        latest_source = as_utc(latest_source)
        if latest_source is not None and latest_source > most_recent:
            most_recent = latest_source
    days_since = int((now - most_recent).total_seconds() // _SECONDS_PER_DAY)

    return HealthInputs(
        diff_count=int(diff_count),
        ac_count=len(ac_story),
        covered_ac_count=len(covered),
        story_count=len(story_ids),
        passing_story_count=_unflagged_story_count(db, version, story_ids, ac_story),
        unresolved_feedback_count=int(unresolved_feedback),
        days_since_update=days_since,
    )
