"""Evidence Link Ledger: chunk <-> artifact associations with confidence tiers."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from evidence_engine.evidence.entity_ref import (
    AcceptanceCriterionRef,
    EntityRef,
    EntityType,
    StoryRef,
    entity_ref_from_columns,
    entity_ref_to_columns,
)
from evidence_engine.models import (
    AcceptanceCriterion,
    EvidenceLink,
    EvidenceSource,
    Pack,
    PackVersion,
    SourceChunk,
    Story,
)
from evidence_engine.pipeline.errors import NotFoundError

logger = logging.getLogger(__name__)

CONFIDENCE_RANK = {"low": 0, "medium": 1, "high": 2}


class EvidenceScopeError(Exception):
    """Evidence link would connect a chunk and an artifact from different projects."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ConfidenceUpgradeError(Exception):
    """Automatic confidence changes may only lower the tier."""

    def __init__(self, current: str, requested: str) -> None:
        self.reason = f"cannot upgrade confidence {current} -> {requested}"
        super().__init__(self.reason)


@dataclass
class AffectedArtifacts:
    """Artifacts citing a set of chunks. story_ids includes stories owning affected ACs."""

    story_ids: set[uuid.UUID] = field(default_factory=set)
    ac_ids: set[uuid.UUID] = field(default_factory=set)
    ac_story: dict[uuid.UUID, uuid.UUID] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.story_ids or self.ac_ids)


def _artifact_project_id(db: Session, ref: EntityRef) -> uuid.UUID:
    if isinstance(ref, AcceptanceCriterionRef):
        ac = db.get(AcceptanceCriterion, ref.id)
        if ac is None:
            raise NotFoundError(f"acceptance_criterion_not_found:{ref.id}")
        story_id = ac.story_id
    else:
        story_id = ref.id
    row = (
        db.query(Pack.project_id)
        .join(PackVersion, PackVersion.pack_id == Pack.id)
        .join(Story, Story.pack_version_id == PackVersion.id)
        .filter(Story.id == story_id)
        .first()
    )
    if row is None:
        raise NotFoundError(f"story_not_found:{story_id}")
    return row[0]


def create_evidence_link(
    db: Session,
    ref: EntityRef,
    chunk_id: uuid.UUID,
    confidence: str,
    evolution_status: str = "new",
) -> EvidenceLink:
    """Link a chunk to an artifact in the same project. Returns the existing link if present.

    Raises:
        ValueError: unknown confidence tier.
        NotFoundError: chunk or artifact missing.
        EvidenceScopeError: chunk's source belongs to another project.
    """
    if confidence not in CONFIDENCE_RANK:
        raise ValueError(f"Unknown confidence tier: {confidence}")
    chunk = db.get(SourceChunk, chunk_id)
    if chunk is None:
        raise NotFoundError(f"chunk_not_found:{chunk_id}")
    source = db.get(EvidenceSource, chunk.source_id)
    project_id = _artifact_project_id(db, ref)
    if source is None or source.project_id != project_id:
        raise EvidenceScopeError(
            f"chunk {chunk_id} is not evidence in project {project_id}"
        )

    entity_type, entity_id = entity_ref_to_columns(ref)
    existing = (
        db.query(EvidenceLink)
        .filter(
            EvidenceLink.entity_type == entity_type,
            EvidenceLink.entity_id == entity_id,
            EvidenceLink.chunk_id == chunk_id,
        )
        .first()
    )
    if existing is not None:
        return existing

    link = EvidenceLink(
        entity_type=entity_type,
        entity_id=entity_id,
        chunk_id=chunk_id,
        confidence=confidence,
        evolution_status=evolution_status,
    )
    db.add(link)
    db.flush()
    return link


def downgrade_confidence(link: EvidenceLink, confidence: str) -> EvidenceLink:
    """Lower a link's confidence tier. Equal tiers are a no-op.

    Raises ConfidenceUpgradeError for a higher tier.
    """
    if confidence not in CONFIDENCE_RANK:
        raise ValueError(f"Unknown confidence tier: {confidence}")
    if CONFIDENCE_RANK[confidence] > CONFIDENCE_RANK[link.confidence]:
        raise ConfidenceUpgradeError(link.confidence, confidence)
    link.confidence = confidence
    return link


def resolve_affected_artifacts(
    db: Session, chunk_ids: Iterable[uuid.UUID]
) -> AffectedArtifacts:
    """Resolve chunks to the ACs citing them and, transitively, their stories."""
    ids = list(chunk_ids)
    affected = AffectedArtifacts()
    if not ids:
        return affected

    links = db.query(EvidenceLink).filter(EvidenceLink.chunk_id.in_(ids)).all()
    for link in links:
        ref = entity_ref_from_columns(link.entity_type, link.entity_id)
        if isinstance(ref, StoryRef):
            affected.story_ids.add(ref.id)
        elif isinstance(ref, AcceptanceCriterionRef):
            affected.ac_ids.add(ref.id)

    if affected.ac_ids:
        acs = (
            db.query(AcceptanceCriterion)
            .filter(
                AcceptanceCriterion.id.in_(list(affected.ac_ids)),
                AcceptanceCriterion.deleted_at.is_(None),
            )
            .all()
        )
        live = {ac.id for ac in acs}
        affected.ac_ids &= live
        for ac in acs:
            affected.ac_story[ac.id] = ac.story_id
            affected.story_ids.add(ac.story_id)
    return affected


def carry_links_forward(
    db: Session, chunk_pairs: Iterable[tuple[uuid.UUID, uuid.UUID]]
) -> int:
    """Re-point links from old-generation chunks to their new-generation counterparts.

    chunk_pairs holds (old_chunk_id, new_chunk_id) from unchanged or modified
    mappings. A link whose artifact already cites the new chunk is dropped.
    Returns the number of links moved.
    """
    moved = 0
    for old_id, new_id in chunk_pairs:
        links = db.query(EvidenceLink).filter(EvidenceLink.chunk_id == old_id).all()
        if not links:
            continue
        already = {
            (l.entity_type, l.entity_id)
            for l in db.query(EvidenceLink).filter(EvidenceLink.chunk_id == new_id).all()
        }
        for link in links:
            key = (link.entity_type, link.entity_id)
            if key in already:
                db.delete(link)
                continue
            link.chunk_id = new_id
            already.add(key)
            moved += 1
    db.flush()
    return moved


def high_confidence_ac_ids(db: Session, ac_ids: Iterable[uuid.UUID]) -> set[uuid.UUID]:
    """ACs among ac_ids with at least one high-confidence link."""
    ids = list(ac_ids)
    if not ids:
        return set()
    rows = (
        db.query(EvidenceLink.entity_id)
        .filter(
            EvidenceLink.entity_type == EntityType.ACCEPTANCE_CRITERION.value,
            EvidenceLink.entity_id.in_(ids),
            EvidenceLink.confidence == "high",
        )
        .distinct()
        .all()
    )
    return {r[0] for r in rows}
