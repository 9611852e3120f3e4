"""source/version.created handler: diff a source change and record its impact.

Everything structural happens in one transaction: ChunkDiff rows,
ChangeImpact rows, evidence link carry-forward, deletion of the superseded
generation and the follow-on events (health recompute per pack, finalize per
impact). The existence of any ChunkDiff for (source, new version) marks the
change as processed, so redelivery is a no-op. Changes of one source are
processed in version order: a change waits (DeferredError) while the
generation before the one it diffs from still exists.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from evidence_engine.diff.chunk_mapper import (
    DIFF_ADDED,
    DIFF_MODIFIED,
    DIFF_REMOVED,
    ChunkInfo,
    ChunkMapping,
    map_diff_to_chunks,
    match_unchanged,
)
from evidence_engine.diff.severity import HIGH_SIMILARITY, determine_severity
from evidence_engine.evidence.chunk_store import delete_chunks, has_older_generations
from evidence_engine.evidence.link_ledger import (
    AffectedArtifacts,
    carry_links_forward,
    downgrade_confidence,
    resolve_affected_artifacts,
)
from evidence_engine.models import (
    AcceptanceCriterion,
    ChangeImpact,
    ChunkDiff,
    EvidenceLink,
    EvidenceSource,
    Pack,
    PackVersion,
    SourceChunk,
    SourceVersion,
    Story,
)
from evidence_engine.models.change_impact import SUMMARY_PENDING
from evidence_engine.pipeline.bus import publish
from evidence_engine.pipeline.errors import DeferredError, NotFoundError
from evidence_engine.pipeline.events import IMPACT_FINALIZE, PACK_HEALTH_RECOMPUTE
from evidence_engine.services.pack_queries import latest_pack_version, unlocked_packs

logger = logging.getLogger(__name__)


@dataclass
class PackImpact:
    """Affected artifacts of one pack, restricted to its latest version."""

    pack: Pack
    story_ids: list[uuid.UUID]
    ac_ids: list[uuid.UUID]
    total_ac_count: int


def _uuid_list(values: Sequence[Any] | None) -> list[uuid.UUID]:
    return [uuid.UUID(str(v)) for v in (values or [])]


def packs_citing_source(db: Session, source: EvidenceSource) -> list[tuple[Pack, PackVersion]]:
    """Unlocked packs of the source's project whose latest version cites the source."""
    result = []
    source_key = str(source.id)
    for pack in unlocked_packs(db, source.project_id):
        version = latest_pack_version(db, pack.id)
        if version is None:
            continue
        if source_key in {str(s) for s in (version.source_ids or [])}:
            result.append((pack, version))
    return result


def pack_impact(
    db: Session, pack: Pack, version: PackVersion, affected: AffectedArtifacts
) -> PackImpact:
    live_story_ids = {
        row[0]
        for row in db.query(Story.id)
        .filter(Story.pack_version_id == version.id, Story.deleted_at.is_(None))
        .all()
    }
    live_acs = (
        db.query(AcceptanceCriterion.id, AcceptanceCriterion.story_id)
        .filter(
            AcceptanceCriterion.story_id.in_(list(live_story_ids)),
            AcceptanceCriterion.deleted_at.is_(None),
        )
        .all()
        if live_story_ids
        else []
    )
    ac_ids = sorted((ac_id for ac_id, _ in live_acs if ac_id in affected.ac_ids), key=str)
    story_ids = sorted(live_story_ids & affected.story_ids, key=str)
    return PackImpact(
        pack=pack, story_ids=story_ids, ac_ids=ac_ids, total_ac_count=len(live_acs)
    )


def _chunk_infos(chunks: Sequence[SourceChunk]) -> list[ChunkInfo]:
    return [ChunkInfo(id=c.id, content=c.content, index=c.chunk_index) for c in chunks]


def _load_chunks(db: Session, ids: Sequence[uuid.UUID]) -> list[SourceChunk]:
    if not ids:
        return []
    return (
        db.query(SourceChunk)
        .filter(SourceChunk.id.in_(ids))
        .order_by(SourceChunk.chunk_index.asc())
        .all()
    )


def _downgrade_weakened_links(db: Session, mappings: Sequence[ChunkMapping]) -> int:
    """Drop high-confidence links on materially rewritten chunks to medium."""
    weakened = [
        m.new_chunk_id
        for m in mappings
        if m.diff_type == DIFF_MODIFIED and (m.similarity_score or 0.0) < HIGH_SIMILARITY
    ]
    if not weakened:
        return 0
    links = (
        db.query(EvidenceLink)
        .filter(EvidenceLink.chunk_id.in_(weakened), EvidenceLink.confidence == "high")
        .all()
    )
    for link in links:
        downgrade_confidence(link, "medium")
    return len(links)


def handle_version_created(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    source_id = uuid.UUID(str(payload["source_id"]))
    new_version_id = uuid.UUID(str(payload["new_version_id"]))
    previous_version_id = uuid.UUID(str(payload["previous_version_id"]))

    existing = (
        db.query(ChunkDiff.id)
        .filter(ChunkDiff.source_id == source_id, ChunkDiff.new_version_id == new_version_id)
        .first()
    )
    if existing is not None:
        logger.info(
            "Change already processed: source_id=%s new_version_id=%s",
            source_id,
            new_version_id,
        )
        return {"status": "skipped", "reason": "already_processed"}

    source = db.get(EvidenceSource, source_id)
    if source is None:
        raise NotFoundError(f"source_not_found:{source_id}")
    old_version = db.get(SourceVersion, previous_version_id)
    new_version = db.get(SourceVersion, new_version_id)
    if old_version is None or new_version is None:
        raise NotFoundError("version_not_found")
    if old_version.content_hash == new_version.content_hash:
        return {"status": "skipped", "reason": "no_changes"}
    if has_older_generations(db, source_id, old_version.generation_version_id):
        raise DeferredError(f"earlier_change_pending:{source_id}")

    old_chunk_ids = _uuid_list(payload.get("old_chunk_ids"))
    new_chunk_ids = _uuid_list(payload.get("new_chunk_ids"))
    old_chunks = _load_chunks(db, old_chunk_ids)
    new_chunks = _load_chunks(db, new_chunk_ids)
    if old_chunk_ids and not old_chunks:
        # Superseded generation already gone: a change that produced no diff rows.
        return {"status": "skipped", "reason": "already_processed"}

    old_infos = _chunk_infos(old_chunks)
    new_infos = _chunk_infos(new_chunks)
    mappings = map_diff_to_chunks(old_version.content, new_version.content, old_infos, new_infos)
    content_by_id = {c.id: c.content for c in old_chunks}
    content_by_id.update({c.id: c.content for c in new_chunks})

    changed_ids = [
        m.old_chunk_id
        for m in mappings
        if m.diff_type in (DIFF_REMOVED, DIFF_MODIFIED) and m.old_chunk_id is not None
    ]
    affected = resolve_affected_artifacts(db, changed_ids)

    impacts: list[ChangeImpact] = []
    if affected:
        for pack, version in packs_citing_source(db, source):
            scoped = pack_impact(db, pack, version, affected)
            if not scoped.story_ids and not scoped.ac_ids:
                continue
            severity = determine_severity(
                len(scoped.ac_ids), scoped.total_ac_count, mappings, len(old_chunk_ids)
            )
            impacts.append(
                ChangeImpact(
                    source_id=source.id,
                    pack_id=pack.id,
                    source_version_id=new_version_id,
                    affected_story_ids=[str(s) for s in scoped.story_ids],
                    affected_ac_ids=[str(a) for a in scoped.ac_ids],
                    affected_story_count=len(scoped.story_ids),
                    affected_ac_count=len(scoped.ac_ids),
                    removed_chunk_count=sum(1 for m in mappings if m.diff_type == DIFF_REMOVED),
                    modified_chunk_count=sum(1 for m in mappings if m.diff_type == DIFF_MODIFIED),
                    added_chunk_count=sum(1 for m in mappings if m.diff_type == DIFF_ADDED),
                    severity=severity,
                    summary_state=SUMMARY_PENDING,
                )
            )

    db.add_all(
        [
            ChunkDiff(
                source_id=source.id,
                old_version_id=previous_version_id if m.diff_type != DIFF_ADDED else None,
                new_version_id=new_version_id,
                diff_type=m.diff_type,
                old_chunk_id=m.old_chunk_id,
                new_chunk_id=m.new_chunk_id,
                similarity_score=m.similarity_score,
                old_content=content_by_id.get(m.old_chunk_id) if m.old_chunk_id else None,
                new_content=content_by_id.get(m.new_chunk_id) if m.new_chunk_id else None,
            )
            for m in mappings
        ]
    )
    db.add_all(impacts)
    db.flush()

    bridges = [(old.id, new.id) for old, new in match_unchanged(old_infos, new_infos)]
    bridges.extend(
        (m.old_chunk_id, m.new_chunk_id) for m in mappings if m.diff_type == DIFF_MODIFIED
    )
    carried = carry_links_forward(db, bridges)
    downgraded = _downgrade_weakened_links(db, mappings)
    delete_chunks(db, [c.id for c in old_chunks])

    for impact in impacts:
        publish(
            db,
            PACK_HEALTH_RECOMPUTE,
            {"pack_id": impact.pack_id},
            idempotency_key=f"health:{impact.pack_id}:{new_version_id}",
        )
        publish(
            db,
            IMPACT_FINALIZE,
            {"impact_id": impact.id},
            idempotency_key=str(impact.id),
        )
    db.commit()

    for impact in impacts:
        logger.info(
            "Impact created: pack_id=%s source_id=%s severity=%s stories=%d acs=%d",
            impact.pack_id,
            source_id,
            impact.severity,
            impact.affected_story_count,
            impact.affected_ac_count,
        )
    logger.info(
        "Source change processed: source_id=%s diffs=%d impacts=%d links_carried=%d downgraded=%d",
        source_id,
        len(mappings),
        len(impacts),
        carried,
        downgraded,
    )
    return {
        "status": "completed",
        "diff_count": len(mappings),
        "impacts_created": len(impacts),
        "links_carried": carried,
    }
