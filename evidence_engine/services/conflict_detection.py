"""Conflict Detector: contradictions between similar chunks of different sources.

Candidate pairs come from cosine similarity over the current generation of
each project source. Pairs already on record (either order) are skipped
before judgement and again before each insert. The judgement service sees
pairs in batches; a failed or unparseable batch yields nothing for that batch
only.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from evidence_engine.evidence.chunk_store import (
    SimilarPair,
    cosine_similarity_pairs,
    current_generation_chunks,
)
from evidence_engine.llm.json_extract import extract_json_array
from evidence_engine.llm.provider import LLMProvider
from evidence_engine.llm.router import ModelRole, get_llm_provider
from evidence_engine.models import EvidenceConflict, EvidenceSource, Project
from evidence_engine.models.evidence_conflict import conflict_pair_key
from evidence_engine.pipeline.errors import NotFoundError
from evidence_engine.prompts.loader import render_prompt
from evidence_engine.services.notifications.email_service import workspace_link
from evidence_engine.services.notifications.fanout import (
    NotificationRequest,
    create_notifications_for_workspace,
)

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.85
JUDGEMENT_BATCH_SIZE = 10
MIN_CONFLICT_CONFIDENCE = 0.5
MAX_PASSAGE_CHARS = 400
JUDGEMENT_PROMPT = "conflict_judgement_v1"


@dataclass(frozen=True)
class Judgement:
    pair: SimilarPair
    contradicts: bool
    confidence: float
    summary: str


def _clamp(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(1.0, max(0.0, number))


def _format_pairs(pairs: Sequence[SimilarPair], source_names: dict[uuid.UUID, str]) -> str:
    lines = []
    for i, pair in enumerate(pairs):
        name_a = source_names.get(pair.chunk_a.source_id, "Unknown")
        name_b = source_names.get(pair.chunk_b.source_id, "Unknown")
        lines.append(
            f'[{i}] Source A ({name_a}): "{pair.chunk_a.content[:MAX_PASSAGE_CHARS]}" | '
            f'Source B ({name_b}): "{pair.chunk_b.content[:MAX_PASSAGE_CHARS]}"'
        )
    return "\n\n".join(lines)


def judge_batch(
    pairs: Sequence[SimilarPair],
    source_names: dict[uuid.UUID, str],
    provider: LLMProvider,
) -> list[Judgement]:
    """Ask the judgement service about one batch. Any failure returns []."""
    try:
        raw = provider.complete(
            render_prompt(JUDGEMENT_PROMPT, PAIRS=_format_pairs(pairs, source_names)),
            max_tokens=1024,
        )
    except Exception as exc:
        logger.warning("Conflict judgement failed for batch of %d: %s", len(pairs), exc)
        return []

    judgements = []
    for item in extract_json_array(raw):
        if not isinstance(item, dict):
            continue
        index = item.get("index")
        if not isinstance(index, int) or isinstance(index, bool):
            continue
        if index < 0 or index >= len(pairs):
            continue
        judgements.append(
            Judgement(
                pair=pairs[index],
                contradicts=item.get("contradicts") is True,
                confidence=_clamp(item.get("confidence")),
                summary=str(item.get("summary") or ""),
            )
        )
    return judgements


def _existing_pair_keys(db: Session, project_id: uuid.UUID) -> set[str]:
    rows = (
        db.query(EvidenceConflict.chunk_a_id, EvidenceConflict.chunk_b_id)
        .filter(EvidenceConflict.project_id == project_id)
        .all()
    )
    seen: set[str] = set()
    for a, b in rows:
        seen.add(f"{a}:{b}")
        seen.add(f"{b}:{a}")
    return seen


def _pair_recorded(db: Session, a_id: uuid.UUID, b_id: uuid.UUID) -> bool:
    return (
        db.query(EvidenceConflict.id)
        .filter(EvidenceConflict.pair_key == conflict_pair_key(a_id, b_id))
        .first()
        is not None
    )


def detect_conflicts(
    db: Session,
    project: Project,
    provider: LLMProvider | None = None,
) -> list[EvidenceConflict]:
    """Find, judge and persist new conflicts in a project. Flushes, does not commit."""
    chunks = current_generation_chunks(db, project.id)
    if len({c.source_id for c in chunks}) < 2:
        return []

    seen = _existing_pair_keys(db, project.id)
    candidates = [
        p
        for p in cosine_similarity_pairs(chunks, SIMILARITY_THRESHOLD)
        if f"{p.chunk_a.id}:{p.chunk_b.id}" not in seen
    ]
    if not candidates:
        return []

    source_names = {
        s.id: s.name
        for s in db.query(EvidenceSource).filter(EvidenceSource.project_id == project.id).all()
    }
    provider = provider or get_llm_provider(ModelRole.JUDGEMENT)

    created: list[EvidenceConflict] = []
    for start in range(0, len(candidates), JUDGEMENT_BATCH_SIZE):
        batch = candidates[start : start + JUDGEMENT_BATCH_SIZE]
        for judgement in judge_batch(batch, source_names, provider):
            if not judgement.contradicts or judgement.confidence < MIN_CONFLICT_CONFIDENCE:
                continue
            a_id, b_id = judgement.pair.chunk_a.id, judgement.pair.chunk_b.id
            if f"{a_id}:{b_id}" in seen or _pair_recorded(db, a_id, b_id):
                continue
            conflict = EvidenceConflict(
                workspace_id=project.workspace_id,
                project_id=project.id,
                chunk_a_id=a_id,
                chunk_b_id=b_id,
                pair_key=conflict_pair_key(a_id, b_id),
                summary=judgement.summary,
                confidence=judgement.confidence,
                status="open",
            )
            seen.add(f"{a_id}:{b_id}")
            seen.add(f"{b_id}:{a_id}")
            try:
                with db.begin_nested():
                    db.add(conflict)
            except IntegrityError:
                # Recorded by a concurrent run since the check above
                logger.info(
                    "Conflict pair already recorded: project_id=%s pair_key=%s",
                    project.id,
                    conflict.pair_key,
                )
                continue
            created.append(conflict)
    logger.info(
        "Conflict detection: project_id=%s candidates=%d created=%d",
        project.id,
        len(candidates),
        len(created),
    )
    return created


def handle_detect_conflicts(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    """Handler for source/chunks.embedded and project/detect-conflicts."""
    if not payload.get("project_id"):
        return {"status": "skipped", "reason": "no_project_id"}
    project_id = uuid.UUID(str(payload["project_id"]))
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"project_not_found:{project_id}")

    created = detect_conflicts(db, project)
    if created:
        source_id = payload.get("source_id")
        create_notifications_for_workspace(
            db,
            NotificationRequest(
                workspace_id=project.workspace_id,
                type="conflict_detected",
                title=f"{len(created)} evidence conflict(s) detected",
                body=f"Review conflicting evidence in project {project.name}",
                link=workspace_link(
                    project.workspace_id, f"projects/{project.id}/evidence?tab=conflicts"
                ),
                related_source_id=uuid.UUID(str(source_id)) if source_id else None,
                preference_key="notify_source_changes",
            ),
        )
    db.commit()
    return {"status": "completed", "conflicts_created": len(created)}
