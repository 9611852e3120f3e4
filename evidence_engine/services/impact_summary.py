"""Impact summaries and source-change notifications.

impact/finalize runs once per ChangeImpact after the structural transaction:
it tries the one-sentence summary and, for moderate or major impacts, notifies
the workspace exactly once (guarded by notified_at). Summaries that failed
are picked up by the impact/retry-summaries sweep, which gives up after
MAX_SUMMARY_RETRIES attempts and stores FALLBACK_SUMMARY instead.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from evidence_engine.db.types import utcnow
from evidence_engine.diff.severity import SEVERITY_MAJOR, SEVERITY_MODERATE
from evidence_engine.llm.provider import LLMProvider
from evidence_engine.llm.router import ModelRole, get_llm_provider
from evidence_engine.models import ChangeImpact, ChunkDiff, EvidenceSource, Pack, Story
from evidence_engine.models.change_impact import SUMMARY_PENDING, SUMMARY_RESOLVED
from evidence_engine.pipeline.errors import NotFoundError
from evidence_engine.prompts.loader import render_prompt
from evidence_engine.services.notifications.email_service import workspace_link
from evidence_engine.services.notifications.fanout import (
    NotificationRequest,
    create_notifications_for_workspace,
)

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = "impact_summary_v1"
SUMMARY_SYSTEM_PROMPT = "Summarise how source changes affect requirements. One sentence."
MAX_SUMMARY_RETRIES = 5
RETRY_BATCH_SIZE = 20
FALLBACK_SUMMARY = "Source changes detected. Review affected stories for accuracy."

_MAX_CHANGES_IN_PROMPT = 10
_MAX_PASSAGE_CHARS = 200


def _clip(text: str | None) -> str:
    text = (text or "").strip().replace("\n", " ")
    if len(text) > _MAX_PASSAGE_CHARS:
        return text[:_MAX_PASSAGE_CHARS] + "..."
    return text


def build_summary_prompt(
    db: Session, impact: ChangeImpact, source: EvidenceSource, pack: Pack
) -> str:
    story_ids = [uuid.UUID(s) for s in impact.affected_story_ids or []]
    titles = (
        [row[0] for row in db.query(Story.title).filter(Story.id.in_(story_ids)).all()]
        if story_ids
        else []
    )
    diffs = (
        db.query(ChunkDiff)
        .filter(
            ChunkDiff.source_id == impact.source_id,
            ChunkDiff.new_version_id == impact.source_version_id,
        )
        .order_by(ChunkDiff.created_at.asc(), ChunkDiff.id.asc())
        .limit(_MAX_CHANGES_IN_PROMPT)
        .all()
    )
    changes = "\n".join(
        f"- {d.diff_type}: {_clip(d.old_content) or '(none)'} -> {_clip(d.new_content) or '(none)'}"
        for d in diffs
    )
    return render_prompt(
        SUMMARY_PROMPT,
        SOURCE_NAME=source.name,
        PACK_NAME=pack.name,
        SEVERITY=impact.severity,
        REMOVED_COUNT=str(impact.removed_chunk_count),
        MODIFIED_COUNT=str(impact.modified_chunk_count),
        ADDED_COUNT=str(impact.added_chunk_count),
        STORY_COUNT=str(impact.affected_story_count),
        STORY_TITLES="; ".join(sorted(titles)) or "(none)",
        AC_COUNT=str(impact.affected_ac_count),
        CHANGES=changes or "(no passages)",
    )


def generate_summary(
    db: Session,
    impact: ChangeImpact,
    source: EvidenceSource,
    pack: Pack,
    provider: LLMProvider | None = None,
) -> str | None:
    """One-sentence summary, or None when the summary service is unavailable."""
    try:
        provider = provider or get_llm_provider(ModelRole.SUMMARY)
        text = provider.complete(
            build_summary_prompt(db, impact, source, pack),
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            max_tokens=120,
        )
    except Exception as exc:
        logger.warning("Impact summary failed: impact_id=%s error=%s", impact.id, exc)
        return None
    text = (text or "").strip()
    return text or None


def _load_context(db: Session, impact: ChangeImpact) -> tuple[EvidenceSource, Pack]:
    source = db.get(EvidenceSource, impact.source_id)
    pack = db.get(Pack, impact.pack_id)
    if source is None or pack is None:
        raise NotFoundError(f"impact_context_missing:{impact.id}")
    return source, pack


def attempt_summary(
    db: Session, impact: ChangeImpact, provider: LLMProvider | None = None
) -> bool:
    """Try to resolve a pending summary. Returns True when resolved.

    Exhausted retries resolve with FALLBACK_SUMMARY; a failed attempt
    increments summary_retry_count. Does not commit.
    """
    if impact.summary_state != SUMMARY_PENDING:
        return True
    if impact.summary_retry_count >= MAX_SUMMARY_RETRIES:
        impact.summary = FALLBACK_SUMMARY
        impact.summary_state = SUMMARY_RESOLVED
        logger.info("Impact summary fallback applied: impact_id=%s", impact.id)
        return True
    source, pack = _load_context(db, impact)
    text = generate_summary(db, impact, source, pack, provider)
    if text is None:
        impact.summary_retry_count += 1
        return False
    impact.summary = text
    impact.summary_state = SUMMARY_RESOLVED
    return True


def notification_body(impact: ChangeImpact, pack: Pack) -> str:
    if impact.summary_state == SUMMARY_RESOLVED and impact.summary:
        return impact.summary
    return (
        f"{impact.severity} impact on {pack.name}. "
        f"{impact.affected_story_count} stories may be affected."
    )


def notify_source_change(db: Session, impact: ChangeImpact) -> bool:
    """Fan out the source_changed notification once. Returns True if sent now.

    notified_at is set in the caller's transaction together with the rows.
    """
    if impact.notified_at is not None:
        return False
    if impact.severity not in (SEVERITY_MODERATE, SEVERITY_MAJOR):
        return False
    source, pack = _load_context(db, impact)
    create_notifications_for_workspace(
        db,
        NotificationRequest(
            workspace_id=pack.workspace_id,
            type="source_changed",
            title=f"Source '{source.name}' has changed",
            body=notification_body(impact, pack),
            link=workspace_link(
                pack.workspace_id, f"projects/{pack.project_id}/packs/{pack.id}"
            ),
            related_pack_id=pack.id,
            related_source_id=source.id,
            preference_key="notify_source_changes",
        ),
    )
    impact.notified_at = utcnow()
    return True


def handle_finalize_impact(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    impact_id = uuid.UUID(str(payload["impact_id"]))
    impact = db.get(ChangeImpact, impact_id)
    if impact is None:
        raise NotFoundError(f"impact_not_found:{impact_id}")

    resolved = attempt_summary(db, impact)
    notified = notify_source_change(db, impact)
    db.commit()
    logger.info(
        "Impact finalized: impact_id=%s summary=%s notified=%s",
        impact_id,
        impact.summary_state,
        notified,
    )
    return {"status": "completed", "summary_resolved": resolved, "notified": notified}


def retry_pending_summaries(
    db: Session, batch_size: int = RETRY_BATCH_SIZE, provider: LLMProvider | None = None
) -> dict[str, int]:
    """Resolve up to batch_size pending summaries, oldest first. Commits per impact."""
    impacts = (
        db.query(ChangeImpact)
        .filter(ChangeImpact.summary_state == SUMMARY_PENDING)
        .order_by(ChangeImpact.created_at.asc(), ChangeImpact.id.asc())
        .limit(batch_size)
        .all()
    )
    updated = 0
    for impact in impacts:
        try:
            if attempt_summary(db, impact, provider):
                updated += 1
        except NotFoundError as exc:
            logger.warning("Impact summary skipped: impact_id=%s reason=%s", impact.id, exc.reason)
        db.commit()
    logger.info("Summary retry sweep: processed=%d updated=%d", len(impacts), updated)
    return {"processed": len(impacts), "updated": updated}


def handle_retry_summaries(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    batch_size = int(payload.get("batch_size") or RETRY_BATCH_SIZE)
    return {"status": "completed", **retry_pending_summaries(db, batch_size)}
