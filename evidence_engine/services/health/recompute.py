"""Health recompute handlers: per-pack with cooldown, and the daily sweep.

A recompute that lands inside a pack's cooldown (lock held in the counter
store, or last_health_check too recent) is not dropped: one delayed recompute
is queued per pack and cooldown window, so a burst of changes collapses into a
single follow-up computation.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from evidence_engine.config import get_settings
from evidence_engine.db.types import as_utc, utcnow
from evidence_engine.models import Pack
from evidence_engine.pipeline.bus import publish
from evidence_engine.pipeline.counters import CounterStore, get_counter_store
from evidence_engine.pipeline.errors import NotFoundError
from evidence_engine.pipeline.events import PACK_HEALTH_RECOMPUTE
from evidence_engine.services.health.engine import HealthResult, status_worsened
from evidence_engine.services.health.snapshot_writer import compute_pack_health, write_snapshot
from evidence_engine.services.notifications.email_service import workspace_link
from evidence_engine.services.notifications.fanout import (
    NotificationRequest,
    create_notifications_for_workspace,
)
from evidence_engine.services.pack_queries import unlocked_packs

logger = logging.getLogger(__name__)


def recompute_pack_health(
    db: Session, pack: Pack, now: datetime | None = None
) -> HealthResult:
    """Compute, persist and alert on degradation. Commits snapshot, pointer and alert together."""
    now = now or utcnow()
    previous_status = pack.health_status
    result = compute_pack_health(db, pack, now)
    write_snapshot(db, pack, result, now)
    if status_worsened(previous_status, result.status):
        create_notifications_for_workspace(
            db,
            NotificationRequest(
                workspace_id=pack.workspace_id,
                type="health_degraded",
                title=f"Pack health declined: {pack.name}",
                body=(
                    f"Health changed from {previous_status} to {result.status} "
                    f"(score: {result.score})"
                ),
                link=workspace_link(
                    pack.workspace_id, f"projects/{pack.project_id}/packs/{pack.id}"
                ),
                related_pack_id=pack.id,
                preference_key="notify_health_degraded",
            ),
        )
    db.commit()
    return result


def _in_cooldown(pack: Pack, now: datetime, cooldown_seconds: int) -> bool:
    last = as_utc(pack.last_health_check)
    return last is not None and now - last < timedelta(seconds=cooldown_seconds)


def defer_recompute(db: Session, pack_id: uuid.UUID, now: datetime, cooldown_seconds: int) -> None:
    """Queue one delayed recompute for this pack and cooldown window."""
    window = int(now.timestamp() // cooldown_seconds)
    publish(
        db,
        PACK_HEALTH_RECOMPUTE,
        {"pack_id": pack_id},
        idempotency_key=f"health-coalesce:{pack_id}:{window}",
        delay_seconds=cooldown_seconds,
        now=now,
    )
    db.commit()


def handle_health_recompute(
    db: Session,
    payload: dict[str, Any],
    counters: CounterStore | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    pack_id = uuid.UUID(str(payload["pack_id"]))
    pack = db.get(Pack, pack_id)
    if pack is None:
        raise NotFoundError(f"pack_not_found:{pack_id}")

    now = now or utcnow()
    cooldown = get_settings().health_cooldown_seconds
    counters = counters or get_counter_store()

    if _in_cooldown(pack, now, cooldown) or not counters.set_if_absent(
        f"health-lock:{pack_id}", cooldown
    ):
        defer_recompute(db, pack_id, now, cooldown)
        logger.info("Health recompute coalesced: pack_id=%s", pack_id)
        return {"status": "skipped", "reason": "cooldown", "deferred": True}

    result = recompute_pack_health(db, pack, now)
    return {"status": "completed", "score": result.score, "health_status": result.status}


def recompute_all(db: Session, now: datetime | None = None) -> dict[str, int]:
    """Recompute every unlocked pack. A failing pack is logged and skipped."""
    now = now or utcnow()
    processed = 0
    failed = 0
    packs = unlocked_packs(db)
    for pack in packs:
        try:
            recompute_pack_health(db, pack, now)
            processed += 1
        except Exception:
            db.rollback()
            failed += 1
            logger.exception("Health recompute failed: pack_id=%s", pack.id)
    logger.info("Health sweep: processed=%d failed=%d total=%d", processed, failed, len(packs))
    return {"processed": processed, "failed": failed, "total": len(packs)}


def handle_recompute_all(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    return {"status": "completed", **recompute_all(db)}
