"""health/digest handler: periodic email of packs that need attention.

Recipients are workspace members whose email_frequency matches the run
("daily" or "weekly"). Each gets one email covering the packs of all their
digest workspaces that are not healthy, worst status tier first and lowest
score first within a tier. Every pack carries its weakest factor from the
latest HealthSnapshot. Users with nothing to report get no email.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import and_
from sqlalchemy.orm import Session

from evidence_engine.config import get_settings
from evidence_engine.db.types import utcnow
from evidence_engine.models import (
    HealthSnapshot,
    JobRun,
    NotificationPreference,
    Pack,
    Project,
    User,
    WorkspaceMember,
)
from evidence_engine.pipeline.bus import publish
from evidence_engine.pipeline.events import HEALTH_DIGEST
from evidence_engine.services.health.constants import (
    FACTOR_DELIVERY_FEEDBACK,
    FACTOR_EVIDENCE_COVERAGE,
    FACTOR_QA_PASS_RATE,
    FACTOR_SOURCE_AGE,
    FACTOR_SOURCE_DRIFT,
    STATUS_HEALTHY,
    STATUS_TIER_ORDER,
)
from evidence_engine.services.notifications.email_service import (
    send_health_digest_email,
    workspace_link,
)

logger = logging.getLogger(__name__)

DIGEST_FREQUENCIES = ("daily", "weekly")

# Factor -> (HealthSnapshot column, label), in tie-break order
FACTOR_COLUMNS = {
    FACTOR_SOURCE_DRIFT: ("source_drift", "Source drift"),
    FACTOR_EVIDENCE_COVERAGE: ("evidence_coverage", "Evidence coverage"),
    FACTOR_QA_PASS_RATE: ("qa_pass_rate", "QA pass rate"),
    FACTOR_DELIVERY_FEEDBACK: ("delivery_feedback", "Delivery feedback"),
    FACTOR_SOURCE_AGE: ("source_age", "Source age"),
}


@dataclass(frozen=True)
class DigestPack:
    pack_id: uuid.UUID
    name: str
    project_name: str
    health_score: int | None
    health_status: str
    top_issue: str
    link: str


def weakest_factor(snapshot: HealthSnapshot | None) -> str:
    """'<label>: <score>%' for the lowest factor; the first listed wins ties."""
    if snapshot is None:
        return "Unknown"
    scored = [
        (getattr(snapshot, column), label)
        for column, label in FACTOR_COLUMNS.values()
        if getattr(snapshot, column) is not None
    ]
    if not scored:
        return "Unknown"
    value, label = min(scored, key=lambda item: item[0])
    return f"{label}: {value}%"


def digest_recipients(db: Session, frequency: str) -> dict[int, list[uuid.UUID]]:
    """user_id -> workspaces where the user is a member and chose this frequency."""
    rows = (
        db.query(NotificationPreference.user_id, NotificationPreference.workspace_id)
        .join(
            WorkspaceMember,
            and_(
                WorkspaceMember.workspace_id == NotificationPreference.workspace_id,
                WorkspaceMember.user_id == NotificationPreference.user_id,
            ),
        )
        .filter(NotificationPreference.email_frequency == frequency)
        .order_by(NotificationPreference.user_id.asc(), NotificationPreference.id.asc())
        .all()
    )
    recipients: dict[int, list[uuid.UUID]] = {}
    for user_id, workspace_id in rows:
        workspaces = recipients.setdefault(user_id, [])
        if workspace_id not in workspaces:
            workspaces.append(workspace_id)
    return recipients


def _latest_snapshots(
    db: Session, pack_ids: Sequence[uuid.UUID]
) -> dict[uuid.UUID, HealthSnapshot]:
    latest: dict[uuid.UUID, HealthSnapshot] = {}
    snapshots = (
        db.query(HealthSnapshot)
        .filter(HealthSnapshot.pack_id.in_(list(pack_ids)))
        .order_by(HealthSnapshot.computed_at.desc(), HealthSnapshot.id.desc())
        .all()
    )
    for snapshot in snapshots:
        latest.setdefault(snapshot.pack_id, snapshot)
    return latest


def packs_needing_attention(
    db: Session, workspace_ids: Sequence[uuid.UUID]
) -> list[DigestPack]:
    """Scored packs that are not healthy, outdated first, then at_risk, then stale."""
    if not workspace_ids:
        return []
    rows = (
        db.query(Pack, Project.name)
        .join(Project, Project.id == Pack.project_id)
        .filter(
            Pack.workspace_id.in_(list(workspace_ids)),
            Pack.health_status.is_not(None),
            Pack.health_status != STATUS_HEALTHY,
        )
        .all()
    )
    rows.sort(
        key=lambda row: (
            -STATUS_TIER_ORDER.get(row[0].health_status, 0),
            row[0].health_score if row[0].health_score is not None else 101,
            row[0].name,
        )
    )
    snapshots = _latest_snapshots(db, [pack.id for pack, _ in rows])
    return [
        DigestPack(
            pack_id=pack.id,
            name=pack.name,
            project_name=project_name,
            health_score=pack.health_score,
            health_status=pack.health_status,
            top_issue=weakest_factor(snapshots.get(pack.id)),
            link=workspace_link(
                pack.workspace_id, f"projects/{pack.project_id}/packs/{pack.id}"
            ),
        )
        for pack, project_name in rows
    ]


def digest_period(frequency: str, now: datetime) -> str:
    """Calendar day for daily digests, ISO week for weekly ones."""
    if frequency == "weekly":
        year, week, _ = now.isocalendar()
        return f"{year}-W{week:02d}"
    return now.date().isoformat()


def queue_health_digest(db: Session, frequency: str, now: datetime | None = None) -> JobRun:
    """Publish one digest job per frequency and period. Flushes, does not commit.

    Raises ValueError for an unknown frequency.
    """
    if frequency not in DIGEST_FREQUENCIES:
        raise ValueError(f"Unknown digest frequency: {frequency}")
    now = now or utcnow()
    return publish(
        db,
        HEALTH_DIGEST,
        {"frequency": frequency},
        idempotency_key=f"health-digest:{frequency}:{digest_period(frequency, now)}",
        now=now,
    )


def handle_health_digest(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    """Send the digest for one frequency. A failed send is logged, not retried."""
    frequency = payload.get("frequency")
    if frequency not in DIGEST_FREQUENCIES:
        return {"status": "skipped", "reason": "invalid_frequency"}
    settings = get_settings()
    if not settings.smtp_host:
        return {"status": "skipped", "reason": "smtp_not_configured"}

    users_processed = 0
    emails_sent = 0
    for user_id, workspace_ids in digest_recipients(db, frequency).items():
        packs = packs_needing_attention(db, workspace_ids)
        if not packs:
            continue
        user = db.get(User, user_id)
        if user is None or not user.email:
            continue
        users_processed += 1
        sent = send_health_digest_email(
            user.email, packs, user_name=user.name or "there", settings=settings
        )
        if sent:
            emails_sent += 1
        else:
            logger.warning("Health digest not delivered: user_id=%s", user_id)

    logger.info(
        "Health digest done: frequency=%s users=%d sent=%d",
        frequency,
        users_processed,
        emails_sent,
    )
    return {
        "status": "completed",
        "frequency": frequency,
        "users_processed": users_processed,
        "emails_sent": emails_sent,
    }
