"""Notification fan-out to workspace members.

In-app rows are written for every member whose preference allows the
notification type. Members on immediate email frequency additionally get an
email job, subject to a per-user hourly cap; a capped email is dropped while
the in-app row stays.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.orm import Session

from evidence_engine.config import get_settings
from evidence_engine.models import Notification, NotificationPreference, WorkspaceMember
from evidence_engine.models.notification_preference import PREFERENCE_KEYS
from evidence_engine.pipeline.bus import publish
from evidence_engine.pipeline.counters import CounterStore, get_counter_store
from evidence_engine.pipeline.events import NOTIFICATION_EMAIL_SEND

logger = logging.getLogger(__name__)

IMMEDIATE_EMAIL_WINDOW_SECONDS = 3600

NOTIFICATION_TYPES = (
    "source_changed",
    "conflict_detected",
    "health_degraded",
    "delivery_feedback",
    "email_ingested",
)


@dataclass(frozen=True)
class NotificationRequest:
    workspace_id: uuid.UUID
    type: str
    title: str
    preference_key: str
    body: str | None = None
    link: str | None = None
    related_pack_id: uuid.UUID | None = None
    related_source_id: uuid.UUID | None = None


@dataclass
class FanoutResult:
    notified_user_ids: list[int]
    emails_queued: int = 0
    emails_dropped: int = 0

    @property
    def count(self) -> int:
        return len(self.notified_user_ids)


def _eligible_members(
    db: Session, workspace_id: uuid.UUID, preference_key: str
) -> list[tuple[int, NotificationPreference | None]]:
    members = (
        db.query(WorkspaceMember.user_id)
        .filter(WorkspaceMember.workspace_id == workspace_id)
        .order_by(WorkspaceMember.user_id.asc())
        .all()
    )
    user_ids = [m[0] for m in members]
    if not user_ids:
        return []
    prefs = {
        p.user_id: p
        for p in db.query(NotificationPreference)
        .filter(
            NotificationPreference.workspace_id == workspace_id,
            NotificationPreference.user_id.in_(user_ids),
        )
        .all()
    }
    eligible = []
    for user_id in user_ids:
        pref = prefs.get(user_id)
        enabled = getattr(pref, preference_key, None) if pref is not None else None
        # Unset preference means enabled
        if enabled is None or enabled:
            eligible.append((user_id, pref))
    return eligible


def queue_immediate_email(
    db: Session,
    counters: CounterStore,
    user_id: int,
    request: NotificationRequest,
) -> bool:
    """Publish an email job unless the user's hourly cap is exhausted. Returns True if queued.

    The counter lives outside the database transaction, so it is charged
    before the caller commits. A fan-out that later rolls back (and is retried)
    still spends that slot; the cap errs towards fewer emails, never more.
    """
    limit = get_settings().immediate_email_limit_per_hour
    count = counters.incr_with_expiry(
        f"immediate-email:{user_id}", IMMEDIATE_EMAIL_WINDOW_SECONDS
    )
    if count > limit:
        logger.info(
            "Immediate email rate limited: user_id=%s count=%d limit=%d",
            user_id,
            count,
            limit,
        )
        return False
    publish(
        db,
        NOTIFICATION_EMAIL_SEND,
        {
            "user_id": user_id,
            "workspace_id": request.workspace_id,
            "title": request.title,
            "body": request.body or "",
            "link": request.link,
        },
    )
    return True


def create_notifications_for_workspace(
    db: Session,
    request: NotificationRequest,
    counters: CounterStore | None = None,
) -> FanoutResult:
    """Add one Notification per eligible member and queue immediate emails.

    Rows are flushed, not committed: the caller commits them together with
    whatever state change the notification reports.
    Raises ValueError for an unknown notification type or preference key.
    """
    if request.type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {request.type}")
    if request.preference_key not in PREFERENCE_KEYS:
        raise ValueError(f"Unknown preference key: {request.preference_key}")

    eligible = _eligible_members(db, request.workspace_id, request.preference_key)
    if not eligible:
        return FanoutResult(notified_user_ids=[])

    db.add_all(
        [
            Notification(
                workspace_id=request.workspace_id,
                user_id=user_id,
                type=request.type,
                title=request.title,
                body=request.body,
                link=request.link,
                related_pack_id=request.related_pack_id,
                related_source_id=request.related_source_id,
            )
            for user_id, _ in eligible
        ]
    )
    db.flush()

    result = FanoutResult(notified_user_ids=[user_id for user_id, _ in eligible])
    if request.link:
        counters = counters or get_counter_store()
        for user_id, pref in eligible:
            if pref is None or pref.email_frequency != "immediate":
                continue
            if queue_immediate_email(db, counters, user_id, request):
                result.emails_queued += 1
            else:
                result.emails_dropped += 1

    logger.info(
        "Notifications created: workspace_id=%s type=%s recipients=%d emails=%d dropped=%d",
        request.workspace_id,
        request.type,
        result.count,
        result.emails_queued,
        result.emails_dropped,
    )
    return result
