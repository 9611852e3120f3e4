"""Publish events as durable job rows.

publish() only adds a row to the caller's session; the event becomes visible
when the caller commits. Structural writes and the follow-on events they
trigger therefore land atomically or not at all.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from evidence_engine.db.types import utcnow
from evidence_engine.models.job_run import JOB_PENDING, JobRun
from evidence_engine.pipeline.events import EVENT_REGISTRY

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


def publish(
    db: Session,
    event: str,
    payload: dict[str, Any],
    *,
    idempotency_key: str | None = None,
    delay_seconds: int = 0,
    now: datetime | None = None,
) -> JobRun:
    """Enqueue an event. Re-publishing (event, idempotency_key) returns the existing job.

    Raises ValueError for an unknown event name.
    """
    spec = EVENT_REGISTRY.get(event)
    if spec is None:
        raise ValueError(f"Unknown event: {event}")

    if idempotency_key:
        existing = (
            db.query(JobRun)
            .filter(JobRun.job_type == event, JobRun.idempotency_key == idempotency_key)
            .first()
        )
        if existing is not None:
            logger.info(
                "Event already published: event=%s idempotency_key=%s job_id=%s",
                event,
                idempotency_key,
                existing.id,
            )
            return existing

    now = now or utcnow()
    job = JobRun(
        job_type=event,
        payload=_jsonable(payload),
        status=JOB_PENDING,
        retry_count=0,
        max_attempts=spec.max_attempts,
        run_after=now + timedelta(seconds=max(delay_seconds, 0)),
        idempotency_key=idempotency_key,
        created_at=now,
    )
    db.add(job)
    db.flush()
    logger.info(
        "Event published: event=%s job_id=%s delay=%ss", event, job.id, delay_seconds
    )
    return job
