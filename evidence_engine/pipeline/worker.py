"""Job worker: claim due events, run handlers, record outcome and retries."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from evidence_engine.config import get_settings
from evidence_engine.db.session import is_postgresql
from evidence_engine.db.types import utcnow
from evidence_engine.models.job_run import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_RUNNING,
    JOB_SKIPPED,
    JobRun,
)
from evidence_engine.pipeline.errors import DeferredError, NotFoundError
from evidence_engine.pipeline.events import EVENT_REGISTRY

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _default_session_factory() -> SessionFactory:
    from evidence_engine.db.session import SessionLocal

    return SessionLocal


def retry_delay_seconds(retry_count: int) -> int:
    """Exponential backoff: base, 2x base, 4x base ... after the 1st, 2nd, 3rd failure."""
    base = get_settings().job_retry_backoff_seconds
    return base * (2 ** max(retry_count - 1, 0))


def claim_due_jobs(db: Session, limit: int, now: datetime) -> list[int]:
    """Mark up to `limit` due pending jobs as running and return their ids.

    On PostgreSQL rows are locked with FOR UPDATE SKIP LOCKED so concurrent
    workers never claim the same job.
    """
    query = (
        db.query(JobRun)
        .filter(JobRun.status == JOB_PENDING, JobRun.run_after <= now)
        .order_by(JobRun.run_after.asc(), JobRun.id.asc())
        .limit(limit)
    )
    if is_postgresql(db):
        query = query.with_for_update(skip_locked=True)
    jobs = query.all()
    for job in jobs:
        job.status = JOB_RUNNING
        job.started_at = now
    db.commit()
    return [job.id for job in jobs]


def _record_failure(db: Session, job_id: int, error: str, now: datetime) -> str:
    job = db.get(JobRun, job_id)
    job.retry_count = (job.retry_count or 0) + 1
    job.error_message = error[:2000]
    if job.retry_count >= job.max_attempts:
        job.status = JOB_FAILED
        job.finished_at = now
        logger.error(
            "Job failed permanently: job_id=%s job_type=%s attempts=%d error=%s",
            job.id,
            job.job_type,
            job.retry_count,
            error,
        )
    else:
        delay = retry_delay_seconds(job.retry_count)
        job.status = JOB_PENDING
        job.run_after = now + timedelta(seconds=delay)
        logger.warning(
            "Job attempt failed, retrying in %ss: job_id=%s job_type=%s attempt=%d error=%s",
            delay,
            job.id,
            job.job_type,
            job.retry_count,
            error,
        )
    db.commit()
    return job.status


def _record_deferral(db: Session, job_id: int, exc: DeferredError, now: datetime) -> str:
    settings = get_settings()
    job = db.get(JobRun, job_id)
    job.defer_count = (job.defer_count or 0) + 1
    if job.defer_count > settings.job_max_deferrals:
        return _record_failure(db, job_id, f"deferred too often: {exc.reason}", now)
    delay = exc.delay_seconds if exc.delay_seconds is not None else settings.job_defer_seconds
    job.status = JOB_PENDING
    job.run_after = now + timedelta(seconds=delay)
    job.error_message = None
    db.commit()
    logger.info(
        "Job deferred %ss: job_id=%s job_type=%s reason=%s deferrals=%d",
        delay,
        job.id,
        job.job_type,
        exc.reason,
        job.defer_count,
    )
    return JOB_PENDING


def run_job(session_factory: SessionFactory, job_id: int, now: datetime | None = None) -> str:
    """Run one claimed job in its own session. Returns the job's resulting status."""
    now = now or utcnow()
    db = session_factory()
    try:
        job = db.get(JobRun, job_id)
        if job is None:
            logger.warning("Job vanished before run: job_id=%s", job_id)
            return JOB_SKIPPED
        spec = EVENT_REGISTRY.get(job.job_type)
        if spec is None:
            job.status = JOB_FAILED
            job.error_message = f"Unknown event: {job.job_type}"
            job.finished_at = now
            db.commit()
            logger.error("Unknown event type: job_id=%s job_type=%s", job.id, job.job_type)
            return JOB_FAILED

        job_type = job.job_type
        payload = dict(job.payload or {})
        try:
            result = spec.handler(db, payload)
        except DeferredError as exc:
            db.rollback()
            return _record_deferral(db, job_id, exc, now)
        except NotFoundError as exc:
            db.rollback()
            if exc.transient:
                return _record_failure(db, job_id, f"not_found: {exc.reason}", now)
            job = db.get(JobRun, job_id)
            job.status = JOB_SKIPPED
            job.result = {"status": "skipped", "reason": exc.reason}
            job.finished_at = now
            db.commit()
            logger.info(
                "Job skipped: job_id=%s job_type=%s reason=%s", job_id, job_type, exc.reason
            )
            return JOB_SKIPPED
        except Exception as exc:
            db.rollback()
            return _record_failure(db, job_id, f"{type(exc).__name__}: {exc}", now)

        job = db.get(JobRun, job_id)
        result = dict(result or {})
        job.status = JOB_SKIPPED if result.get("status") == "skipped" else JOB_COMPLETED
        job.result = result
        job.error_message = None
        job.finished_at = now
        db.commit()
        logger.info(
            "Job finished: job_id=%s job_type=%s status=%s", job_id, job_type, job.status
        )
        return job.status
    finally:
        db.close()


def run_pending_jobs(
    session_factory: SessionFactory | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    """Claim and run due jobs. Returns counts per resulting status."""
    session_factory = session_factory or _default_session_factory()
    limit = limit or get_settings().job_batch_size
    now = now or utcnow()

    claim_db = session_factory()
    try:
        job_ids = claim_due_jobs(claim_db, limit, now)
    finally:
        claim_db.close()

    counts: dict[str, int] = {"claimed": len(job_ids)}
    for job_id in job_ids:
        status = run_job(session_factory, job_id, now)
        counts[status] = counts.get(status, 0) + 1
    if job_ids:
        logger.info("Worker batch done: %s", counts)
    return counts
