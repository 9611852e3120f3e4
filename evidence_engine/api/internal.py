"""Internal job endpoints for the extraction flow, cron and scripts.

These endpoints are secured with a static token (X-Internal-Token header).
They are meant for automated triggers only.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from evidence_engine.api.deps import get_db, parse_uuid_or_422, require_internal_token
from evidence_engine.pipeline.errors import NotFoundError
from evidence_engine.schemas.source import ContentHandoffRequest, ContentHandoffResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", include_in_schema=False)


@router.post("/sources/content", response_model=ContentHandoffResponse)
async def source_content(
    body: ContentHandoffRequest,
    db: Session = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Accept extracted text for a source (first ingestion or replacement)."""
    from evidence_engine.services.source_content import replace_source_content

    try:
        result = replace_source_content(db, body.source_id, body.content, body.content_hash)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.reason) from None
    return ContentHandoffResponse(**result)


@router.post("/run_worker")
async def run_worker(
    _token: None = Depends(require_internal_token),
    limit: int | None = Query(None, ge=1, le=500, description="Max jobs to run"),
):
    """Drain due jobs once. Returns counts per resulting job status."""
    from evidence_engine.pipeline.worker import run_pending_jobs

    try:
        counts = run_pending_jobs(limit=limit)
        return {"status": "completed", **counts}
    except Exception as exc:
        logger.exception("Internal worker run failed")
        return {"status": "failed", "error": str(exc)}


@router.post("/retry_summaries")
async def retry_summaries(
    db: Session = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Resolve pending impact summaries (fallback after repeated failures)."""
    from evidence_engine.services.impact_summary import retry_pending_summaries

    try:
        return {"status": "completed", **retry_pending_summaries(db)}
    except Exception as exc:
        logger.exception("Internal summary retry failed")
        return {"status": "failed", "error": str(exc)}


@router.post("/recompute_health")
async def recompute_health(
    db: Session = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Recompute health for every unlocked pack (daily sweep)."""
    from evidence_engine.services.health.recompute import recompute_all

    try:
        return {"status": "completed", **recompute_all(db)}
    except Exception as exc:
        logger.exception("Internal health sweep failed")
        return {"status": "failed", "error": str(exc)}


@router.post("/detect_conflicts")
async def detect_conflicts(
    project_id: str = Query(..., description="Project UUID"),
    db: Session = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Queue a conflict scan for a project."""
    from evidence_engine.models import Project
    from evidence_engine.pipeline.bus import publish
    from evidence_engine.pipeline.events import PROJECT_DETECT_CONFLICTS

    project_uuid = parse_uuid_or_422(project_id, "project_id")
    if db.get(Project, project_uuid) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    job = publish(db, PROJECT_DETECT_CONFLICTS, {"project_id": project_uuid})
    db.commit()
    return {"status": "queued", "job_run_id": job.id}


@router.post("/health_digest")
async def health_digest(
    frequency: str = Query(..., description="daily or weekly"),
    db: Session = Depends(get_db),
    _token: None = Depends(require_internal_token),
):
    """Queue the health digest for one frequency; repeats within a period are no-ops."""
    from evidence_engine.services.notifications.health_digest import queue_health_digest

    try:
        job = queue_health_digest(db, frequency)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    db.commit()
    return {"status": "queued", "job_run_id": job.id}
