"""Event/job bus: durable job rows, handler registry, worker."""

from evidence_engine.pipeline.bus import publish
from evidence_engine.pipeline.errors import NotFoundError
from evidence_engine.pipeline.worker import run_pending_jobs

__all__ = ["NotFoundError", "publish", "run_pending_jobs"]
