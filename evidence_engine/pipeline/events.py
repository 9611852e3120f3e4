"""Event names and the handler registry.

Handlers receive (db, payload) and return a result dict with at least a
"status" key. They own their transaction: commit on success, leave rollback to
the worker on error. Imports are lazy so the registry can be loaded without
pulling every service into memory.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

SOURCE_CHUNK_AND_EMBED = "source/chunk-and-embed"
SOURCE_VERSION_CREATED = "source/version.created"
SOURCE_CHUNKS_EMBEDDED = "source/chunks.embedded"
PROJECT_DETECT_CONFLICTS = "project/detect-conflicts"
PACK_HEALTH_RECOMPUTE = "pack/health.recompute"
HEALTH_RECOMPUTE_ALL = "health/recompute-all"
IMPACT_FINALIZE = "impact/finalize"
IMPACT_RETRY_SUMMARIES = "impact/retry-summaries"
NOTIFICATION_EMAIL_SEND = "notification/email.send"
HEALTH_DIGEST = "health/digest"

Handler = Callable[[Session, dict[str, Any]], dict[str, Any]]


@dataclass(frozen=True)
class EventSpec:
    handler: Handler
    max_attempts: int


def _chunk_and_embed(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    from evidence_engine.services.chunk_embed import handle_chunk_and_embed

    return handle_chunk_and_embed(db, payload)


def _version_created(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    from evidence_engine.services.impact_propagator import handle_version_created

    return handle_version_created(db, payload)


def _detect_conflicts(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    """Both chunks.embedded and detect-conflicts run the same project scan."""
    from evidence_engine.services.conflict_detection import handle_detect_conflicts

    return handle_detect_conflicts(db, payload)


def _health_recompute(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    from evidence_engine.services.health.recompute import handle_health_recompute

    return handle_health_recompute(db, payload)


def _health_recompute_all(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    from evidence_engine.services.health.recompute import handle_recompute_all

    return handle_recompute_all(db, payload)


def _impact_finalize(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    from evidence_engine.services.impact_summary import handle_finalize_impact

    return handle_finalize_impact(db, payload)


def _impact_retry_summaries(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    from evidence_engine.services.impact_summary import handle_retry_summaries

    return handle_retry_summaries(db, payload)


def _email_send(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    from evidence_engine.services.notifications.email_service import handle_email_send

    return handle_email_send(db, payload)


def _health_digest(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    from evidence_engine.services.notifications.health_digest import handle_health_digest

    return handle_health_digest(db, payload)


EVENT_REGISTRY: dict[str, EventSpec] = {
    SOURCE_CHUNK_AND_EMBED: EventSpec(_chunk_and_embed, max_attempts=3),
    SOURCE_VERSION_CREATED: EventSpec(_version_created, max_attempts=3),
    SOURCE_CHUNKS_EMBEDDED: EventSpec(_detect_conflicts, max_attempts=2),
    PROJECT_DETECT_CONFLICTS: EventSpec(_detect_conflicts, max_attempts=2),
    PACK_HEALTH_RECOMPUTE: EventSpec(_health_recompute, max_attempts=3),
    HEALTH_RECOMPUTE_ALL: EventSpec(_health_recompute_all, max_attempts=3),
    IMPACT_FINALIZE: EventSpec(_impact_finalize, max_attempts=3),
    IMPACT_RETRY_SUMMARIES: EventSpec(_impact_retry_summaries, max_attempts=2),
    NOTIFICATION_EMAIL_SEND: EventSpec(_email_send, max_attempts=2),
    HEALTH_DIGEST: EventSpec(_health_digest, max_attempts=2),
}
