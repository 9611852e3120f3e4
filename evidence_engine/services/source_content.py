"""Source content handoff from the extraction flow.

First ingestion stores the text and queues chunk-and-embed for the initial
generation. A replacement snapshots the old and new text as two immutable
SourceVersions, points the source at the new one and queues chunk-and-embed
in replace mode. Re-delivering the same text is a no-op.
"""

from __future__ import annotations

import hashlib
import logging
import uuid

from sqlalchemy import func
from sqlalchemy.orm import Session

from evidence_engine.chunking.chunker import has_sufficient_content
from evidence_engine.db.types import utcnow
from evidence_engine.models import EvidenceSource, SourceVersion
from evidence_engine.pipeline.bus import publish
from evidence_engine.pipeline.errors import NotFoundError
from evidence_engine.pipeline.events import SOURCE_CHUNK_AND_EMBED

logger = logging.getLogger(__name__)


def content_sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _next_version_number(db: Session, source_id: uuid.UUID) -> int:
    current = (
        db.query(func.max(SourceVersion.version_number))
        .filter(SourceVersion.source_id == source_id)
        .scalar()
    )
    return (current or 0) + 1


def replace_source_content(
    db: Session,
    source_id: uuid.UUID,
    content: str,
    content_hash: str | None = None,
) -> dict:
    """Accept extracted text for a source. Commits on success.

    Returns a result dict: mode "initial" or "replace" when work was queued,
    status "skipped" for unchanged or insufficient content.
    Raises NotFoundError if the source does not exist.
    """
    source = db.get(EvidenceSource, source_id)
    if source is None:
        raise NotFoundError(f"source_not_found:{source_id}")

    text = (content or "").strip()
    if not has_sufficient_content(text):
        source.status = "failed"
        source.updated_at = utcnow()
        db.commit()
        logger.info("Source content insufficient: source_id=%s", source_id)
        return {"status": "skipped", "reason": "insufficient_content", "source_id": str(source_id)}

    new_hash = content_hash or content_sha256(text)

    if not source.content:
        source.content = text
        source.content_hash = new_hash
        source.status = "processing"
        source.updated_at = utcnow()
        publish(
            db,
            SOURCE_CHUNK_AND_EMBED,
            {"source_id": source.id, "replace": False},
            idempotency_key=f"{source.id}:initial",
        )
        db.commit()
        logger.info("Source ingested: source_id=%s", source_id)
        return {"status": "completed", "mode": "initial", "source_id": str(source_id)}

    old_hash = source.content_hash or content_sha256(source.content)
    if old_hash == new_hash:
        logger.info("Source content unchanged: source_id=%s", source_id)
        return {"status": "skipped", "reason": "unchanged", "source_id": str(source_id)}

    number = _next_version_number(db, source.id)
    new_id = uuid.uuid4()
    previous = SourceVersion(
        source_id=source.id,
        version_number=number,
        content=source.content,
        content_hash=old_hash,
        generation_version_id=source.current_version_id,
    )
    new = SourceVersion(
        id=new_id,
        source_id=source.id,
        version_number=number + 1,
        content=text,
        content_hash=new_hash,
        generation_version_id=new_id,
    )
    db.add_all([previous, new])
    db.flush()

    source.content = text
    source.content_hash = new_hash
    source.status = "processing"
    source.current_version_id = new.id
    source.updated_at = utcnow()
    publish(
        db,
        SOURCE_CHUNK_AND_EMBED,
        {
            "source_id": source.id,
            "replace": True,
            "new_version_id": new.id,
            "previous_version_id": previous.id,
        },
        idempotency_key=f"{source.id}:{new.id}",
    )
    db.commit()
    logger.info(
        "Source content replaced: source_id=%s versions=%d->%d",
        source_id,
        previous.version_number,
        new.version_number,
    )
    return {
        "status": "completed",
        "mode": "replace",
        "source_id": str(source_id),
        "previous_version_id": str(previous.id),
        "new_version_id": str(new.id),
    }
