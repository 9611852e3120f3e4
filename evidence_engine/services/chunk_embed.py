"""source/chunk-and-embed handler: build and embed a chunk generation."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from evidence_engine.chunking.chunker import InsufficientContentError
from evidence_engine.db.types import utcnow
from evidence_engine.evidence.chunk_store import chunk_source, embed_chunks, list_generation
from evidence_engine.llm.router import get_embedding_provider
from evidence_engine.models import EvidenceSource, SourceVersion
from evidence_engine.pipeline.bus import publish
from evidence_engine.pipeline.errors import DeferredError, NotFoundError
from evidence_engine.pipeline.events import SOURCE_CHUNKS_EMBEDDED, SOURCE_VERSION_CREATED

logger = logging.getLogger(__name__)


def handle_chunk_and_embed(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    source_id = uuid.UUID(str(payload["source_id"]))
    source = db.get(EvidenceSource, source_id)
    if source is None:
        raise NotFoundError(f"source_not_found:{source_id}")

    replace = bool(payload.get("replace"))
    new_version_id: uuid.UUID | None = None
    previous_version_id: uuid.UUID | None = None
    old_ids: list[uuid.UUID] = []
    if replace:
        new_version_id = uuid.UUID(str(payload["new_version_id"]))
        previous_version_id = uuid.UUID(str(payload["previous_version_id"]))
        previous = db.get(SourceVersion, previous_version_id)
        if db.get(SourceVersion, new_version_id) is None or previous is None:
            raise NotFoundError(f"version_not_found:{new_version_id}")
        # The generation the previous text was chunked as; built by an earlier job
        old_ids = [c.id for c in list_generation(db, source.id, previous.generation_version_id)]
        if not old_ids and not list_generation(db, source.id, new_version_id):
            raise DeferredError(f"previous_generation_not_built:{source_id}")

    try:
        chunks = chunk_source(db, source, new_version_id)
    except InsufficientContentError as exc:
        source.status = "failed"
        source.updated_at = utcnow()
        db.commit()
        logger.info("Chunking skipped: source_id=%s reason=%s", source_id, exc.reason)
        return {"status": "skipped", "reason": exc.reason}

    try:
        provider = get_embedding_provider()
    except ValueError as exc:
        logger.warning("Embedding provider unavailable, chunks left unembedded: %s", exc)
        provider = None
    embedded = embed_chunks(db, chunks, provider) if provider is not None else 0

    source.status = "completed"
    source.updated_at = utcnow()

    if replace:
        publish(
            db,
            SOURCE_VERSION_CREATED,
            {
                "source_id": source.id,
                "new_version_id": new_version_id,
                "previous_version_id": previous_version_id,
                "old_chunk_ids": old_ids,
                "new_chunk_ids": [c.id for c in chunks],
            },
            idempotency_key=str(new_version_id),
        )
    publish(
        db,
        SOURCE_CHUNKS_EMBEDDED,
        {"source_id": source.id, "project_id": source.project_id},
        idempotency_key=f"{source.id}:{new_version_id or 'initial'}",
    )
    db.commit()

    logger.info(
        "Chunk-and-embed done: source_id=%s version_id=%s chunks=%d embedded=%d",
        source_id,
        new_version_id,
        len(chunks),
        embedded,
    )
    return {
        "status": "completed",
        "chunk_count": len(chunks),
        "embedded_count": embedded,
    }
