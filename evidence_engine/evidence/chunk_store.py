"""Chunk Store: generations of embedded source chunks.

A generation is the chunk set built from one source version (version_id;
NULL for the initial ingestion). Chunk ids are never reused across
generations; superseded generations are deleted after diffing.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from evidence_engine.chunking import chunk_text
from evidence_engine.llm.provider import EmbeddingProvider
from evidence_engine.models import (
    EvidenceConflict,
    EvidenceLink,
    EvidenceSource,
    SourceChunk,
    SourceVersion,
)

logger = logging.getLogger(__name__)

EMBED_BATCH_SIZE = 64


def _generation_filter(version_id: uuid.UUID | None):
    if version_id is None:
        return SourceChunk.version_id.is_(None)
    return SourceChunk.version_id == version_id


def list_generation(
    db: Session, source_id: uuid.UUID, version_id: uuid.UUID | None
) -> list[SourceChunk]:
    """Chunks of one generation, ordered by chunk_index."""
    return (
        db.query(SourceChunk)
        .filter(SourceChunk.source_id == source_id, _generation_filter(version_id))
        .order_by(SourceChunk.chunk_index.asc())
        .all()
    )


def has_older_generations(
    db: Session, source_id: uuid.UUID, version_id: uuid.UUID | None
) -> bool:
    """True while chunks remain from a generation older than version_id's.

    Each change deletes the generation it diffed from, so a leftover older
    generation means an earlier change of the source is still unprocessed.
    """
    if version_id is None:
        return False
    version = db.get(SourceVersion, version_id)
    if version is None:
        return False
    older_versions = select(SourceVersion.id).where(
        SourceVersion.source_id == source_id,
        SourceVersion.version_number < version.version_number,
    )
    leftover = (
        db.query(SourceChunk.id)
        .filter(
            SourceChunk.source_id == source_id,
            or_(SourceChunk.version_id.is_(None), SourceChunk.version_id.in_(older_versions)),
        )
        .first()
    )
    return leftover is not None


def chunk_source(
    db: Session, source: EvidenceSource, version_id: uuid.UUID | None
) -> list[SourceChunk]:
    """Create the chunk generation for a source version.

    The generation for version_id=None (initial ingestion) is built from the
    source content; any other generation from that version's own snapshot.

    Returns the existing generation unchanged when it was already built.
    Raises chunking.InsufficientContentError for near-empty content.
    """
    existing = list_generation(db, source.id, version_id)
    if existing:
        logger.info(
            "Chunk generation exists: source_id=%s version_id=%s chunks=%d",
            source.id,
            version_id,
            len(existing),
        )
        return existing

    text = source.content or ""
    if version_id is not None:
        version = db.get(SourceVersion, version_id)
        if version is not None:
            text = version.content
    pieces = chunk_text(text, metadata={"source_type": source.source_type})
    rows = [
        SourceChunk(
            source_id=source.id,
            version_id=version_id,
            chunk_index=piece.index,
            content=piece.content,
            token_count=piece.token_count,
            chunk_metadata=piece.metadata,
        )
        for piece in pieces
    ]
    db.add_all(rows)
    db.flush()
    logger.info(
        "Chunked source: source_id=%s version_id=%s chunks=%d",
        source.id,
        version_id,
        len(rows),
    )
    return rows


def embed_chunks(
    db: Session, chunks: Sequence[SourceChunk], provider: EmbeddingProvider
) -> int:
    """Fill missing embeddings. Returns how many chunks were embedded.

    Provider failures leave the remaining embeddings NULL; consumers treat
    such chunks as not yet comparable.
    """
    pending = [c for c in chunks if c.embedding is None]
    embedded = 0
    for start in range(0, len(pending), EMBED_BATCH_SIZE):
        batch = pending[start : start + EMBED_BATCH_SIZE]
        try:
            vectors = provider.embed([c.content for c in batch])
        except Exception as exc:
            logger.warning(
                "Embedding failed for %d chunks (left unembedded): %s", len(batch), exc
            )
            break
        if len(vectors) != len(batch):
            logger.warning(
                "Embedding count mismatch: expected=%d got=%d", len(batch), len(vectors)
            )
            break
        for chunk, vector in zip(batch, vectors):
            chunk.embedding = [float(v) for v in vector]
        embedded += len(batch)
    db.flush()
    return embedded


def delete_chunks(db: Session, chunk_ids: Iterable[uuid.UUID]) -> int:
    """Delete chunks together with the links and conflicts that reference them."""
    ids = list(chunk_ids)
    if not ids:
        return 0
    db.query(EvidenceLink).filter(EvidenceLink.chunk_id.in_(ids)).delete(
        synchronize_session=False
    )
    db.query(EvidenceConflict).filter(
        or_(EvidenceConflict.chunk_a_id.in_(ids), EvidenceConflict.chunk_b_id.in_(ids))
    ).delete(synchronize_session=False)
    deleted = (
        db.query(SourceChunk)
        .filter(SourceChunk.id.in_(ids))
        .delete(synchronize_session=False)
    )
    logger.info("Deleted %d superseded chunks", deleted)
    return deleted


def current_generation_chunks(db: Session, project_id: uuid.UUID) -> list[SourceChunk]:
    """Embedded chunks of each project source's current generation."""
    rows = (
        db.query(SourceChunk)
        .join(EvidenceSource, EvidenceSource.id == SourceChunk.source_id)
        .filter(
            EvidenceSource.project_id == project_id,
            SourceChunk.embedding.is_not(None),
            or_(
                SourceChunk.version_id == EvidenceSource.current_version_id,
                and_(
                    SourceChunk.version_id.is_(None),
                    EvidenceSource.current_version_id.is_(None),
                ),
            ),
        )
        .all()
    )
    return [r for r in rows if r.embedding is not None]


@dataclass(frozen=True)
class SimilarPair:
    chunk_a: SourceChunk
    chunk_b: SourceChunk
    similarity: float


def cosine_similarity_pairs(
    chunks: Sequence[SourceChunk], threshold: float
) -> list[SimilarPair]:
    """Chunk pairs from different sources with cosine similarity above threshold.

    Deterministic: chunks are ordered by (source_id, chunk_index, id) and pairs
    come out in row-major order of that ordering.
    """
    ordered = sorted(
        (c for c in chunks if c.embedding is not None),
        key=lambda c: (str(c.source_id), c.chunk_index, str(c.id)),
    )
    if len(ordered) < 2:
        return []

    matrix = np.asarray([np.asarray(c.embedding, dtype=float) for c in ordered])
    norms = np.linalg.norm(matrix, axis=1)
    valid = norms > 0
    unit = np.zeros_like(matrix)
    unit[valid] = matrix[valid] / norms[valid][:, None]
    sims = unit @ unit.T

    source_keys = np.asarray([str(c.source_id) for c in ordered])
    rows, cols = np.triu_indices(len(ordered), k=1)
    mask = (
        (sims[rows, cols] > threshold)
        & (source_keys[rows] != source_keys[cols])
        & valid[rows]
        & valid[cols]
    )
    return [
        SimilarPair(ordered[i], ordered[j], round(float(sims[i, j]), 4))
        for i, j in zip(rows[mask], cols[mask])
    ]
