"""SourceChunk model: embedded fragment of one source generation."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.config import get_settings
from evidence_engine.db.session import Base
from evidence_engine.db.types import JSONType, embedding_type, utcnow


class SourceChunk(Base):
    """Chunk of a source's content for one generation.

    version_id scopes the chunk id to a (source, version) generation. Chunk
    ids never outlive their generation; ChunkDiff rows are the bridge.
    """

    __tablename__ = "source_chunks"

    __table_args__ = (
        Index("ix_source_chunks_source_version_index", "source_id", "version_id", "chunk_index"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence_sources.id", ondelete="CASCADE"), nullable=False
    )
    version_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("source_versions.id", ondelete="SET NULL"), nullable=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # "metadata" is reserved on declarative classes
    chunk_metadata: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    embedding: Mapped[list[float] | None] = mapped_column(
        embedding_type(get_settings().embedding_dimensions), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
