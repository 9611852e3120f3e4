"""ChunkDiff model: old/new chunk mapping between two source versions."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.db.session import Base
from evidence_engine.db.types import utcnow

DIFF_TYPES = ("added", "removed", "modified")


class ChunkDiff(Base):
    """One added/removed/modified mapping for (source, new_version).

    old_chunk_id / new_chunk_id are deliberately not foreign keys: superseded
    chunks are deleted after diffing, while these rows (and the inline content)
    remain the durable record.
    """

    __tablename__ = "chunk_diffs"

    __table_args__ = (
        Index("ix_chunk_diffs_source_new_version", "source_id", "new_version_id"),
        Index("ix_chunk_diffs_source_created_at", "source_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence_sources.id", ondelete="CASCADE"), nullable=False
    )
    old_version_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("source_versions.id", ondelete="SET NULL"), nullable=True
    )
    new_version_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("source_versions.id", ondelete="CASCADE"), nullable=False
    )
    diff_type: Mapped[str] = mapped_column(String(16), nullable=False)
    old_chunk_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    new_chunk_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    similarity_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    old_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
