"""EvidenceConflict model: judged contradiction between two chunks."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.db.session import Base
from evidence_engine.db.types import utcnow


def conflict_pair_key(chunk_a_id: uuid.UUID, chunk_b_id: uuid.UUID) -> str:
    """Order-independent key for a chunk pair."""
    low, high = sorted((str(chunk_a_id), str(chunk_b_id)))
    return f"{low}:{high}"


class EvidenceConflict(Base):
    """Unordered chunk pair; pair_key is unique so (A, B) and (B, A) collide."""

    __tablename__ = "evidence_conflicts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_a_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("source_chunks.id", ondelete="CASCADE"), nullable=False
    )
    chunk_b_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("source_chunks.id", ondelete="CASCADE"), nullable=False
    )
    pair_key: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="open", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
