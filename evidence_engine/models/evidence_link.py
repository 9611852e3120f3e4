"""EvidenceLink model: chunk -> story / acceptance criterion association."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.db.session import Base
from evidence_engine.db.types import utcnow

CONFIDENCE_TIERS = ("high", "medium", "low")
EVOLUTION_STATUSES = ("new", "strengthened", "contradicted", "unchanged", "removed")


class EvidenceLink(Base):
    """Link from a chunk to an artifact; use evidence.entity_ref for the (type, id) pair.

    Links die with their chunk (ON DELETE CASCADE) unless carried forward to
    the next generation first.
    """

    __tablename__ = "evidence_links"

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "entity_id", "chunk_id", name="uq_evidence_links_entity_chunk"
        ),
        Index("ix_evidence_links_entity", "entity_type", "entity_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    chunk_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("source_chunks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    confidence: Mapped[str] = mapped_column(String(16), nullable=False)
    evolution_status: Mapped[str] = mapped_column(String(16), default="new", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
