"""HealthSnapshot model: append-only pack health history."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.db.session import Base
from evidence_engine.db.types import JSONType, utcnow


class HealthSnapshot(Base):
    """Composite score, status and the five factor scores at computed_at."""

    __tablename__ = "health_snapshots"

    __table_args__ = (
        Index("ix_health_snapshots_pack_computed_at", "pack_id", "computed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pack_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("packs.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    source_drift: Mapped[int] = mapped_column(Integer, nullable=False)
    evidence_coverage: Mapped[int] = mapped_column(Integer, nullable=False)
    qa_pass_rate: Mapped[int] = mapped_column(Integer, nullable=False)
    delivery_feedback: Mapped[int] = mapped_column(Integer, nullable=False)
    source_age: Mapped[int] = mapped_column(Integer, nullable=False)
    explain: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
