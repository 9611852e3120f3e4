"""ChangeImpact model: how one source version change affects one pack."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.db.session import Base
from evidence_engine.db.types import JSONType, utcnow

SEVERITIES = ("minor", "moderate", "major")
SUMMARY_PENDING = "pending"
SUMMARY_RESOLVED = "resolved"


class ChangeImpact(Base):
    """One row per (source_version, pack).

    summary_state moves pending -> resolved exactly once, either from the
    finalize step or the retry sweep (which substitutes a fallback sentence
    when summary_retry_count is exhausted).
    """

    __tablename__ = "change_impacts"

    __table_args__ = (
        UniqueConstraint(
            "source_version_id", "pack_id", name="uq_change_impacts_version_pack"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence_sources.id", ondelete="CASCADE"), nullable=False
    )
    pack_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("packs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_version_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("source_versions.id", ondelete="CASCADE"), nullable=False
    )
    affected_story_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    affected_ac_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    affected_story_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    affected_ac_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    removed_chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    modified_chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary_state: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SUMMARY_PENDING
    )
    summary_retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    acknowledged_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
