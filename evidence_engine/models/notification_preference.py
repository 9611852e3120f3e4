"""NotificationPreference model: per-member notification switches."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from evidence_engine.db.session import Base

PREFERENCE_KEYS = (
    "notify_source_changes",
    "notify_delivery_feedback",
    "notify_health_degraded",
    "notify_email_ingested",
)
EMAIL_FREQUENCIES = ("immediate", "daily", "weekly", "never")


class NotificationPreference(Base):
    """Per (workspace, user) notification settings.

    A NULL preference flag means "never set" and is treated as enabled.
    """

    __tablename__ = "notification_preferences"

    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "user_id", name="uq_notification_preferences_workspace_user"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workspace_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    notify_source_changes: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    notify_delivery_feedback: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    notify_health_degraded: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    notify_email_ingested: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    email_frequency: Mapped[str] = mapped_column(
        String(16), default="daily", nullable=False
    )
