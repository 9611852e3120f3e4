"""In-app notification fan-out and immediate email delivery."""

from evidence_engine.services.notifications.fanout import (
    NotificationRequest,
    create_notifications_for_workspace,
)

__all__ = ["NotificationRequest", "create_notifications_for_workspace"]
