"""Notification email delivery: immediate messages and the health digest."""

from __future__ import annotations

import html
import logging
import smtplib
import uuid
from collections.abc import Sequence
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from evidence_engine.config import get_settings
from evidence_engine.models import User

if TYPE_CHECKING:
    from evidence_engine.services.notifications.health_digest import DigestPack

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """SMTP rejected or dropped a message; the send job is retried."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


def _build_html_email(user_name: str, title: str, body: str, link: str) -> str:
    return (
        "<html><body>"
        f"<p>Hi {html.escape(user_name)},</p>"
        f"<h2>{html.escape(title)}</h2>"
        f"<p>{html.escape(body)}</p>"
        f'<p><a href="{html.escape(link, quote=True)}">View details</a></p>'
        "</body></html>"
    )


def _build_text_email(user_name: str, title: str, body: str, link: str) -> str:
    lines = [f"Hi {user_name},", "", title, "=" * len(title), ""]
    if body:
        lines.extend([body, ""])
    lines.append(f"View details: {link}")
    return "\n".join(lines)


def _build_digest_html(user_name: str, packs: Sequence[DigestPack]) -> str:
    rows = "".join(
        "<tr>"
        f'<td><a href="{html.escape(p.link, quote=True)}">{html.escape(p.name)}</a></td>'
        f"<td>{html.escape(p.project_name)}</td>"
        f"<td>{p.health_score if p.health_score is not None else '-'}</td>"
        f"<td>{html.escape(p.health_status)}</td>"
        f"<td>{html.escape(p.top_issue)}</td>"
        "</tr>"
        for p in packs
    )
    return (
        "<html><body>"
        f"<p>Hi {html.escape(user_name)},</p>"
        f"<p>{len(packs)} pack(s) need attention.</p>"
        "<table><tr><th>Pack</th><th>Project</th><th>Score</th><th>Status</th>"
        f"<th>Top issue</th></tr>{rows}</table>"
        "</body></html>"
    )


def _build_digest_text(user_name: str, packs: Sequence[DigestPack]) -> str:
    lines = [f"Hi {user_name},", "", f"{len(packs)} pack(s) need attention:", ""]
    for p in packs:
        score = p.health_score if p.health_score is not None else "-"
        lines.append(f"- {p.name} ({p.project_name}): {score}, {p.health_status}")
        lines.append(f"  Top issue: {p.top_issue}")
        lines.append(f"  {p.link}")
    return "\n".join(lines)


def _deliver(recipient: str, subject: str, text_body: str, html_body: str, settings) -> bool:
    """Send one multipart message. Returns True on success, False on any failure."""
    if not recipient:
        logger.warning("email_send_skipped: no recipient")
        return False

    smtp_host = getattr(settings, "smtp_host", "")
    if not smtp_host:
        logger.warning("email_send_skipped: SMTP host not configured")
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = getattr(settings, "smtp_from", "")
    msg["To"] = recipient
    msg.attach(MIMEText(text_body, "plain"))
    msg.attach(MIMEText(html_body, "html"))

    try:
        with smtplib.SMTP(smtp_host, getattr(settings, "smtp_port", 587)) as server:
            server.starttls()
            smtp_user = getattr(settings, "smtp_user", "")
            smtp_password = getattr(settings, "smtp_password", "")
            if smtp_user:
                server.login(smtp_user, smtp_password)
            server.sendmail(msg["From"], [recipient], msg.as_string())
        logger.info("email_sent: recipient=%s subject=%s", recipient, subject)
        return True
    except smtplib.SMTPAuthenticationError:
        logger.error("email_auth_failed: could not authenticate with SMTP server")
        return False
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("email_send_failed: %s", exc)
        return False


def send_immediate_email(
    recipient: str,
    title: str,
    body: str,
    link: str,
    *,
    user_name: str = "there",
    settings=None,
) -> bool:
    """Send one immediate notification email.

    Returns True on success, False on any failure.
    """
    if settings is None:
        settings = get_settings()
    return _deliver(
        recipient,
        title,
        _build_text_email(user_name, title, body, link),
        _build_html_email(user_name, title, body, link),
        settings,
    )


def send_health_digest_email(
    recipient: str,
    packs: Sequence[DigestPack],
    *,
    user_name: str = "there",
    settings=None,
) -> bool:
    if settings is None:
        settings = get_settings()
    return _deliver(
        recipient,
        f"{len(packs)} pack(s) need attention",
        _build_digest_text(user_name, packs),
        _build_digest_html(user_name, packs),
        settings,
    )


def handle_email_send(db: Session, payload: dict[str, Any]) -> dict[str, Any]:
    """notification/email.send handler. Never touches in-app notifications."""
    settings = get_settings()
    if not settings.smtp_host:
        return {"status": "skipped", "reason": "smtp_not_configured"}

    user = db.get(User, int(payload["user_id"]))
    if user is None or not user.email:
        return {"status": "skipped", "reason": "no_email"}

    link = payload.get("link") or settings.app_base_url
    sent = send_immediate_email(
        user.email,
        payload.get("title") or "Notification",
        payload.get("body") or "",
        link,
        user_name=user.name or "there",
        settings=settings,
    )
    if not sent:
        raise EmailDeliveryError(f"send_failed:user_id={user.id}")
    return {"status": "completed", "recipient_user_id": user.id}


def workspace_link(workspace_id: uuid.UUID, path: str) -> str:
    """Absolute app URL for a workspace page."""
    base = get_settings().app_base_url
    return f"{base}/workspace/{workspace_id}/{path.lstrip('/')}"
