"""Tests for immediate notification email delivery."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from evidence_engine.services.notifications.email_service import (
    EmailDeliveryError,
    _build_html_email,
    _build_text_email,
    handle_email_send,
    send_immediate_email,
    workspace_link,
)
from tests.builders import make_member, make_workspace

LINK = "http://app.test/workspace/1/projects/2/packs/3"


def _make_settings(**overrides) -> SimpleNamespace:
    """Create mock settings with SMTP defaults."""
    from tests.test_constants import TEST_SMTP_PASSWORD

    defaults = dict(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="user@example.com",
        smtp_password=TEST_SMTP_PASSWORD,
        smtp_from="noreply@example.com",
        app_base_url="http://app.test",
    )
    defaults.update(overrides)
    return SimpleNamespace(**defaults)


def _smtp_server(mock_smtp_cls: MagicMock) -> MagicMock:
    mock_server = MagicMock()
    mock_smtp_cls.return_value.__enter__ = MagicMock(return_value=mock_server)
    mock_smtp_cls.return_value.__exit__ = MagicMock(return_value=False)
    return mock_server


# ── Builders ────────────────────────────────────────────────


def test_build_html_email_escapes_content() -> None:
    html = _build_html_email("Ana", "Source <changed>", "Body & more", LINK)
    assert "<html>" in html
    assert "Source &lt;changed&gt;" in html
    assert "Body &amp; more" in html
    assert f'href="{LINK}"' in html


def test_build_text_email_readable() -> None:
    text = _build_text_email("Ana", "Pack health declined", "From healthy to stale", LINK)
    assert text.startswith("Hi Ana,")
    assert "Pack health declined" in text
    assert "From healthy to stale" in text
    assert f"View details: {LINK}" in text


def test_build_text_email_without_body() -> None:
    text = _build_text_email("Ana", "Title", "", LINK)
    assert "\n\n\n" not in text


# ── send_immediate_email ────────────────────────────────────


@patch("evidence_engine.services.notifications.email_service.smtplib.SMTP")
def test_send_email_success(mock_smtp_cls: MagicMock) -> None:
    from tests.test_constants import TEST_SMTP_PASSWORD

    mock_server = _smtp_server(mock_smtp_cls)
    result = send_immediate_email(
        "dest@example.com", "Title", "Body", LINK, settings=_make_settings()
    )

    assert result is True
    mock_smtp_cls.assert_called_once_with("smtp.example.com", 587)
    mock_server.starttls.assert_called_once()
    mock_server.login.assert_called_once_with("user@example.com", TEST_SMTP_PASSWORD)
    mock_server.sendmail.assert_called_once()
    assert mock_server.sendmail.call_args[0][1] == ["dest@example.com"]


@patch("evidence_engine.services.notifications.email_service.smtplib.SMTP")
def test_send_email_without_smtp_user_skips_login(mock_smtp_cls: MagicMock) -> None:
    mock_server = _smtp_server(mock_smtp_cls)
    assert send_immediate_email(
        "dest@example.com", "Title", "Body", LINK, settings=_make_settings(smtp_user="")
    )
    mock_server.login.assert_not_called()


@patch("evidence_engine.services.notifications.email_service.smtplib.SMTP")
def test_send_email_connection_error(mock_smtp_cls: MagicMock) -> None:
    mock_smtp_cls.side_effect = OSError("Connection refused")
    result = send_immediate_email(
        "dest@example.com", "Title", "Body", LINK, settings=_make_settings()
    )
    assert result is False


@patch("evidence_engine.services.notifications.email_service.smtplib.SMTP")
def test_send_email_auth_failure(mock_smtp_cls: MagicMock) -> None:
    import smtplib as _smtplib

    mock_server = _smtp_server(mock_smtp_cls)
    mock_server.login.side_effect = _smtplib.SMTPAuthenticationError(535, b"Bad credentials")
    result = send_immediate_email(
        "dest@example.com", "Title", "Body", LINK, settings=_make_settings()
    )
    assert result is False


def test_send_email_empty_recipient() -> None:
    assert send_immediate_email("", "Title", "Body", LINK, settings=_make_settings()) is False


def test_send_email_smtp_not_configured() -> None:
    settings = _make_settings(smtp_host="")
    assert send_immediate_email("dest@example.com", "Title", "Body", LINK, settings=settings) is False


# ── notification/email.send handler ─────────────────────────


def _patch_settings(settings: SimpleNamespace):
    return patch(
        "evidence_engine.services.notifications.email_service.get_settings",
        return_value=settings,
    )


def test_handler_skips_without_smtp(db) -> None:
    with _patch_settings(_make_settings(smtp_host="")):
        result = handle_email_send(db, {"user_id": 1, "title": "t"})
    assert result == {"status": "skipped", "reason": "smtp_not_configured"}


def test_handler_skips_unknown_user(db) -> None:
    with _patch_settings(_make_settings()):
        result = handle_email_send(db, {"user_id": 999, "title": "t"})
    assert result == {"status": "skipped", "reason": "no_email"}


@patch("evidence_engine.services.notifications.email_service.smtplib.SMTP")
def test_handler_sends_to_user(mock_smtp_cls: MagicMock, db) -> None:
    mock_server = _smtp_server(mock_smtp_cls)
    user = make_member(db, make_workspace(db), email="pm@example.com")
    with _patch_settings(_make_settings()):
        result = handle_email_send(
            db, {"user_id": user.id, "title": "Source changed", "body": "b", "link": LINK}
        )
    assert result == {"status": "completed", "recipient_user_id": user.id}
    assert mock_server.sendmail.call_args[0][1] == ["pm@example.com"]


@patch("evidence_engine.services.notifications.email_service.smtplib.SMTP")
def test_handler_raises_on_delivery_failure(mock_smtp_cls: MagicMock, db) -> None:
    mock_smtp_cls.side_effect = OSError("Connection refused")
    user = make_member(db, make_workspace(db))
    with _patch_settings(_make_settings()), pytest.raises(EmailDeliveryError):
        handle_email_send(db, {"user_id": user.id, "title": "t", "link": LINK})


def test_workspace_link_uses_base_url() -> None:
    assert workspace_link("ws-1", "/projects/p") == "http://app.test/workspace/ws-1/projects/p"
