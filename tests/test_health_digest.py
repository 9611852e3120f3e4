"""Tests for the health/digest job: recipients, pack selection and delivery."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from evidence_engine.models import (
    HealthSnapshot,
    JobRun,
    NotificationPreference,
    WorkspaceMember,
)
from evidence_engine.pipeline.events import EVENT_REGISTRY, HEALTH_DIGEST
from evidence_engine.services.notifications.health_digest import (
    digest_period,
    digest_recipients,
    handle_health_digest,
    packs_needing_attention,
    queue_health_digest,
    weakest_factor,
)
from tests.builders import make_member, make_pack, make_project, make_workspace
from tests.test_email_service import _make_settings, _smtp_server

NOW = datetime(2026, 10, 14, 7, 0, tzinfo=timezone.utc)


def _scored_pack(db, project, name, score, status, **factors):
    pack = make_pack(db, project, name=name)
    pack.health_score = score
    pack.health_status = status
    if factors:
        values = dict(
            source_drift=90,
            evidence_coverage=90,
            qa_pass_rate=90,
            delivery_feedback=90,
            source_age=90,
        )
        values.update(factors)
        db.add(HealthSnapshot(pack_id=pack.id, score=score, status=status, **values))
    db.flush()
    return pack


def _patch_settings(settings: SimpleNamespace):
    return patch(
        "evidence_engine.services.notifications.health_digest.get_settings",
        return_value=settings,
    )


class TestWeakestFactor:
    def test_lowest_factor_is_reported(self):
        snapshot = SimpleNamespace(
            source_drift=80,
            evidence_coverage=35,
            qa_pass_rate=60,
            delivery_feedback=100,
            source_age=70,
        )
        assert weakest_factor(snapshot) == "Evidence coverage: 35%"

    def test_tie_goes_to_first_listed_factor(self):
        snapshot = SimpleNamespace(
            source_drift=40,
            evidence_coverage=90,
            qa_pass_rate=40,
            delivery_feedback=90,
            source_age=90,
        )
        assert weakest_factor(snapshot) == "Source drift: 40%"

    def test_no_snapshot_is_unknown(self):
        assert weakest_factor(None) == "Unknown"


class TestPacksNeedingAttention:
    def test_worst_tier_first_then_lowest_score(self, db):
        ws = make_workspace(db)
        project = make_project(db, ws, name="Billing")
        _scored_pack(db, project, "Stale pack", 70, "stale", qa_pass_rate=50)
        _scored_pack(db, project, "Risky high", 55, "at_risk", source_age=30)
        _scored_pack(db, project, "Risky low", 42, "at_risk", source_drift=20)
        _scored_pack(db, project, "Outdated", 25, "outdated", evidence_coverage=10)
        _scored_pack(db, project, "Fine", 95, "healthy")
        make_pack(db, project, name="Never scored")

        packs = packs_needing_attention(db, [ws.id])

        assert [p.name for p in packs] == ["Outdated", "Risky low", "Risky high", "Stale pack"]
        assert packs[0].top_issue == "Evidence coverage: 10%"
        assert packs[1].top_issue == "Source drift: 20%"
        assert packs[0].project_name == "Billing"
        assert packs[0].link.startswith(f"http://app.test/workspace/{ws.id}/projects/")

    def test_latest_snapshot_decides_top_issue(self, db):
        project = make_project(db, make_workspace(db))
        pack = _scored_pack(db, project, "Pack", 50, "at_risk", source_drift=10)
        db.add(
            HealthSnapshot(
                pack_id=pack.id,
                score=50,
                status="at_risk",
                source_drift=95,
                evidence_coverage=95,
                qa_pass_rate=30,
                delivery_feedback=95,
                source_age=95,
                computed_at=datetime.now(timezone.utc) + timedelta(hours=1),
            )
        )
        db.flush()

        (digest_pack,) = packs_needing_attention(db, [project.workspace_id])
        assert digest_pack.top_issue == "QA pass rate: 30%"

    def test_other_workspaces_are_excluded(self, db):
        mine = make_workspace(db, name="Mine")
        other = make_workspace(db, name="Other")
        _scored_pack(db, make_project(db, other), "Elsewhere", 30, "outdated")
        assert packs_needing_attention(db, [mine.id]) == []


class TestRecipients:
    def test_only_members_with_matching_frequency(self, db):
        ws = make_workspace(db)
        daily = make_member(db, ws, email_frequency="daily")
        make_member(db, ws, email_frequency="weekly")
        make_member(db, ws, email_frequency="immediate")
        make_member(db, ws)

        assert digest_recipients(db, "daily") == {daily.id: [ws.id]}

    def test_one_entry_per_user_across_workspaces(self, db):
        first = make_workspace(db, name="First")
        second = make_workspace(db, name="Second")
        user = make_member(db, first, email_frequency="weekly")

        db.add(WorkspaceMember(workspace_id=second.id, user_id=user.id))
        db.add(
            NotificationPreference(
                workspace_id=second.id, user_id=user.id, email_frequency="weekly"
            )
        )
        db.flush()

        assert digest_recipients(db, "weekly") == {user.id: [first.id, second.id]}


class TestHandler:
    @patch("evidence_engine.services.notifications.email_service.smtplib.SMTP")
    def test_sends_one_email_per_user_with_packs(self, mock_smtp_cls: MagicMock, db):
        mock_server = _smtp_server(mock_smtp_cls)
        ws = make_workspace(db)
        project = make_project(db, ws)
        _scored_pack(db, project, "Outdated", 25, "outdated", evidence_coverage=10)
        user = make_member(db, ws, email="lead@example.com", email_frequency="daily")
        make_member(db, make_workspace(db, name="Quiet"), email_frequency="daily")
        db.commit()

        with _patch_settings(_make_settings()):
            result = handle_health_digest(db, {"frequency": "daily"})

        assert result == {
            "status": "completed",
            "frequency": "daily",
            "users_processed": 1,
            "emails_sent": 1,
        }
        mock_server.sendmail.assert_called_once()
        assert mock_server.sendmail.call_args[0][1] == [user.email]
        assert "1 pack(s) need attention" in mock_server.sendmail.call_args[0][2]

    @patch("evidence_engine.services.notifications.email_service.smtplib.SMTP")
    def test_failed_delivery_is_counted_not_raised(self, mock_smtp_cls: MagicMock, db):
        mock_smtp_cls.side_effect = OSError("Connection refused")
        ws = make_workspace(db)
        _scored_pack(db, make_project(db, ws), "Stale", 70, "stale")
        make_member(db, ws, email_frequency="weekly")
        db.commit()

        with _patch_settings(_make_settings()):
            result = handle_health_digest(db, {"frequency": "weekly"})

        assert result["users_processed"] == 1
        assert result["emails_sent"] == 0

    def test_skips_without_smtp(self, db):
        with _patch_settings(_make_settings(smtp_host="")):
            result = handle_health_digest(db, {"frequency": "daily"})
        assert result == {"status": "skipped", "reason": "smtp_not_configured"}

    def test_skips_unknown_frequency(self, db):
        assert handle_health_digest(db, {"frequency": "hourly"}) == {
            "status": "skipped",
            "reason": "invalid_frequency",
        }

    def test_registered_on_the_bus(self):
        assert HEALTH_DIGEST in EVENT_REGISTRY


class TestQueue:
    def test_same_period_queues_once(self, db):
        first = queue_health_digest(db, "daily", now=NOW)
        again = queue_health_digest(db, "daily", now=NOW + timedelta(hours=3))
        next_day = queue_health_digest(db, "daily", now=NOW + timedelta(days=1))

        assert again.id == first.id
        assert next_day.id != first.id
        assert first.idempotency_key == "health-digest:daily:2026-10-14"
        assert db.query(JobRun).filter(JobRun.job_type == HEALTH_DIGEST).count() == 2

    def test_weekly_period_is_iso_week(self):
        assert digest_period("weekly", NOW) == "2026-W42"
        assert digest_period("weekly", NOW + timedelta(days=3)) == "2026-W42"

    def test_unknown_frequency_rejected(self, db):
        with pytest.raises(ValueError, match="hourly"):
            queue_health_digest(db, "hourly", now=NOW)
