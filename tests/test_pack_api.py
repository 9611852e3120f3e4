"""Tests for pack impact and health routes (/api/packs/*)."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from evidence_engine.models import ChangeImpact, HealthSnapshot
from tests.builders import make_pack, make_project, make_source, make_workspace
from tests.conftest import VALID_TOKEN

HEADERS = {"X-Internal-Token": VALID_TOKEN}
T0 = datetime(2026, 10, 1, 9, 0, 0, tzinfo=UTC)


@pytest.fixture
def pack_graph(db):
    project = make_project(db, make_workspace(db))
    source = make_source(db, project, content="text")
    pack = make_pack(db, project)
    impacts = []
    for hours in (0, 1):
        impact = ChangeImpact(
            source_id=source.id,
            pack_id=pack.id,
            source_version_id=uuid.uuid4(),
            severity="moderate",
            summary="Refund window changed.",
            summary_state="resolved",
            affected_story_ids=["s1"],
            affected_story_count=1,
            created_at=T0 + timedelta(hours=hours),
        )
        db.add(impact)
        impacts.append(impact)
    db.commit()
    return {"pack": pack, "impacts": impacts}


class TestImpactRoutes:
    def test_requires_token(self, client_with_db: TestClient, pack_graph):
        response = client_with_db.get(f"/api/packs/{pack_graph['pack'].id}/impacts")
        assert response.status_code == 422

    def test_list(self, client_with_db: TestClient, pack_graph):
        response = client_with_db.get(
            f"/api/packs/{pack_graph['pack'].id}/impacts", headers=HEADERS
        )

        assert response.status_code == 200
        data = response.json()
        assert [d["id"] for d in data] == [str(i.id) for i in reversed(pack_graph["impacts"])]
        assert data[0]["severity"] == "moderate"
        assert data[0]["affected_story_ids"] == ["s1"]

    def test_acknowledge_one(self, client_with_db: TestClient, pack_graph):
        pack_id = pack_graph["pack"].id
        impact_id = pack_graph["impacts"][0].id

        response = client_with_db.post(
            f"/api/packs/{pack_id}/impacts/{impact_id}/acknowledge",
            json={"acknowledged_by": "pm@example.com"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["is_acknowledged"] is True
        remaining = client_with_db.get(f"/api/packs/{pack_id}/impacts", headers=HEADERS)
        assert len(remaining.json()) == 1

    def test_acknowledge_unknown_impact(self, client_with_db: TestClient, pack_graph):
        response = client_with_db.post(
            f"/api/packs/{pack_graph['pack'].id}/impacts/{uuid.uuid4()}/acknowledge",
            json={"acknowledged_by": "pm@example.com"},
            headers=HEADERS,
        )
        assert response.status_code == 404

    def test_acknowledge_requires_actor(self, client_with_db: TestClient, pack_graph):
        pack_id = pack_graph["pack"].id
        response = client_with_db.post(
            f"/api/packs/{pack_id}/impacts/{pack_graph['impacts'][0].id}/acknowledge",
            json={"acknowledged_by": ""},
            headers=HEADERS,
        )
        assert response.status_code == 422

    def test_acknowledge_all(self, client_with_db: TestClient, pack_graph):
        response = client_with_db.post(
            f"/api/packs/{pack_graph['pack'].id}/impacts/acknowledge_all",
            json={"acknowledged_by": "pm@example.com"},
            headers=HEADERS,
        )
        assert response.json() == {"acknowledged": 2}

    def test_unknown_pack_returns_404(self, client_with_db: TestClient):
        response = client_with_db.get(f"/api/packs/{uuid.uuid4()}/impacts", headers=HEADERS)
        assert response.status_code == 404

    def test_invalid_pack_id_returns_422(self, client_with_db: TestClient):
        response = client_with_db.get("/api/packs/nope/impacts", headers=HEADERS)
        assert response.status_code == 422


class TestHealthRoutes:
    def test_health_before_first_computation(self, client_with_db: TestClient, pack_graph):
        response = client_with_db.get(
            f"/api/packs/{pack_graph['pack'].id}/health", headers=HEADERS
        )
        assert response.status_code == 200
        assert response.json()["health_score"] is None

    def test_history_newest_first(self, db, client_with_db: TestClient, pack_graph):
        pack = pack_graph["pack"]
        for day, score in ((0, 90), (1, 70)):
            db.add(
                HealthSnapshot(
                    pack_id=pack.id,
                    score=score,
                    status="healthy" if score >= 80 else "at_risk",
                    source_drift=score,
                    evidence_coverage=score,
                    qa_pass_rate=score,
                    delivery_feedback=score,
                    source_age=score,
                    computed_at=T0 + timedelta(days=day),
                )
            )
        pack.health_score = 70
        pack.health_status = "at_risk"
        db.commit()

        history = client_with_db.get(
            f"/api/packs/{pack.id}/health/history", headers=HEADERS
        ).json()
        current = client_with_db.get(f"/api/packs/{pack.id}/health", headers=HEADERS).json()

        assert [h["score"] for h in history] == [70, 90]
        assert current["health_score"] == 70
        assert current["health_status"] == "at_risk"
