"""Tests for internal job endpoints (/internal/*)."""

from __future__ import annotations

import uuid
from unittest.mock import patch

from fastapi.testclient import TestClient

from evidence_engine.models import EvidenceSource, JobRun
from evidence_engine.pipeline.events import (
    HEALTH_DIGEST,
    PROJECT_DETECT_CONFLICTS,
    SOURCE_CHUNK_AND_EMBED,
)
from tests.builders import make_project, make_source, make_workspace
from tests.conftest import VALID_TOKEN

HEADERS = {"X-Internal-Token": VALID_TOKEN}
TEXT = "Customers can request a refund within thirty days of purchase."


class TestAuth:
    def test_missing_token_returns_422(self, client: TestClient):
        assert client.post("/internal/run_worker").status_code == 422

    def test_wrong_token_returns_403(self, client: TestClient):
        response = client.post("/internal/run_worker", headers={"X-Internal-Token": "wrong"})
        assert response.status_code == 403


class TestSourceContent:
    def test_first_delivery_queues_initial_chunking(self, db, client_with_db: TestClient):
        source = make_source(db, make_project(db, make_workspace(db)))
        db.commit()

        response = client_with_db.post(
            "/internal/sources/content",
            json={"source_id": str(source.id), "content": TEXT},
            headers=HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["mode"] == "initial"
        (job,) = db.query(JobRun).all()
        assert job.job_type == SOURCE_CHUNK_AND_EMBED
        assert db.get(EvidenceSource, source.id).content == TEXT

    def test_unknown_source_returns_404(self, client_with_db: TestClient):
        response = client_with_db.post(
            "/internal/sources/content",
            json={"source_id": str(uuid.uuid4()), "content": TEXT},
            headers=HEADERS,
        )
        assert response.status_code == 404

    def test_bad_body_returns_422(self, client_with_db: TestClient):
        response = client_with_db.post(
            "/internal/sources/content",
            json={"source_id": "not-a-uuid", "content": TEXT},
            headers=HEADERS,
        )
        assert response.status_code == 422


class TestDetectConflicts:
    def test_queues_scan(self, db, client_with_db: TestClient):
        project = make_project(db, make_workspace(db))
        db.commit()

        response = client_with_db.post(
            f"/internal/detect_conflicts?project_id={project.id}", headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json()["status"] == "queued"
        (job,) = db.query(JobRun).all()
        assert job.job_type == PROJECT_DETECT_CONFLICTS
        assert job.payload == {"project_id": str(project.id)}

    def test_invalid_project_id_returns_422(self, client_with_db: TestClient):
        response = client_with_db.post(
            "/internal/detect_conflicts?project_id=abc", headers=HEADERS
        )
        assert response.status_code == 422

    def test_unknown_project_returns_404(self, client_with_db: TestClient):
        response = client_with_db.post(
            f"/internal/detect_conflicts?project_id={uuid.uuid4()}", headers=HEADERS
        )
        assert response.status_code == 404


class TestSweeps:
    def test_retry_summaries(self, client_with_db: TestClient):
        response = client_with_db.post("/internal/retry_summaries", headers=HEADERS)
        assert response.json() == {"status": "completed", "processed": 0, "updated": 0}

    def test_recompute_health(self, client_with_db: TestClient):
        response = client_with_db.post("/internal/recompute_health", headers=HEADERS)
        assert response.json() == {
            "status": "completed",
            "processed": 0,
            "failed": 0,
            "total": 0,
        }

    @patch("evidence_engine.pipeline.worker.run_pending_jobs")
    def test_run_worker_passes_limit(self, mock_run, client: TestClient):
        mock_run.return_value = {"claimed": 2, "completed": 2}

        response = client.post("/internal/run_worker?limit=5", headers=HEADERS)

        assert response.json() == {"status": "completed", "claimed": 2, "completed": 2}
        mock_run.assert_called_once_with(limit=5)

    @patch("evidence_engine.pipeline.worker.run_pending_jobs")
    def test_run_worker_failure_reported(self, mock_run, client: TestClient):
        mock_run.side_effect = RuntimeError("db down")
        response = client.post("/internal/run_worker", headers=HEADERS)
        assert response.json() == {"status": "failed", "error": "db down"}


class TestHealthDigest:
    def test_queues_digest_once_per_period(self, db, client_with_db: TestClient):
        first = client_with_db.post("/internal/health_digest?frequency=weekly", headers=HEADERS)
        second = client_with_db.post("/internal/health_digest?frequency=weekly", headers=HEADERS)

        assert first.status_code == 200
        assert first.json()["status"] == "queued"
        assert second.json()["job_run_id"] == first.json()["job_run_id"]
        (job,) = db.query(JobRun).all()
        assert job.job_type == HEALTH_DIGEST
        assert job.payload == {"frequency": "weekly"}

    def test_unknown_frequency_returns_422(self, client_with_db: TestClient):
        response = client_with_db.post("/internal/health_digest?frequency=hourly", headers=HEADERS)
        assert response.status_code == 422
