"""
Pytest configuration and fixtures.
"""

from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tests.test_constants import TEST_INTERNAL_JOB_TOKEN

# Force an in-memory test DB; don't inherit from .env
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["APP_BASE_URL"] = "http://app.test"
os.environ.setdefault("INTERNAL_JOB_TOKEN", TEST_INTERNAL_JOB_TOKEN)

VALID_TOKEN = os.environ["INTERNAL_JOB_TOKEN"]


@pytest.fixture
def db() -> Session:
    """Fresh schema per test on the shared in-memory engine.

    Jobs run by the worker open their own sessions on the same connection, so
    tests commit before draining jobs and call db.expire_all() afterwards.
    """
    from evidence_engine import models  # noqa: F401  (register tables)
    from evidence_engine.db.session import Base, SessionLocal, engine

    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def client() -> TestClient:
    """FastAPI test client."""
    from evidence_engine.main import app

    return TestClient(app)


@pytest.fixture
def client_with_db(db: Session) -> TestClient:
    """TestClient with get_db overridden to use the test db session."""
    from evidence_engine.db.session import get_db
    from evidence_engine.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    c = TestClient(app)
    yield c
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def _clear_process_caches() -> None:
    """Reset cached providers, counters and prompts so tests don't leak state."""
    from evidence_engine.llm.router import clear_provider_cache
    from evidence_engine.pipeline.counters import clear_counter_store
    from evidence_engine.prompts.loader import load_prompt

    clear_provider_cache()
    clear_counter_store()
    load_prompt.cache_clear()
    yield
    clear_provider_cache()
    clear_counter_store()
    load_prompt.cache_clear()
