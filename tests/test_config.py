"""
Configuration tests.
"""

import pytest

from evidence_engine.config import Settings, get_settings


def test_get_settings_returns_settings() -> None:
    """get_settings returns a Settings instance."""
    settings = get_settings()
    assert isinstance(settings, Settings)


def test_settings_has_required_attributes() -> None:
    """Settings has all required attributes."""
    settings = get_settings()
    assert hasattr(settings, "database_url")
    assert hasattr(settings, "internal_job_token")
    assert hasattr(settings, "llm_provider")
    assert hasattr(settings, "redis_url")
    assert settings.app_name == "Evidence Health Engine"


def test_test_environment_uses_sqlite_and_in_memory_counters() -> None:
    settings = get_settings()
    assert settings.database_url == "sqlite://"
    assert settings.redis_url == ""
    assert settings.app_base_url == "http://app.test"


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "IMMEDIATE_EMAIL_LIMIT_PER_HOUR",
        "HEALTH_COOLDOWN_SECONDS",
        "JOB_BATCH_SIZE",
        "JOB_RETRY_BACKOFF_SECONDS",
        "EMBEDDING_DIMENSIONS",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.immediate_email_limit_per_hour == 10
        assert settings.health_cooldown_seconds == 60
        assert settings.job_batch_size == 25
        assert settings.job_retry_backoff_seconds == 30
        assert settings.embedding_dimensions == 1536
    finally:
        get_settings.cache_clear()


def test_llm_model_roles_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """llm_model_judgement, llm_model_summary, timeout and retries load from env."""
    monkeypatch.setenv("LLM_MODEL_JUDGEMENT", "gpt-4o-mini")
    monkeypatch.setenv("LLM_MODEL_SUMMARY", "gpt-4o")
    monkeypatch.setenv("LLM_TIMEOUT", "90")
    monkeypatch.setenv("LLM_MAX_RETRIES", "5")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.llm_model_judgement == "gpt-4o-mini"
        assert settings.llm_model_summary == "gpt-4o"
        assert settings.llm_timeout == 90.0
        assert settings.llm_max_retries == 5
    finally:
        get_settings.cache_clear()


def test_llm_model_legacy_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    """When only LLM_MODEL is set, it is used for both roles."""
    monkeypatch.delenv("LLM_MODEL_JUDGEMENT", raising=False)
    monkeypatch.delenv("LLM_MODEL_SUMMARY", raising=False)
    monkeypatch.setenv("LLM_MODEL", "gpt-4-turbo")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.llm_model_judgement == "gpt-4-turbo"
        assert settings.llm_model_summary == "gpt-4-turbo"
    finally:
        get_settings.cache_clear()


def test_generic_postgres_url_gets_psycopg_driver(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/evidence")
    get_settings.cache_clear()
    try:
        assert get_settings().database_url == "postgresql+psycopg://u:p@db:5432/evidence"
    finally:
        get_settings.cache_clear()
