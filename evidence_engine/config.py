"""
Application configuration. Loads from environment variables.
Secrets and sensitive config must never be hardcoded.
"""

import os

from dotenv import load_dotenv

load_dotenv()
from functools import lru_cache
from typing import Optional


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


class Settings:
    """Application settings loaded from environment."""

    # App
    app_name: str = "Evidence Health Engine"
    debug: bool = False
    app_base_url: str = "http://localhost:3000"

    # Database (postgresql+psycopg for psycopg3; sqlite URLs are accepted for tests)
    database_url: str = "postgresql+psycopg://localhost:5432/evidence_engine_dev"
    db_connect_timeout: int = 10  # seconds

    # Security
    internal_job_token: str = ""  # Required for /internal/* and /api/* endpoints

    # LLM: judgement = conflict checks (JSON), summary = one-sentence impact summaries
    llm_provider: str = "openai"
    llm_api_key: Optional[str] = None
    llm_model_judgement: str = "gpt-4o-mini"
    llm_model_summary: str = "gpt-4o-mini"
    llm_timeout: float = 30.0
    llm_max_retries: int = 2

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    # Shared counter store for email rate limits and health cooldown locks.
    # Empty = in-process store (single worker, tests).
    redis_url: str = ""
    immediate_email_limit_per_hour: int = 10
    health_cooldown_seconds: int = 60

    # Job worker
    job_batch_size: int = 25
    job_retry_backoff_seconds: int = 30
    job_defer_seconds: int = 15
    job_max_deferrals: int = 40

    # SMTP / Email
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", self.app_name)
        self.debug = os.getenv("DEBUG", "false").lower() == "true"
        self.app_base_url = os.getenv("APP_BASE_URL", self.app_base_url).rstrip("/")

        default_user = os.getenv("PGUSER") or os.getenv("USER") or "postgres"
        default_url = (
            f"postgresql+psycopg://{default_user}:"
            f"{os.getenv('PGPASSWORD', '')}@"
            f"{os.getenv('PGHOST', 'localhost')}:"
            f"{os.getenv('PGPORT', '5432')}/"
            f"{os.getenv('PGDATABASE', 'evidence_engine_dev')}"
        )
        raw_url = os.getenv("DATABASE_URL", default_url)
        # Ensure psycopg3 driver if URL uses generic postgresql://
        if raw_url.startswith("postgresql://") and not raw_url.startswith("postgresql+psycopg"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
        self.database_url = raw_url
        self.db_connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", str(self.db_connect_timeout)))

        self.internal_job_token = os.getenv("INTERNAL_JOB_TOKEN", "")

        self.llm_provider = os.getenv("LLM_PROVIDER", self.llm_provider)
        self.llm_api_key = os.getenv("LLM_API_KEY")
        # Role-specific models; legacy: LLM_MODEL used for both if role vars unset
        legacy_model = os.getenv("LLM_MODEL")
        self.llm_model_judgement = (
            os.getenv("LLM_MODEL_JUDGEMENT") or legacy_model or self.llm_model_judgement
        )
        self.llm_model_summary = (
            os.getenv("LLM_MODEL_SUMMARY") or legacy_model or self.llm_model_summary
        )
        self.llm_timeout = float(os.getenv("LLM_TIMEOUT", str(self.llm_timeout)))
        self.llm_max_retries = int(os.getenv("LLM_MAX_RETRIES", str(self.llm_max_retries)))

        self.embedding_model = os.getenv("EMBEDDING_MODEL", self.embedding_model)
        self.embedding_dimensions = int(
            os.getenv("EMBEDDING_DIMENSIONS", str(self.embedding_dimensions))
        )

        self.redis_url = os.getenv("REDIS_URL", "").strip()
        self.immediate_email_limit_per_hour = int(
            os.getenv(
                "IMMEDIATE_EMAIL_LIMIT_PER_HOUR",
                str(self.immediate_email_limit_per_hour),
            )
        )
        self.health_cooldown_seconds = int(
            os.getenv("HEALTH_COOLDOWN_SECONDS", str(self.health_cooldown_seconds))
        )

        self.job_batch_size = int(os.getenv("JOB_BATCH_SIZE", str(self.job_batch_size)))
        self.job_retry_backoff_seconds = int(
            os.getenv("JOB_RETRY_BACKOFF_SECONDS", str(self.job_retry_backoff_seconds))
        )
        self.job_defer_seconds = int(os.getenv("JOB_DEFER_SECONDS", str(self.job_defer_seconds)))
        self.job_max_deferrals = int(os.getenv("JOB_MAX_DEFERRALS", str(self.job_max_deferrals)))

        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from = os.getenv("SMTP_FROM", "")
