"""
LLM provider router / factory.

Returns the correct provider implementation based on application settings.
Provider instances are cached per (provider_name, role) to reuse connections.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from evidence_engine.llm.provider import EmbeddingProvider, LLMProvider

if TYPE_CHECKING:
    from evidence_engine.config import Settings

logger = logging.getLogger(__name__)


class ModelRole(str, Enum):
    """Model role for task-based routing."""

    JUDGEMENT = "judgement"  # contradiction checks, structured JSON
    SUMMARY = "summary"  # one-sentence change impact summaries


# Module-level cache: "provider_name:role" -> instance
_provider_cache: dict[str, LLMProvider | EmbeddingProvider] = {}


def _require_api_key(settings: Settings) -> str:
    if not settings.llm_api_key:
        raise ValueError(
            "LLM_API_KEY is required for the OpenAI provider. "
            "Set it in your environment or .env file."
        )
    return settings.llm_api_key


def get_llm_provider(
    role: ModelRole = ModelRole.JUDGEMENT,
    settings: Settings | None = None,
) -> LLMProvider:
    """Return an LLMProvider instance for the configured provider and role.

    Raises:
        ValueError: If the configured provider is not supported or API key is missing.
    """
    if settings is None:
        from evidence_engine.config import get_settings

        settings = get_settings()

    provider_name = settings.llm_provider.lower()
    cache_key = f"{provider_name}:{role.value}"

    if cache_key in _provider_cache:
        return _provider_cache[cache_key]  # type: ignore[return-value]

    if provider_name == "openai":
        api_key = _require_api_key(settings)

        from evidence_engine.llm.openai_provider import OpenAIProvider

        model = {
            ModelRole.JUDGEMENT: settings.llm_model_judgement,
            ModelRole.SUMMARY: settings.llm_model_summary,
        }[role]

        provider = OpenAIProvider(
            api_key=api_key,
            model=model,
            timeout=settings.llm_timeout,
            max_retries=settings.llm_max_retries,
        )
    else:
        raise ValueError(
            f"Unknown LLM provider: '{provider_name}'. "
            f"Supported providers: openai"
        )

    _provider_cache[cache_key] = provider
    logger.info("Created LLM provider: %s role=%s model=%s", provider_name, role.value, model)
    return provider


def get_embedding_provider(settings: Settings | None = None) -> EmbeddingProvider:
    """Return the cached embedding provider for the configured LLM provider."""
    if settings is None:
        from evidence_engine.config import get_settings

        settings = get_settings()

    provider_name = settings.llm_provider.lower()
    cache_key = f"{provider_name}:embedding"
    if cache_key in _provider_cache:
        return _provider_cache[cache_key]  # type: ignore[return-value]

    if provider_name != "openai":
        raise ValueError(
            f"Unknown LLM provider: '{provider_name}'. "
            f"Supported providers: openai"
        )

    from evidence_engine.llm.openai_provider import OpenAIEmbeddingProvider

    provider = OpenAIEmbeddingProvider(
        api_key=_require_api_key(settings),
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        timeout=settings.llm_timeout,
        max_retries=settings.llm_max_retries,
    )
    _provider_cache[cache_key] = provider
    logger.info("Created embedding provider: %s model=%s", provider_name, settings.embedding_model)
    return provider


def clear_provider_cache() -> None:
    """Clear the provider cache. Useful for testing."""
    _provider_cache.clear()
