"""
OpenAI provider implementations.

Uses the openai Python SDK (>=1.0.0) with synchronous client.
Supports retry with exponential backoff for rate-limit, timeout, and connection errors.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from openai import APIConnectionError, APIError, APITimeoutError, OpenAI, RateLimitError

from evidence_engine.llm.provider import EmbeddingProvider, LLMProvider

logger = logging.getLogger(__name__)

# Retry configuration
INITIAL_BACKOFF = 1.0  # seconds
BACKOFF_MULTIPLIER = 2.0

# Errors that trigger retry
_RETRYABLE_ERRORS = (RateLimitError, APITimeoutError, APIConnectionError)

T = TypeVar("T")


def _with_retry(call: Callable[[], T], max_retries: int, label: str) -> T:
    """Run call with exponential-backoff retry on rate limit/timeout/connection."""
    backoff = INITIAL_BACKOFF
    for attempt in range(1, max_retries + 1):
        try:
            return call()
        except _RETRYABLE_ERRORS as exc:
            if attempt == max_retries:
                logger.error(
                    "OpenAI %s retryable error: giving up after %d attempts: %s",
                    label,
                    max_retries,
                    exc,
                )
                raise
            logger.warning(
                "OpenAI %s %s: retry %d/%d in %.1fs",
                label,
                type(exc).__name__,
                attempt,
                max_retries,
                backoff,
            )
            time.sleep(backoff)
            backoff *= BACKOFF_MULTIPLIER
        except APIError as exc:
            logger.error("OpenAI %s API error: %s", label, exc)
            raise
    raise RuntimeError("max_retries must be >= 1")


class OpenAIProvider(LLMProvider):
    """Concrete LLM provider backed by the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        max_retries: int = 2,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = OpenAI(api_key=api_key, timeout=timeout)

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> str:
        """Send prompt to OpenAI and return the completion text.

        Supported kwargs:
            temperature (float): Sampling temperature (default 0.2).
            max_tokens (int): Maximum tokens in the response.
        """
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        create_kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": kwargs.get("temperature", 0.2),
        }
        if "max_tokens" in kwargs:
            create_kwargs["max_tokens"] = kwargs["max_tokens"]

        def _call() -> str:
            start = time.monotonic()
            response = self._client.chat.completions.create(**create_kwargs)
            elapsed = time.monotonic() - start
            usage = response.usage
            prompt_preview = (prompt[:100] + "...") if len(prompt) > 100 else prompt
            logger.info(
                "LLM call: model=%s prompt_preview=%r tokens_in=%d tokens_out=%d latency=%.2fs",
                self.model,
                prompt_preview,
                usage.prompt_tokens if usage else 0,
                usage.completion_tokens if usage else 0,
                elapsed,
            )
            return response.choices[0].message.content or ""

        return _with_retry(_call, self.max_retries, "chat")


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by the OpenAI embeddings API."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        timeout: float = 30.0,
        max_retries: int = 2,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.max_retries = max_retries
        self._client = OpenAI(api_key=api_key, timeout=timeout)

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        def _call() -> list[list[float]]:
            response = self._client.embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimensions,
            )
            ordered = sorted(response.data, key=lambda d: d.index)
            return [list(d.embedding) for d in ordered]

        vectors = _with_retry(_call, self.max_retries, "embeddings")
        logger.info("Embedded %d texts with %s", len(vectors), self.model)
        return vectors
