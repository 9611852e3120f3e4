"""
LLM provider abstraction.

The LLM is a judgement component only. It may:
- decide whether two evidence passages contradict each other
- summarise how a source change affects requirements

It may NOT: schedule jobs, access the DB, or decide what gets persisted.
"""

from abc import ABC, abstractmethod
from typing import Any


class LLMProvider(ABC):
    """Abstract base for LLM providers."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> str:
        """Send prompt and return completion text."""
        ...


class EmbeddingProvider(ABC):
    """Abstract base for embedding providers."""

    @abstractmethod
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one fixed-dimension vector per input text, in order."""
        ...
