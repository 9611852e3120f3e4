"""LLM provider abstraction. LLM is judgement only, never orchestration."""

from evidence_engine.llm.openai_provider import OpenAIEmbeddingProvider, OpenAIProvider
from evidence_engine.llm.provider import EmbeddingProvider, LLMProvider
from evidence_engine.llm.router import ModelRole, get_embedding_provider, get_llm_provider

__all__ = [
    "EmbeddingProvider",
    "LLMProvider",
    "ModelRole",
    "OpenAIEmbeddingProvider",
    "OpenAIProvider",
    "get_embedding_provider",
    "get_llm_provider",
]
