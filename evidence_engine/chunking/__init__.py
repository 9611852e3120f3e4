"""Source text chunking."""

from evidence_engine.chunking.chunker import Chunk, chunk_text, estimate_tokens

__all__ = ["Chunk", "chunk_text", "estimate_tokens"]
