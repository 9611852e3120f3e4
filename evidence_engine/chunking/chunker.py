"""Paragraph-packing text chunker.

Splits source text into bounded chunks: paragraphs are packed together up to
``max_chars``; an oversized paragraph is split at sentence boundaries, and an
oversized sentence at word boundaries. Chunks never overlap, so every chunk
maps to one contiguous span of the original text.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

DEFAULT_MAX_CHARS = 2048
MIN_CONTENT_CHARS = 10

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")


@dataclass
class Chunk:
    """One chunk of text with its position in the chunk sequence."""

    index: int
    content: str
    token_count: int
    metadata: dict = field(default_factory=dict)


class InsufficientContentError(Exception):
    """Raised when text is too short to be meaningfully chunked."""

    def __init__(self, length: int) -> None:
        self.reason = "insufficient_content"
        self.length = length
        super().__init__(f"Content too short to chunk ({length} chars)")


def estimate_tokens(text: str) -> int:
    """Rough token estimate: four characters per token."""
    return math.ceil(len(text) / 4)


def has_sufficient_content(text: str | None) -> bool:
    return bool(text) and len(text.strip()) >= MIN_CONTENT_CHARS


def _split_oversized(text: str, max_chars: int) -> list[str]:
    """Split one paragraph at sentences, then words, then hard cuts."""
    pieces: list[str] = []
    buffer = ""
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        if len(sentence) > max_chars:
            if buffer:
                pieces.append(buffer)
                buffer = ""
            pieces.extend(_split_words(sentence, max_chars))
            continue
        candidate = f"{buffer} {sentence}" if buffer else sentence
        if len(candidate) <= max_chars:
            buffer = candidate
        else:
            pieces.append(buffer)
            buffer = sentence
    if buffer:
        pieces.append(buffer)
    return pieces


def _split_words(text: str, max_chars: int) -> list[str]:
    pieces: list[str] = []
    buffer = ""
    for word in text.split():
        while len(word) > max_chars:
            if buffer:
                pieces.append(buffer)
                buffer = ""
            pieces.append(word[:max_chars])
            word = word[max_chars:]
        candidate = f"{buffer} {word}" if buffer else word
        if len(candidate) <= max_chars:
            buffer = candidate
        else:
            pieces.append(buffer)
            buffer = word
    if buffer:
        pieces.append(buffer)
    return pieces


def chunk_text(
    text: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    metadata: dict | None = None,
) -> list[Chunk]:
    """Split text into ordered chunks.

    Raises InsufficientContentError when the stripped text is shorter than
    MIN_CONTENT_CHARS.
    """
    if not has_sufficient_content(text):
        raise InsufficientContentError(len((text or "").strip()))

    paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]
    packed: list[str] = []
    buffer = ""
    for para in paragraphs:
        if len(para) > max_chars:
            if buffer:
                packed.append(buffer)
                buffer = ""
            packed.extend(_split_oversized(para, max_chars))
            continue
        candidate = f"{buffer}\n\n{para}" if buffer else para
        if len(candidate) <= max_chars:
            buffer = candidate
        else:
            packed.append(buffer)
            buffer = para
    if buffer:
        packed.append(buffer)

    return [
        Chunk(
            index=i,
            content=content,
            token_count=estimate_tokens(content),
            metadata=dict(metadata or {}),
        )
        for i, content in enumerate(packed)
    ]
