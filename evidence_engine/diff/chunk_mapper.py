"""Map text diff regions onto chunk identifiers.

Pure functions only: every result depends on the two texts and the two
ordered chunk lists, nothing else.

Resolution order:
1. Chunks with identical content in both lists are unchanged (not emitted).
2. Each remaining old chunk is compared with the remaining new chunks that
   cover the same diff region. When none of those is left, every remaining
   new chunk is compared instead.
3. The best candidate wins on similarity, then nearest chunk index, then
   lower index. A best similarity below MIN_MODIFIED_SIMILARITY means the old
   chunk was removed.
4. New chunks left over are additions.
"""

from __future__ import annotations

import difflib
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from evidence_engine.diff.text_diff import DiffRegion, compute_text_diff

DIFF_ADDED = "added"
DIFF_REMOVED = "removed"
DIFF_MODIFIED = "modified"

# Below this two chunks share too little text to be the "same" chunk edited.
MIN_MODIFIED_SIMILARITY = 0.3


@dataclass(frozen=True)
class ChunkInfo:
    id: uuid.UUID
    content: str
    index: int


@dataclass(frozen=True)
class ChunkMapping:
    """ChunkDiff-shaped result row."""

    diff_type: str
    old_chunk_id: uuid.UUID | None
    new_chunk_id: uuid.UUID | None
    similarity_score: float | None
    old_index: int | None = None
    new_index: int | None = None


def content_similarity(a: str, b: str) -> float:
    """Similarity ratio in [0, 1], rounded to 4 places.

    autojunk is off: on chunk-sized text nearly every character is "popular".
    """
    if a == b:
        return 1.0
    return round(difflib.SequenceMatcher(None, a, b, autojunk=False).ratio(), 4)


def locate_chunks(text: str, chunks: Sequence[ChunkInfo]) -> list[tuple[int, int]]:
    """Character span of each chunk within text, in chunk order.

    Chunk content is searched from the end of the previous chunk. Content that
    cannot be found verbatim (whitespace normalised by the chunker) is placed
    at the search cursor with its own length.
    """
    spans: list[tuple[int, int]] = []
    cursor = 0
    for chunk in chunks:
        pos = text.find(chunk.content, cursor)
        if pos < 0:
            head = chunk.content[:64]
            pos = text.find(head, cursor) if head else -1
        if pos < 0:
            pos = min(cursor, len(text))
        end = min(pos + len(chunk.content), len(text))
        spans.append((pos, end))
        cursor = end
    return spans


def _touches(span: tuple[int, int], start: int, end: int) -> bool:
    chunk_start, chunk_end = span
    if start == end:
        # Insertion/deletion point: a point on a boundary touches both neighbours.
        return chunk_start <= start <= chunk_end
    return chunk_start < end and start < chunk_end


def match_unchanged(
    old_chunks: Sequence[ChunkInfo],
    new_chunks: Sequence[ChunkInfo],
) -> list[tuple[ChunkInfo, ChunkInfo]]:
    """Pair chunks with identical content, nearest index first."""
    by_content: dict[str, list[ChunkInfo]] = {}
    for chunk in sorted(new_chunks, key=lambda c: c.index):
        by_content.setdefault(chunk.content, []).append(chunk)

    pairs: list[tuple[ChunkInfo, ChunkInfo]] = []
    for old in sorted(old_chunks, key=lambda c: c.index):
        candidates = by_content.get(old.content)
        if not candidates:
            continue
        best = min(candidates, key=lambda c: (abs(c.index - old.index), c.index))
        candidates.remove(best)
        pairs.append((old, best))
    return pairs


def _region_candidates(
    regions: Sequence[DiffRegion],
    old_chunks: Sequence[ChunkInfo],
    new_chunks: Sequence[ChunkInfo],
    old_spans: Sequence[tuple[int, int]],
    new_spans: Sequence[tuple[int, int]],
) -> dict[int, set[int]]:
    """Old chunk position -> positions of new chunks touched by a shared region."""
    candidates: dict[int, set[int]] = {}
    for region in regions:
        if not region.changed:
            continue
        old_hit = [
            i for i, span in enumerate(old_spans)
            if _touches(span, region.old_start, region.old_end)
        ]
        new_hit = [
            j for j, span in enumerate(new_spans)
            if _touches(span, region.new_start, region.new_end)
        ]
        for i in old_hit:
            candidates.setdefault(i, set()).update(new_hit)
    return candidates


def map_diff_to_chunks(
    old_text: str,
    new_text: str,
    old_chunks: Sequence[ChunkInfo],
    new_chunks: Sequence[ChunkInfo],
) -> list[ChunkMapping]:
    """Classify chunks as removed / modified / added between two texts.

    Mappings for old chunks come first in old-index order, then additions in
    new-index order. Unchanged chunks are not emitted.
    """
    old_sorted = sorted(old_chunks, key=lambda c: c.index)
    new_sorted = sorted(new_chunks, key=lambda c: c.index)

    unchanged = match_unchanged(old_sorted, new_sorted)
    old_done = {old.id for old, _ in unchanged}
    new_done = {new.id for _, new in unchanged}

    regions = compute_text_diff(old_text, new_text)
    old_spans = locate_chunks(old_text or "", old_sorted)
    new_spans = locate_chunks(new_text or "", new_sorted)
    region_candidates = _region_candidates(
        regions, old_sorted, new_sorted, old_spans, new_spans
    )

    mappings: list[ChunkMapping] = []
    for i, old in enumerate(old_sorted):
        if old.id in old_done:
            continue
        remaining = [c for c in new_sorted if c.id not in new_done]
        touched = region_candidates.get(i, set())
        pool = [c for pos, c in enumerate(new_sorted) if pos in touched and c.id not in new_done]
        if not pool:
            # Region fell in a gap between chunks, or its chunks are taken.
            pool = remaining

        best: ChunkInfo | None = None
        best_key: tuple[float, int, int] | None = None
        for candidate in pool:
            score = content_similarity(old.content, candidate.content)
            key = (-score, abs(candidate.index - old.index), candidate.index)
            if best_key is None or key < best_key:
                best, best_key = candidate, key

        if best is not None and best_key is not None and -best_key[0] >= MIN_MODIFIED_SIMILARITY:
            new_done.add(best.id)
            mappings.append(
                ChunkMapping(
                    diff_type=DIFF_MODIFIED,
                    old_chunk_id=old.id,
                    new_chunk_id=best.id,
                    similarity_score=-best_key[0],
                    old_index=old.index,
                    new_index=best.index,
                )
            )
        else:
            mappings.append(
                ChunkMapping(
                    diff_type=DIFF_REMOVED,
                    old_chunk_id=old.id,
                    new_chunk_id=None,
                    similarity_score=None,
                    old_index=old.index,
                )
            )

    for new in new_sorted:
        if new.id in new_done:
            continue
        mappings.append(
            ChunkMapping(
                diff_type=DIFF_ADDED,
                old_chunk_id=None,
                new_chunk_id=new.id,
                similarity_score=None,
                new_index=new.index,
            )
        )
    return mappings
