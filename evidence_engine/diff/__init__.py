"""Text diff, chunk mapping and change severity."""

from evidence_engine.diff.chunk_mapper import (
    ChunkInfo,
    ChunkMapping,
    map_diff_to_chunks,
    match_unchanged,
)
from evidence_engine.diff.severity import determine_severity
from evidence_engine.diff.text_diff import DiffRegion, compute_text_diff

__all__ = [
    "ChunkInfo",
    "ChunkMapping",
    "DiffRegion",
    "compute_text_diff",
    "determine_severity",
    "map_diff_to_chunks",
    "match_unchanged",
]
