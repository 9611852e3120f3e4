"""Line-granularity diff between two full texts.

Regions carry character spans into both texts so they can be matched against
chunk positions. Built on difflib.SequenceMatcher (longest matching blocks).
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass

REGION_UNCHANGED = "unchanged"
REGION_ADDED = "added"
REGION_REMOVED = "removed"
REGION_MODIFIED = "modified"

_OPCODE_KIND = {
    "equal": REGION_UNCHANGED,
    "insert": REGION_ADDED,
    "delete": REGION_REMOVED,
    "replace": REGION_MODIFIED,
}


@dataclass(frozen=True)
class DiffRegion:
    """Contiguous region; spans are [start, end) character offsets."""

    kind: str
    old_start: int
    old_end: int
    new_start: int
    new_end: int

    @property
    def changed(self) -> bool:
        return self.kind != REGION_UNCHANGED


def _line_offsets(lines: list[str]) -> list[int]:
    """Start offset of each line plus a trailing end offset."""
    offsets = [0]
    for line in lines:
        offsets.append(offsets[-1] + len(line))
    return offsets


def compute_text_diff(old_text: str, new_text: str) -> list[DiffRegion]:
    """Diff two texts line by line; consecutive regions cover both texts completely."""
    old_lines = (old_text or "").splitlines(keepends=True)
    new_lines = (new_text or "").splitlines(keepends=True)
    old_offsets = _line_offsets(old_lines)
    new_offsets = _line_offsets(new_lines)

    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    regions: list[DiffRegion] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        regions.append(
            DiffRegion(
                kind=_OPCODE_KIND[tag],
                old_start=old_offsets[i1],
                old_end=old_offsets[i2],
                new_start=new_offsets[j1],
                new_end=new_offsets[j2],
            )
        )
    return regions
