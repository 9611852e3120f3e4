"""Change severity for one pack affected by a source change.

Thresholds (all conditions are non-decreasing in the affected AC count):

major
    more than MAJOR_AC_COUNT affected ACs, or at least MAJOR_MIN_ACS affected
    ACs making up MAJOR_AC_SHARE of the pack, or removed + modified chunks
    exceeding MAJOR_CHANGE_RATIO of the prior chunk count.
moderate
    any removed chunk, at least MODERATE_AC_COUNT affected ACs, or any
    modified chunk below HIGH_SIMILARITY.
minor
    everything else: only additions, or only near-identical edits touching
    few ACs.
"""

from __future__ import annotations

from collections.abc import Sequence

from evidence_engine.diff.chunk_mapper import DIFF_MODIFIED, DIFF_REMOVED, ChunkMapping

SEVERITY_MINOR = "minor"
SEVERITY_MODERATE = "moderate"
SEVERITY_MAJOR = "major"

SEVERITY_ORDER = {SEVERITY_MINOR: 0, SEVERITY_MODERATE: 1, SEVERITY_MAJOR: 2}

MAJOR_AC_COUNT = 10
MAJOR_MIN_ACS = 2
MAJOR_AC_SHARE = 0.5
MAJOR_CHANGE_RATIO = 0.3
MODERATE_AC_COUNT = 3
HIGH_SIMILARITY = 0.85


def determine_severity(
    affected_ac_count: int,
    total_ac_count: int,
    mappings: Sequence[ChunkMapping],
    prior_chunk_count: int,
) -> str:
    """Return "minor", "moderate" or "major" for one pack."""
    removed = sum(1 for m in mappings if m.diff_type == DIFF_REMOVED)
    modified = [m for m in mappings if m.diff_type == DIFF_MODIFIED]
    change_ratio = (removed + len(modified)) / max(prior_chunk_count, 1)
    ac_share = affected_ac_count / total_ac_count if total_ac_count > 0 else 0.0

    if affected_ac_count > MAJOR_AC_COUNT:
        return SEVERITY_MAJOR
    if affected_ac_count >= MAJOR_MIN_ACS and ac_share >= MAJOR_AC_SHARE:
        return SEVERITY_MAJOR
    if change_ratio > MAJOR_CHANGE_RATIO:
        return SEVERITY_MAJOR

    if removed > 0 or affected_ac_count >= MODERATE_AC_COUNT:
        return SEVERITY_MODERATE
    if any((m.similarity_score or 0.0) < HIGH_SIMILARITY for m in modified):
        return SEVERITY_MODERATE
    return SEVERITY_MINOR
