"""End-to-end: source replacement drained through the job worker."""

from __future__ import annotations

import uuid
from unittest.mock import MagicMock, patch

import pytest

from evidence_engine.db.session import SessionLocal
from evidence_engine.models import (
    ChangeImpact,
    ChunkDiff,
    EvidenceLink,
    HealthSnapshot,
    JobRun,
    Pack,
    SourceChunk,
)
from evidence_engine.pipeline.worker import run_pending_jobs
from evidence_engine.services.source_content import replace_source_content
from tests.builders import (
    link_ac,
    make_ac,
    make_pack,
    make_pack_version,
    make_project,
    make_source,
    make_story,
    make_workspace,
)

SUMMARY = "The approval threshold section was removed; one story needs review."


def _section(i: int) -> str:
    # Each section is longer than half a chunk, so every section becomes its own chunk
    return f"Section {i}. " + " ".join(
        f"Rule {i}.{n} applies to order flow {i} with limit {i * 100 + n}." for n in range(30)
    )


SECTIONS = [_section(i) for i in range(4)]


def _drain(max_rounds: int = 10) -> None:
    for _ in range(max_rounds):
        if run_pending_jobs(SessionLocal)["claimed"] == 0:
            return
    raise AssertionError(f"jobs still pending after {max_rounds} rounds")


@pytest.fixture
def providers():
    summary_provider = MagicMock()
    summary_provider.complete.return_value = SUMMARY
    with patch(
        "evidence_engine.services.chunk_embed.get_embedding_provider",
        side_effect=ValueError("LLM_API_KEY is required"),
    ), patch(
        "evidence_engine.services.impact_summary.get_llm_provider",
        return_value=summary_provider,
    ):
        yield summary_provider


def test_removed_section_flows_to_impact_and_health(db, providers):
    ws = make_workspace(db)
    project = make_project(db, ws)
    source = make_source(db, project, name="Checkout rules")
    pack = make_pack(db, project)
    story = make_story(db, make_pack_version(db, pack, [source]), "Manual approval")
    ac = make_ac(db, story, "Orders above the limit wait for approval")
    db.commit()

    assert replace_source_content(db, source.id, "\n\n".join(SECTIONS))["mode"] == "initial"
    _drain()
    db.expire_all()
    initial = (
        db.query(SourceChunk)
        .filter(SourceChunk.source_id == source.id)
        .order_by(SourceChunk.chunk_index.asc())
        .all()
    )
    assert len(initial) == 4
    link_ac(db, ac, initial[2])
    db.commit()

    revised = "\n\n".join(s for i, s in enumerate(SECTIONS) if i != 2)
    assert replace_source_content(db, source.id, revised)["mode"] == "replace"
    _drain()
    db.expire_all()

    (impact,) = db.query(ChangeImpact).all()
    assert impact.pack_id == pack.id
    assert impact.affected_ac_ids == [str(ac.id)]
    assert impact.removed_chunk_count == 1
    assert impact.summary == SUMMARY
    assert impact.summary_state == "resolved"
    providers.complete.assert_called_once()

    assert db.query(ChunkDiff).filter(ChunkDiff.diff_type == "removed").count() == 1
    chunks = db.query(SourceChunk).filter(SourceChunk.source_id == source.id).all()
    assert len(chunks) == 3
    assert {c.version_id for c in chunks} == {source.current_version_id}
    assert db.query(EvidenceLink).count() == 0

    assert db.query(HealthSnapshot).filter(HealthSnapshot.pack_id == pack.id).count() == 1
    assert db.get(Pack, pack.id).health_score is not None
    assert db.query(JobRun).filter(JobRun.status.in_(("failed", "pending"))).count() == 0


def test_back_to_back_replacements_each_get_their_own_diff(db, providers):
    source = make_source(db, make_project(db, make_workspace(db)))
    db.commit()
    replace_source_content(db, source.id, "\n\n".join(SECTIONS))
    _drain()

    first = replace_source_content(db, source.id, "\n\n".join(SECTIONS[:2] + SECTIONS[3:]))
    second = replace_source_content(db, source.id, "\n\n".join(SECTIONS[:1] + SECTIONS[3:]))
    _drain()
    db.expire_all()

    for result, removed in ((first, SECTIONS[2]), (second, SECTIONS[1])):
        diffs = (
            db.query(ChunkDiff)
            .filter(ChunkDiff.new_version_id == uuid.UUID(result["new_version_id"]))
            .all()
        )
        assert [(d.diff_type, d.old_content) for d in diffs] == [("removed", removed)]
    chunks = db.query(SourceChunk).filter(SourceChunk.source_id == source.id).all()
    assert {c.version_id for c in chunks} == {uuid.UUID(second["new_version_id"])}
    assert db.query(JobRun).filter(JobRun.status.in_(("failed", "pending"))).count() == 0
