"""Tests for the evidence link ledger."""

from __future__ import annotations

import uuid

import pytest

from evidence_engine.evidence.entity_ref import AcceptanceCriterionRef, StoryRef
from evidence_engine.evidence.link_ledger import (
    ConfidenceUpgradeError,
    EvidenceScopeError,
    carry_links_forward,
    create_evidence_link,
    downgrade_confidence,
    high_confidence_ac_ids,
    resolve_affected_artifacts,
)
from evidence_engine.models import EvidenceLink
from evidence_engine.pipeline.errors import NotFoundError
from tests.builders import (
    link_ac,
    link_story,
    make_ac,
    make_chunks,
    make_pack,
    make_pack_version,
    make_project,
    make_source,
    make_story,
    make_workspace,
)


@pytest.fixture
def graph(db):
    ws = make_workspace(db)
    project = make_project(db, ws)
    source = make_source(db, project, content="text")
    chunks = make_chunks(db, source, ["alpha passage", "beta passage"])
    pack = make_pack(db, project)
    version = make_pack_version(db, pack, [source])
    story = make_story(db, version, "Checkout")
    ac = make_ac(db, story)
    return {"ws": ws, "project": project, "source": source, "chunks": chunks, "story": story, "ac": ac}


class TestCreateEvidenceLink:
    def test_creates_link(self, db, graph):
        link = create_evidence_link(
            db, AcceptanceCriterionRef(id=graph["ac"].id), graph["chunks"][0].id, "high"
        )
        assert link.entity_type == "acceptance_criterion"
        assert link.entity_id == graph["ac"].id
        assert link.confidence == "high"
        assert link.evolution_status == "new"

    def test_duplicate_returns_existing(self, db, graph):
        ref = StoryRef(id=graph["story"].id)
        first = create_evidence_link(db, ref, graph["chunks"][0].id, "medium")
        second = create_evidence_link(db, ref, graph["chunks"][0].id, "high")
        assert first.id == second.id
        assert db.query(EvidenceLink).count() == 1

    def test_chunk_from_other_project_rejected(self, db, graph):
        other_project = make_project(db, graph["ws"], name="Billing")
        other_source = make_source(db, other_project, content="text")
        (foreign,) = make_chunks(db, other_source, ["foreign passage"])
        with pytest.raises(EvidenceScopeError):
            create_evidence_link(db, StoryRef(id=graph["story"].id), foreign.id, "low")

    def test_missing_chunk(self, db, graph):
        with pytest.raises(NotFoundError):
            create_evidence_link(db, StoryRef(id=graph["story"].id), uuid.uuid4(), "low")

    def test_missing_artifact(self, db, graph):
        with pytest.raises(NotFoundError):
            create_evidence_link(
                db, AcceptanceCriterionRef(id=uuid.uuid4()), graph["chunks"][0].id, "low"
            )

    def test_unknown_tier(self, db, graph):
        with pytest.raises(ValueError, match="Unknown confidence tier"):
            create_evidence_link(
                db, StoryRef(id=graph["story"].id), graph["chunks"][0].id, "certain"
            )


class TestDowngradeConfidence:
    def test_lowers_tier(self, db, graph):
        link = link_ac(db, graph["ac"], graph["chunks"][0], confidence="high")
        downgrade_confidence(link, "medium")
        assert link.confidence == "medium"

    def test_same_tier_is_noop(self, db, graph):
        link = link_ac(db, graph["ac"], graph["chunks"][0], confidence="low")
        downgrade_confidence(link, "low")
        assert link.confidence == "low"

    def test_upgrade_rejected(self, db, graph):
        link = link_ac(db, graph["ac"], graph["chunks"][0], confidence="low")
        with pytest.raises(ConfidenceUpgradeError):
            downgrade_confidence(link, "high")
        assert link.confidence == "low"


class TestResolveAffectedArtifacts:
    def test_ac_link_pulls_in_owning_story(self, db, graph):
        link_ac(db, graph["ac"], graph["chunks"][0])
        affected = resolve_affected_artifacts(db, [graph["chunks"][0].id])
        assert affected.ac_ids == {graph["ac"].id}
        assert affected.story_ids == {graph["story"].id}
        assert affected.ac_story[graph["ac"].id] == graph["story"].id

    def test_story_link(self, db, graph):
        link_story(db, graph["story"], graph["chunks"][1])
        affected = resolve_affected_artifacts(db, [graph["chunks"][1].id])
        assert affected.story_ids == {graph["story"].id}
        assert affected.ac_ids == set()

    def test_deleted_ac_excluded(self, db, graph):
        from evidence_engine.db.types import utcnow

        link_ac(db, graph["ac"], graph["chunks"][0])
        graph["ac"].deleted_at = utcnow()
        db.flush()
        affected = resolve_affected_artifacts(db, [graph["chunks"][0].id])
        assert not affected

    def test_unlinked_chunks(self, db, graph):
        assert not resolve_affected_artifacts(db, [graph["chunks"][0].id])
        assert not resolve_affected_artifacts(db, [])


class TestCarryLinksForward:
    def test_moves_links_to_new_chunk(self, db, graph):
        old = graph["chunks"][0]
        (new,) = make_chunks(db, graph["source"], ["alpha passage"], version_id=uuid.uuid4())
        link = link_ac(db, graph["ac"], old)
        moved = carry_links_forward(db, [(old.id, new.id)])
        assert moved == 1
        assert link.chunk_id == new.id

    def test_duplicate_on_new_chunk_dropped(self, db, graph):
        old = graph["chunks"][0]
        (new,) = make_chunks(db, graph["source"], ["alpha passage"], version_id=uuid.uuid4())
        link_ac(db, graph["ac"], old)
        link_ac(db, graph["ac"], new)
        moved = carry_links_forward(db, [(old.id, new.id)])
        assert moved == 0
        links = db.query(EvidenceLink).all()
        assert [l.chunk_id for l in links] == [new.id]


def test_high_confidence_ac_ids(db, graph):
    other_ac = make_ac(db, graph["story"], content="Second criterion")
    link_ac(db, graph["ac"], graph["chunks"][0], confidence="high")
    link_ac(db, other_ac, graph["chunks"][1], confidence="medium")
    assert high_confidence_ac_ids(db, [graph["ac"].id, other_ac.id]) == {graph["ac"].id}
    assert high_confidence_ac_ids(db, []) == set()
