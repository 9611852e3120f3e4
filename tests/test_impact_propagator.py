"""Tests for source change propagation (source/version.created)."""

from __future__ import annotations

import uuid

import pytest

from evidence_engine.models import (
    ChangeImpact,
    ChunkDiff,
    EvidenceLink,
    JobRun,
    SourceChunk,
    SourceVersion,
)
from evidence_engine.pipeline.errors import DeferredError
from evidence_engine.pipeline.events import IMPACT_FINALIZE, PACK_HEALTH_RECOMPUTE
from evidence_engine.services.impact_propagator import handle_version_created
from evidence_engine.services.source_content import content_sha256
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

PARAGRAPHS = [
    "Customers can pay with a saved card at checkout.",
    "Guest checkout requires an email address.",
    "Orders over 500 EUR need manual approval.",
    "Invoices are emailed within one hour of payment.",
    "Gift cards cannot be combined with discounts.",
    "Shipping costs are shown before the payment step.",
    "Loyalty points expire after twelve months.",
    "Customers can download invoices as PDF.",
    "Support tickets reference the order number.",
    "Refund requests are accepted within thirty days.",
]
REMOVED = (3, 6)


def _version(
    db, source, number: int, text: str, generation: uuid.UUID | None = None, **kwargs
) -> SourceVersion:
    version = SourceVersion(
        source_id=source.id,
        version_number=number,
        content=text,
        content_hash=content_sha256(text),
        generation_version_id=generation,
        **kwargs,
    )
    db.add(version)
    db.flush()
    return version


def _change(db, source, old_contents, new_contents):
    """Snapshot both versions and both chunk generations; return the event payload."""
    old_text = "\n\n".join(old_contents)
    new_text = "\n\n".join(new_contents)
    old_version = _version(db, source, 1, old_text)
    new_version = _version(db, source, 2, new_text)
    old_chunks = make_chunks(db, source, old_contents)
    new_chunks = make_chunks(db, source, new_contents, version_id=new_version.id)
    source.content = new_text
    source.current_version_id = new_version.id
    db.flush()
    payload = {
        "source_id": str(source.id),
        "new_version_id": str(new_version.id),
        "previous_version_id": str(old_version.id),
        "old_chunk_ids": [str(c.id) for c in old_chunks],
        "new_chunk_ids": [str(c.id) for c in new_chunks],
    }
    return payload, old_chunks, new_chunks


@pytest.fixture
def project_graph(db):
    ws = make_workspace(db)
    project = make_project(db, ws)
    source = make_source(db, project, content="\n\n".join(PARAGRAPHS))
    pack = make_pack(db, project)
    version = make_pack_version(db, pack, [source])
    return {"ws": ws, "project": project, "source": source, "pack": pack, "version": version}


class TestRemovedChunks:
    @pytest.fixture
    def scenario(self, db, project_graph):
        """Ten chunks, two removed; the removed ones back one of five ACs across two stories."""
        new_contents = [p for i, p in enumerate(PARAGRAPHS) if i not in REMOVED]
        payload, old_chunks, new_chunks = _change(
            db, project_graph["source"], PARAGRAPHS, new_contents
        )
        story_a = make_story(db, project_graph["version"], "Payments")
        story_b = make_story(db, project_graph["version"], "Invoices")
        acs = [make_ac(db, story_a, f"AC {i}") for i in range(3)]
        acs += [make_ac(db, story_b, f"AC {i}") for i in range(3, 5)]

        # acs[0] is backed by both removed chunks; the rest by unchanged ones
        link_ac(db, acs[0], old_chunks[REMOVED[0]])
        link_ac(db, acs[0], old_chunks[REMOVED[1]])
        link_ac(db, acs[1], old_chunks[0])
        link_ac(db, acs[3], old_chunks[7])
        link_story(db, story_b, old_chunks[8])
        db.commit()
        return {
            "payload": payload,
            "old_chunks": old_chunks,
            "new_chunks": new_chunks,
            "story_a": story_a,
            "acs": acs,
        }

    def test_single_moderate_impact(self, db, project_graph, scenario):
        result = handle_version_created(db, scenario["payload"])

        assert result["status"] == "completed"
        assert result["impacts_created"] == 1
        (impact,) = db.query(ChangeImpact).all()
        assert impact.pack_id == project_graph["pack"].id
        assert impact.severity == "moderate"
        assert impact.removed_chunk_count == 2
        assert impact.modified_chunk_count == 0
        assert impact.added_chunk_count == 0
        assert impact.affected_ac_ids == [str(scenario["acs"][0].id)]
        assert impact.affected_story_ids == [str(scenario["story_a"].id)]
        assert impact.summary_state == "pending"

    def test_diff_rows_keep_removed_content(self, db, scenario):
        handle_version_created(db, scenario["payload"])
        diffs = db.query(ChunkDiff).all()
        assert sorted(d.diff_type for d in diffs) == ["removed", "removed"]
        assert {d.old_content for d in diffs} == {PARAGRAPHS[i] for i in REMOVED}
        assert all(d.new_chunk_id is None for d in diffs)

    def test_follow_on_events(self, db, project_graph, scenario):
        handle_version_created(db, scenario["payload"])
        health_jobs = db.query(JobRun).filter(JobRun.job_type == PACK_HEALTH_RECOMPUTE).all()
        finalize_jobs = db.query(JobRun).filter(JobRun.job_type == IMPACT_FINALIZE).all()
        assert len(health_jobs) == 1
        assert health_jobs[0].payload == {"pack_id": str(project_graph["pack"].id)}
        (impact,) = db.query(ChangeImpact).all()
        assert [j.payload["impact_id"] for j in finalize_jobs] == [str(impact.id)]

    def test_links_follow_unchanged_chunks(self, db, scenario):
        handle_version_created(db, scenario["payload"])
        db.expire_all()

        new_ids = {c.id for c in scenario["new_chunks"]}
        links = db.query(EvidenceLink).all()
        assert len(links) == 3
        assert all(l.chunk_id in new_ids for l in links)
        remaining_old = (
            db.query(SourceChunk)
            .filter(SourceChunk.id.in_([c.id for c in scenario["old_chunks"]]))
            .count()
        )
        assert remaining_old == 0

    def test_redelivery_is_noop(self, db, scenario):
        handle_version_created(db, scenario["payload"])
        again = handle_version_created(db, scenario["payload"])

        assert again == {"status": "skipped", "reason": "already_processed"}
        assert db.query(ChangeImpact).count() == 1
        assert db.query(ChunkDiff).count() == 2
        assert db.query(JobRun).filter(JobRun.job_type == PACK_HEALTH_RECOMPUTE).count() == 1


class TestModifiedChunks:
    OLD = [
        "The checkout flow supports card payments only.",
        "Refunds are processed within five business days for all card payments.",
    ]
    NEW = [
        "The checkout flow supports card payments only.",
        "Refunds are processed within five business days.",
    ]

    def test_rewritten_chunk_downgrades_high_links(self, db, project_graph):
        payload, old_chunks, new_chunks = _change(
            db, project_graph["source"], self.OLD, self.NEW
        )
        story = make_story(db, project_graph["version"])
        ac = make_ac(db, story)
        link_ac(db, ac, old_chunks[1], confidence="high")
        unchanged_link = link_ac(db, make_ac(db, story, "Other"), old_chunks[0], confidence="high")
        db.commit()

        handle_version_created(db, payload)
        db.expire_all()

        (diff,) = db.query(ChunkDiff).all()
        assert diff.diff_type == "modified"
        assert 0.3 <= diff.similarity_score < 0.85
        moved = (
            db.query(EvidenceLink)
            .filter(EvidenceLink.entity_id == ac.id)
            .one()
        )
        assert moved.chunk_id == new_chunks[1].id
        assert moved.confidence == "medium"
        assert db.get(EvidenceLink, unchanged_link.id).confidence == "high"

    def test_unlinked_change_creates_no_impact(self, db, project_graph):
        payload, _, _ = _change(db, project_graph["source"], self.OLD, self.NEW)
        db.commit()

        result = handle_version_created(db, payload)

        assert result["impacts_created"] == 0
        assert db.query(ChangeImpact).count() == 0
        assert db.query(ChunkDiff).count() == 1
        assert db.query(JobRun).count() == 0

    def test_locked_pack_not_impacted(self, db, project_graph):
        project_graph["pack"].review_status = "locked"
        payload, old_chunks, _ = _change(db, project_graph["source"], self.OLD, self.NEW)
        link_ac(db, make_ac(db, make_story(db, project_graph["version"])), old_chunks[1])
        db.commit()

        result = handle_version_created(db, payload)

        assert result["impacts_created"] == 0


def test_identical_versions_skipped(db, project_graph):
    source = project_graph["source"]
    text = "\n\n".join(PARAGRAPHS)
    old = _version(db, source, 1, text)
    new = _version(db, source, 2, text)
    db.commit()
    result = handle_version_created(
        db,
        {
            "source_id": str(source.id),
            "new_version_id": str(new.id),
            "previous_version_id": str(old.id),
            "old_chunk_ids": [],
            "new_chunk_ids": [],
        },
    )
    assert result == {"status": "skipped", "reason": "no_changes"}


class TestSeveralPacks:
    def test_one_impact_and_health_event_per_unlocked_pack(self, db, project_graph):
        project, source = project_graph["project"], project_graph["source"]
        new_contents = [p for i, p in enumerate(PARAGRAPHS) if i not in REMOVED]
        payload, old_chunks, _ = _change(db, source, PARAGRAPHS, new_contents)
        second = make_pack(db, project, name="Refunds pack")
        locked = make_pack(db, project, name="Archived pack", review_status="locked")
        for pack_version in (
            project_graph["version"],
            make_pack_version(db, second, [source]),
            make_pack_version(db, locked, [source]),
        ):
            link_ac(db, make_ac(db, make_story(db, pack_version)), old_chunks[REMOVED[0]])
        db.commit()

        result = handle_version_created(db, payload)

        assert result["impacts_created"] == 2
        impacts = db.query(ChangeImpact).all()
        assert {i.pack_id for i in impacts} == {project_graph["pack"].id, second.id}
        assert {str(i.source_version_id) for i in impacts} == {payload["new_version_id"]}
        health_jobs = db.query(JobRun).filter(JobRun.job_type == PACK_HEALTH_RECOMPUTE).all()
        assert sorted(j.payload["pack_id"] for j in health_jobs) == sorted(
            [str(project_graph["pack"].id), str(second.id)]
        )
        assert str(locked.id) not in {j.payload["pack_id"] for j in health_jobs}
        assert db.query(JobRun).filter(JobRun.job_type == IMPACT_FINALIZE).count() == 2


class TestChangeOrdering:
    """Two quick replacements whose version.created events run in reverse order."""

    def _payload(self, source, previous, new, old_chunks, new_chunks) -> dict:
        return {
            "source_id": str(source.id),
            "new_version_id": str(new.id),
            "previous_version_id": str(previous.id),
            "old_chunk_ids": [str(c.id) for c in old_chunks],
            "new_chunk_ids": [str(c.id) for c in new_chunks],
        }

    def test_later_change_waits_for_earlier_one(self, db, project_graph):
        source = project_graph["source"]
        first_text = [p for i, p in enumerate(PARAGRAPHS) if i not in REMOVED]
        second_text = first_text[1:]
        middle_id, latest_id = uuid.uuid4(), uuid.uuid4()
        v1 = _version(db, source, 1, "\n\n".join(PARAGRAPHS))
        v2 = _version(db, source, 2, "\n\n".join(first_text), middle_id, id=middle_id)
        v3 = _version(db, source, 3, "\n\n".join(first_text), middle_id)
        v4 = _version(db, source, 4, "\n\n".join(second_text), latest_id, id=latest_id)
        initial = make_chunks(db, source, PARAGRAPHS)
        middle = make_chunks(db, source, first_text, version_id=middle_id)
        latest = make_chunks(db, source, second_text, version_id=latest_id)
        source.current_version_id = latest_id
        first = self._payload(source, v1, v2, initial, middle)
        second = self._payload(source, v3, v4, middle, latest)
        db.commit()

        with pytest.raises(DeferredError):
            handle_version_created(db, second)
        db.rollback()
        assert handle_version_created(db, first)["status"] == "completed"
        assert handle_version_created(db, second)["status"] == "completed"

        earlier = db.query(ChunkDiff).filter(ChunkDiff.new_version_id == middle_id).all()
        later = db.query(ChunkDiff).filter(ChunkDiff.new_version_id == latest_id).all()
        assert sorted(d.old_content for d in earlier) == sorted(PARAGRAPHS[i] for i in REMOVED)
        assert [(d.diff_type, d.old_content) for d in later] == [("removed", PARAGRAPHS[0])]
        remaining = db.query(SourceChunk).filter(SourceChunk.source_id == source.id).all()
        assert {c.version_id for c in remaining} == {latest_id}
