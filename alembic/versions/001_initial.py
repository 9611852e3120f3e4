"""initial evidence engine schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Sources, chunk generations, evidence links, diffs, impacts, conflicts,
health snapshots, notifications and the job_runs event table.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Must match EMBEDDING_DIMENSIONS at deploy time.
EMBEDDING_DIMENSIONS = 1536


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "workspaces",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("health_weights", postgresql.JSONB(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "workspace_members",
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("workspace_id", "user_id"),
    )
    op.create_index("ix_workspace_members_user_id", "workspace_members", ["user_id"])

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_workspace_id", "projects", ["workspace_id"])

    op.create_table(
        "evidence_sources",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=512), nullable=False),
        sa.Column("source_type", sa.String(length=32), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("current_version_id", sa.Uuid(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_evidence_sources_project_id", "evidence_sources", ["project_id"])

    op.create_table(
        "source_versions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source_id", sa.Uuid(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["source_id"], ["evidence_sources.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "source_id", "version_number", name="uq_source_versions_source_number"
        ),
    )

    op.create_table(
        "source_chunks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source_id", sa.Uuid(), nullable=False),
        sa.Column("version_id", sa.Uuid(), nullable=True),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("token_count", sa.Integer(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("embedding", Vector(EMBEDDING_DIMENSIONS), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["source_id"], ["evidence_sources.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["version_id"], ["source_versions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_source_chunks_source_version_index",
        "source_chunks",
        ["source_id", "version_id", "chunk_index"],
    )

    op.create_table(
        "packs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("review_status", sa.String(length=32), nullable=False),
        sa.Column("health_score", sa.Integer(), nullable=True),
        sa.Column("health_status", sa.String(length=16), nullable=True),
        sa.Column("last_health_check", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_packs_project_id", "packs", ["project_id"])

    op.create_table(
        "pack_versions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("pack_id", sa.Uuid(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("source_ids", postgresql.JSONB(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["pack_id"], ["packs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pack_id", "version_number", name="uq_pack_versions_pack_number"),
    )

    op.create_table(
        "stories",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("pack_version_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["pack_version_id"], ["pack_versions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_stories_pack_version_id", "stories", ["pack_version_id"])

    op.create_table(
        "acceptance_criteria",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("story_id", sa.Uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["story_id"], ["stories.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_acceptance_criteria_story_id", "acceptance_criteria", ["story_id"])

    op.create_table(
        "evidence_links",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("chunk_id", sa.Uuid(), nullable=False),
        sa.Column("confidence", sa.String(length=16), nullable=False),
        sa.Column("evolution_status", sa.String(length=16), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["chunk_id"], ["source_chunks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "entity_type", "entity_id", "chunk_id", name="uq_evidence_links_entity_chunk"
        ),
    )
    op.create_index("ix_evidence_links_entity", "evidence_links", ["entity_type", "entity_id"])
    op.create_index("ix_evidence_links_chunk_id", "evidence_links", ["chunk_id"])

    op.create_table(
        "chunk_diffs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source_id", sa.Uuid(), nullable=False),
        sa.Column("old_version_id", sa.Uuid(), nullable=True),
        sa.Column("new_version_id", sa.Uuid(), nullable=False),
        sa.Column("diff_type", sa.String(length=16), nullable=False),
        sa.Column("old_chunk_id", sa.Uuid(), nullable=True),
        sa.Column("new_chunk_id", sa.Uuid(), nullable=True),
        sa.Column("similarity_score", sa.Float(), nullable=True),
        sa.Column("old_content", sa.Text(), nullable=True),
        sa.Column("new_content", sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["source_id"], ["evidence_sources.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["old_version_id"], ["source_versions.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["new_version_id"], ["source_versions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_chunk_diffs_source_new_version", "chunk_diffs", ["source_id", "new_version_id"]
    )
    op.create_index(
        "ix_chunk_diffs_source_created_at", "chunk_diffs", ["source_id", "created_at"]
    )

    op.create_table(
        "change_impacts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("source_id", sa.Uuid(), nullable=False),
        sa.Column("pack_id", sa.Uuid(), nullable=False),
        sa.Column("source_version_id", sa.Uuid(), nullable=False),
        sa.Column("affected_story_ids", postgresql.JSONB(), nullable=False),
        sa.Column("affected_ac_ids", postgresql.JSONB(), nullable=False),
        sa.Column("affected_story_count", sa.Integer(), nullable=False),
        sa.Column("affected_ac_count", sa.Integer(), nullable=False),
        sa.Column("removed_chunk_count", sa.Integer(), nullable=False),
        sa.Column("modified_chunk_count", sa.Integer(), nullable=False),
        sa.Column("added_chunk_count", sa.Integer(), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("summary_state", sa.String(length=16), nullable=False),
        sa.Column("summary_retry_count", sa.Integer(), nullable=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_acknowledged", sa.Boolean(), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_by", sa.String(length=255), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["source_id"], ["evidence_sources.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["pack_id"], ["packs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["source_version_id"], ["source_versions.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "source_version_id", "pack_id", name="uq_change_impacts_version_pack"
        ),
    )
    op.create_index("ix_change_impacts_pack_id", "change_impacts", ["pack_id"])

    op.create_table(
        "evidence_conflicts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("chunk_a_id", sa.Uuid(), nullable=False),
        sa.Column("chunk_b_id", sa.Uuid(), nullable=False),
        sa.Column("pair_key", sa.String(length=80), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["chunk_a_id"], ["source_chunks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["chunk_b_id"], ["source_chunks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pair_key"),
    )
    op.create_index("ix_evidence_conflicts_project_id", "evidence_conflicts", ["project_id"])

    op.create_table(
        "qa_flags",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("pack_version_id", sa.Uuid(), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("rule_code", sa.String(length=64), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("resolved_by", sa.String(length=255), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["pack_version_id"], ["pack_versions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_qa_flags_pack_version_id", "qa_flags", ["pack_version_id"])

    op.create_table(
        "delivery_feedback",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("pack_id", sa.Uuid(), nullable=False),
        sa.Column("story_id", sa.Uuid(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_resolved", sa.Boolean(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["pack_id"], ["packs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["story_id"], ["stories.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_delivery_feedback_pack_id", "delivery_feedback", ["pack_id"])

    op.create_table(
        "health_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("pack_id", sa.Uuid(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("source_drift", sa.Integer(), nullable=False),
        sa.Column("evidence_coverage", sa.Integer(), nullable=False),
        sa.Column("qa_pass_rate", sa.Integer(), nullable=False),
        sa.Column("delivery_feedback", sa.Integer(), nullable=False),
        sa.Column("source_age", sa.Integer(), nullable=False),
        sa.Column("explain", postgresql.JSONB(), nullable=True),
        sa.Column(
            "computed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["pack_id"], ["packs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_health_snapshots_pack_computed_at", "health_snapshots", ["pack_id", "computed_at"]
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("link", sa.String(length=1024), nullable=True),
        sa.Column("related_pack_id", sa.Uuid(), nullable=True),
        sa.Column("related_source_id", sa.Uuid(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_notifications_user_created_at", "notifications", ["user_id", "created_at"]
    )

    op.create_table(
        "notification_preferences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workspace_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("notify_source_changes", sa.Boolean(), nullable=True),
        sa.Column("notify_delivery_feedback", sa.Boolean(), nullable=True),
        sa.Column("notify_health_degraded", sa.Boolean(), nullable=True),
        sa.Column("notify_email_ingested", sa.Boolean(), nullable=True),
        sa.Column(
            "email_frequency",
            sa.String(length=16),
            server_default="daily",
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "workspace_id", "user_id", name="uq_notification_preferences_workspace_user"
        ),
    )

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("job_type", sa.String(length=64), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("retry_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("max_attempts", sa.Integer(), server_default="3", nullable=False),
        sa.Column(
            "run_after",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        sa.Column("result", postgresql.JSONB(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "job_type", "idempotency_key", name="uq_job_runs_type_idempotency_key"
        ),
    )
    op.create_index("ix_job_runs_status_run_after", "job_runs", ["status", "run_after"])


def downgrade() -> None:
    op.drop_index("ix_job_runs_status_run_after", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_table("notification_preferences")
    op.drop_index("ix_notifications_user_created_at", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_health_snapshots_pack_computed_at", table_name="health_snapshots")
    op.drop_table("health_snapshots")
    op.drop_index("ix_delivery_feedback_pack_id", table_name="delivery_feedback")
    op.drop_table("delivery_feedback")
    op.drop_index("ix_qa_flags_pack_version_id", table_name="qa_flags")
    op.drop_table("qa_flags")
    op.drop_index("ix_evidence_conflicts_project_id", table_name="evidence_conflicts")
    op.drop_table("evidence_conflicts")
    op.drop_index("ix_change_impacts_pack_id", table_name="change_impacts")
    op.drop_table("change_impacts")
    op.drop_index("ix_chunk_diffs_source_created_at", table_name="chunk_diffs")
    op.drop_index("ix_chunk_diffs_source_new_version", table_name="chunk_diffs")
    op.drop_table("chunk_diffs")
    op.drop_index("ix_evidence_links_chunk_id", table_name="evidence_links")
    op.drop_index("ix_evidence_links_entity", table_name="evidence_links")
    op.drop_table("evidence_links")
    op.drop_index("ix_acceptance_criteria_story_id", table_name="acceptance_criteria")
    op.drop_table("acceptance_criteria")
    op.drop_index("ix_stories_pack_version_id", table_name="stories")
    op.drop_table("stories")
    op.drop_table("pack_versions")
    op.drop_index("ix_packs_project_id", table_name="packs")
    op.drop_table("packs")
    op.drop_index("ix_source_chunks_source_version_index", table_name="source_chunks")
    op.drop_table("source_chunks")
    op.drop_table("source_versions")
    op.drop_index("ix_evidence_sources_project_id", table_name="evidence_sources")
    op.drop_table("evidence_sources")
    op.drop_index("ix_projects_workspace_id", table_name="projects")
    op.drop_table("projects")
    op.drop_index("ix_workspace_members_user_id", table_name="workspace_members")
    op.drop_table("workspace_members")
    op.drop_table("users")
    op.drop_table("workspaces")
