"""add source_versions.generation_version_id and job_runs.defer_count

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "source_versions",
        sa.Column("generation_version_id", sa.Uuid(), nullable=True),
    )
    op.add_column(
        "job_runs",
        sa.Column("defer_count", sa.Integer(), server_default="0", nullable=False),
    )


def downgrade() -> None:
    op.execute(sa.text("ALTER TABLE job_runs DROP COLUMN IF EXISTS defer_count"))
    op.execute(
        sa.text("ALTER TABLE source_versions DROP COLUMN IF EXISTS generation_version_id")
    )
