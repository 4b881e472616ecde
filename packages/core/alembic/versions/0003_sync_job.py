"""Translation sync jobs with continuation chain

Revision ID: 0003_sync_job
Revises: 0002_scan_cursor
Create Date: 2026-10-02
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0003_sync_job"
down_revision = "0002_scan_cursor"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "sync_job",
        sa.Column("job_id", sa.String(length=36), primary_key=True),
        sa.Column("target_langs", sa.JSON(), nullable=False),
        sa.Column("scope_id", sa.Integer(), nullable=True),
        sa.Column("identifiers", sa.JSON(), nullable=False),
        sa.Column("total_entries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed_entries", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="queued"),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("parent_job_id", sa.String(length=36), nullable=True),
        sa.Column("continued_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_sync_job_status", "sync_job", ["status"])


def downgrade() -> None:
    op.drop_index("ix_sync_job_status", table_name="sync_job")
    op.drop_table("sync_job")
