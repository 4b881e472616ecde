"""Persistent scan cursors

Revision ID: 0002_scan_cursor
Revises: 0001_initial_schema
Create Date: 2026-09-21
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0002_scan_cursor"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "scan_cursor",
        sa.Column("name", sa.String(length=64), primary_key=True),
        sa.Column("current_table", sa.String(length=128), nullable=True),
        sa.Column("last_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_key", sa.String(length=64), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("scan_cursor")
