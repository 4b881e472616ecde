"""Translation records and scope mappings

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-09-14
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "translation",
        sa.Column("translation_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("identifier", sa.String(length=16), nullable=False),
        sa.Column("lang", sa.String(length=32), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("scope_level", sa.String(length=16), nullable=False, server_default="system"),
        sa.Column("human", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("modified_at", sa.DateTime(), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("identifier", "lang", name="uq_translation_identifier_lang"),
    )
    op.create_index("ix_translation_lang", "translation", ["lang"])

    op.create_table(
        "scope_mapping",
        sa.Column("identifier", sa.String(length=16), primary_key=True),
        sa.Column("scope_id", sa.Integer(), primary_key=True),
    )
    op.create_index("ix_scope_mapping_scope_id", "scope_mapping", ["scope_id"])


def downgrade() -> None:
    op.drop_index("ix_scope_mapping_scope_id", table_name="scope_mapping")
    op.drop_table("scope_mapping")
    op.drop_index("ix_translation_lang", table_name="translation")
    op.drop_table("translation")
