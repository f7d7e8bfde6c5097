"""add_user_last_context

Revision ID: c3d9e8f1a2b6
Revises: a7c1e2d3f4b5
Create Date: 2026-10-20 09:00:00.000000
"""
from __future__ import annotations

from alembic import op

revision = "c3d9e8f1a2b6"
down_revision = "a7c1e2d3f4b5"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("""
        ALTER TABLE users
            ADD COLUMN last_context_type VARCHAR(20),
            ADD COLUMN last_context_id   UUID,
            ADD CONSTRAINT ck_users_last_context_type
                CHECK (last_context_type IN ('personal', 'organization'))
    """)


def downgrade() -> None:
    op.execute("""
        ALTER TABLE users
            DROP CONSTRAINT IF EXISTS ck_users_last_context_type,
            DROP COLUMN IF EXISTS last_context_id,
            DROP COLUMN IF EXISTS last_context_type
    """)
