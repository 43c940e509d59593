"""create modules table

Revision ID: 0001_create_modules
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_create_modules"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "modules",
        sa.Column("module_category_id", sa.String(), nullable=False),
        sa.Column("module_state", sa.String(), nullable=False),
        sa.Column("last_updated_utc", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("module_category_id"),
    )


def downgrade() -> None:
    op.drop_table("modules")
