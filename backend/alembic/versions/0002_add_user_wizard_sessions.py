"""Add user_wizard_sessions (last viewed step per user and wizard).

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18
"""

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

import sqlalchemy as sa
from alembic import op


def upgrade() -> None:
    op.create_table(
        "user_wizard_sessions",
        sa.Column("user_id", sa.String(100), primary_key=True),
        sa.Column(
            "wizard_id",
            sa.String(36),
            sa.ForeignKey("onboarding_wizards.id", ondelete="CASCADE"),
            primary_key=True,
            index=True,
        ),
        sa.Column(
            "last_viewed_step_id",
            sa.String(36),
            sa.ForeignKey("onboarding_steps.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("user_wizard_sessions")
