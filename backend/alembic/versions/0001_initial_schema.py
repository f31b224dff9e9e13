"""Initial schema: plans, communities, step types, wizards, progress, usage.

Revision ID: 0001
Revises:
Create Date: 2026-10-18

onboarding_steps (wizard_id, step_order) is DEFERRABLE INITIALLY IMMEDIATE
so a reorder may defer the check to commit with SET CONSTRAINTS.
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

FEATURES = (
    "ai_chat_message",
    "wizard_step_completion",
    "api_call_generic",
    "active_wizard",
    "image_generation",
)
PLATFORMS = ("DISCORD", "TELEGRAM", "ENS", "LUKSO_UP", "OTHER")


def upgrade() -> None:
    feature_enum = postgresql.ENUM(*FEATURES, name="feature_enum", create_type=False)
    platform_enum = postgresql.ENUM(*PLATFORMS, name="platform_enum", create_type=False)
    feature_enum.create(op.get_bind(), checkfirst=True)
    platform_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "plans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stripe_price_id", sa.String(255), unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "plan_limits",
        sa.Column(
            "plan_id",
            sa.Integer(),
            sa.ForeignKey("plans.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("feature", feature_enum, primary_key=True),
        sa.Column("time_window", sa.Interval(), primary_key=True),
        sa.Column("hard_limit", sa.BigInteger(), nullable=False),
    )

    op.create_table(
        "communities",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("current_plan_id", sa.Integer(), sa.ForeignKey("plans.id")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "usage_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("community_id", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("feature", feature_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("idempotency_key", sa.String(255), unique=True),
    )
    op.create_index(
        "idx_usage_events_community_feature_time",
        "usage_events",
        ["community_id", "feature", "occurred_at"],
    )

    op.create_table(
        "step_types",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("label", sa.String(255)),
        sa.Column("description", sa.Text()),
        sa.Column("requires_credentials", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "onboarding_wizards",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "community_id",
            sa.String(100),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("assign_roles_per_step", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("community_id", "name", name="uniq_wizard_name_per_community"),
    )

    op.create_table(
        "onboarding_steps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "wizard_id",
            sa.String(36),
            sa.ForeignKey("onboarding_wizards.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "step_type_id",
            sa.String(36),
            sa.ForeignKey("step_types.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("config", sa.JSON(), server_default="{}"),
        sa.Column("target_role_id", sa.String(100)),
        sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "wizard_id",
            "step_order",
            name="uniq_step_order_per_wizard",
            deferrable=True,
            initially="IMMEDIATE",
        ),
    )

    op.create_table(
        "user_wizard_progress",
        sa.Column("user_id", sa.String(100), primary_key=True),
        sa.Column(
            "wizard_id",
            sa.String(36),
            sa.ForeignKey("onboarding_wizards.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "step_id",
            sa.String(36),
            sa.ForeignKey("onboarding_steps.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("verified_data", sa.JSON()),
        sa.Column("completed_at", sa.DateTime()),
    )

    op.create_table(
        "user_wizard_completions",
        sa.Column("user_id", sa.String(100), primary_key=True),
        sa.Column(
            "wizard_id",
            sa.String(36),
            sa.ForeignKey("onboarding_wizards.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("completed_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )

    op.create_table(
        "user_linked_credentials",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=False, index=True),
        sa.Column("platform", platform_enum, nullable=False),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("username", sa.String(255)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "platform", name="uniq_user_platform"),
    )


def downgrade() -> None:
    op.drop_table("user_linked_credentials")
    op.drop_table("user_wizard_completions")
    op.drop_table("user_wizard_progress")
    op.drop_table("onboarding_steps")
    op.drop_table("onboarding_wizards")
    op.drop_table("step_types")
    op.drop_index("idx_usage_events_community_feature_time", table_name="usage_events")
    op.drop_table("usage_events")
    op.drop_table("communities")
    op.drop_table("plan_limits")
    op.drop_table("plans")
    sa.Enum(name="platform_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="feature_enum").drop(op.get_bind(), checkfirst=True)
