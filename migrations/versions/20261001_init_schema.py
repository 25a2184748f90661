"""init schema: profiles, subscriptions, daily_usage, scans

Revision ID: 20261001_init
Revises:
Create Date: 2026-10-01

"""
from alembic import op
import sqlalchemy as sa


revision = "20261001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("full_name", sa.String),
        sa.Column("email", sa.String),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "expired", "cancelled", name="subscription_status"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("plan_type", sa.String, nullable=False),
        sa.Column("scans_remaining", sa.Integer, nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("scans_remaining >= 0", name="ck_subscriptions_scans_nonneg"),
    )
    op.create_index(
        "ix_subscriptions_user_status", "subscriptions", ["user_id", "status"]
    )

    op.create_table(
        "daily_usage",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("scans_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("user_id", "date"),
        sa.CheckConstraint("scans_used >= 0", name="ck_daily_usage_scans_nonneg"),
    )

    op.create_table(
        "scans",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("image_url", sa.String, nullable=False),
        sa.Column("disease_name", sa.String, nullable=False),
        sa.Column("confidence_score", sa.Float, nullable=False),
        sa.Column("remedies", sa.JSON, nullable=False),
        sa.Column(
            "status",
            sa.Enum("completed", name="scan_status"),
            nullable=False,
            server_default="completed",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_scans_user_created", "scans", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_scans_user_created", table_name="scans")
    op.drop_table("scans")
    op.drop_table("daily_usage")
    op.drop_index("ix_subscriptions_user_status", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("profiles")
    sa.Enum(name="scan_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="subscription_status").drop(op.get_bind(), checkfirst=True)
