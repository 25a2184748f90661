"""add events table and subscriptions.stripe_session_id

Revision ID: 20261012_events
Revises: 20261001_init
Create Date: 2026-10-12

Paid checkouts are fulfilled from Stripe webhooks; the session id makes
fulfillment idempotent.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "20261012_events"
down_revision = "20261001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("event", sa.String, nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_events_user_id", "events", ["user_id"])

    bind = op.get_bind()
    inspector = inspect(bind)
    if "stripe_session_id" not in [c.get("name") for c in inspector.get_columns("subscriptions")]:
        with op.batch_alter_table("subscriptions") as batch:
            batch.add_column(sa.Column("stripe_session_id", sa.String, nullable=True))
            batch.create_unique_constraint(
                "uq_subscriptions_stripe_session_id", ["stripe_session_id"]
            )


def downgrade() -> None:
    with op.batch_alter_table("subscriptions") as batch:
        batch.drop_constraint("uq_subscriptions_stripe_session_id", type_="unique")
        batch.drop_column("stripe_session_id")
    op.drop_index("ix_events_user_id", table_name="events")
    op.drop_table("events")
