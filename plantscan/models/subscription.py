from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
)

from plantscan.models.base import Base


class Subscription(Base):
    """Prepaid pack of scan credits valid until ``expires_at``."""

    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("scans_remaining >= 0", name="ck_subscriptions_scans_nonneg"),
        Index("ix_subscriptions_user_status", "user_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    status = Column(
        Enum("active", "expired", "cancelled", name="subscription_status"),
        nullable=False,
        server_default="active",
    )
    plan_type = Column(String, nullable=False)
    scans_remaining = Column(Integer, nullable=False, server_default="0")
    expires_at = Column(DateTime(timezone=True), nullable=False)
    stripe_session_id = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


__all__ = ["Subscription"]
