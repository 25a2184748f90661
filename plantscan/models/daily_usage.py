from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from .base import Base


class DailyUsage(Base):
    """Free scans consumed per user per UTC calendar day."""

    __tablename__ = "daily_usage"
    __table_args__ = (
        CheckConstraint("scans_used >= 0", name="ck_daily_usage_scans_nonneg"),
    )

    user_id = Column(String(64), primary_key=True)
    date = Column(String(10), primary_key=True)  # YYYY-MM-DD
    scans_used = Column(Integer, nullable=False, server_default="0")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


__all__ = ["DailyUsage"]
