from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from plantscan.models.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    full_name = Column(String)
    email = Column(String)
    is_admin = Column(Boolean, nullable=False, default=False, server_default="0")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


__all__ = ["Profile"]
