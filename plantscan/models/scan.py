from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Enum, Float, Index, Integer, String

from plantscan.models.base import Base


class Scan(Base):
    __tablename__ = "scans"
    __table_args__ = (Index("ix_scans_user_created", "user_id", "created_at"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    image_url = Column(String, nullable=False)
    disease_name = Column(String, nullable=False)
    confidence_score = Column(Float, nullable=False)
    remedies = Column(JSON, nullable=False, default=list)
    status = Column(
        Enum("completed", name="scan_status"),
        nullable=False,
        server_default="completed",
    )
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


__all__ = ["Scan"]
