"""
SQLAlchemy model for per-day metric snapshots of a reel.

Counters are cumulative values as reported by the provider at ingestion
time; one row per (reel, day), later ingestions on the same day overwrite.
"""
import uuid
from sqlalchemy import Column, String, Integer, Float, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

class ReelMetricsDaily(Base):
    __tablename__ = "reel_metrics_daily"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    workspace_id = Column(String, nullable=False, index=True)
    reel_id = Column(String(36), ForeignKey("reels.id"), nullable=False, index=True)
    day = Column(Date, nullable=False, index=True)

    views = Column(Integer, default=0)
    likes = Column(Integer, default=0)
    comments = Column(Integer, default=0)
    # Not supplied by the current provider; placeholders for a future source
    saves = Column(Integer, default=0)
    shares = Column(Integer, default=0)
    watch_time_seconds = Column(Integer, default=0)
    completion_rate = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    reel = relationship("Reel", back_populates="daily_metrics")

    __table_args__ = (
        UniqueConstraint("reel_id", "day", name="unique_reel_metrics_per_day"),
    )
