"""SQLAlchemy model for recurring job heartbeats (one row per job name)."""
from sqlalchemy import Column, String, Boolean, DateTime, Text
from app.database import Base

class CronStatus(Base):
    __tablename__ = "cron_status"

    name = Column(String, primary_key=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    last_ok = Column(Boolean, nullable=True)
    last_message = Column(Text, nullable=True)
