from __future__ import annotations
"""SQLAlchemy model for the audit event log."""
import uuid
from datetime import datetime
from typing import Any
from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from app.database import Base


class EventLog(Base):
    __tablename__ = "event_logs"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event: Mapped[str] = mapped_column(String, nullable=False, index=True)
    level: Mapped[str | None] = mapped_column(String, nullable=True, default="info")
    context: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    page: Mapped[str | None] = mapped_column(String, nullable=True)
    workspace_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
