from __future__ import annotations
"""SQLAlchemy model for received provider webhook notifications (append-only)."""
import uuid
from datetime import datetime
from typing import Any
from sqlalchemy import String, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from app.database import Base


class InboxEntry(Base):
    __tablename__ = "webhooks_inbox"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    source: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # sha256 of the dedupe key, echoed back to the provider
    hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # "<run id>-<dataset id>"; uniqueness enforced at insert time
    dedupe_key: Mapped[str] = mapped_column(String, nullable=False, unique=True)

    processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    workspace_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
