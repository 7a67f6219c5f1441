from __future__ import annotations
"""SQLAlchemy model for tracked creator accounts ("models")."""
import uuid
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import String, DateTime, Boolean, Enum, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .reels import Reel
from sqlalchemy.sql import func
from app.database import Base
from .enums import ModelStatus


class CreatorModel(Base):
    __tablename__ = "models"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    workspace_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    username: Mapped[str] = mapped_column(String, nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[ModelStatus] = mapped_column(
        Enum(ModelStatus, name="model_status", values_callable=lambda e: [m.value for m in e]),
        default=ModelStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Provider run id of the latest backfill submission
    apify_task_id: Mapped[str | None] = mapped_column(String, nullable=True)
    backfill_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    last_backfill_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_daily_scrape_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_scraped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    reels: Mapped[list["Reel"]] = relationship("Reel", back_populates="model")

    # Usernames are unique per workspace (multi-tenant boundary)
    __table_args__ = (
        UniqueConstraint("workspace_id", "username", name="unique_model_username_per_workspace"),
    )
