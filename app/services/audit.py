"""Audit trail writes (``event_logs``) mirrored to the structured audit logger."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.db.enums import EventLevel
from app.models.db.event_logs import EventLog
from app.utils import get_logger, log_business_event, utc_now

logger = get_logger(__name__)

SYSTEM_PAGE = "system"
MODELS_PAGE = "/models"


def record_event(
    session: Session,
    event: str,
    *,
    level: EventLevel = EventLevel.INFO,
    context: Optional[Dict[str, Any]] = None,
    workspace_id: Optional[str] = None,
    page: Optional[str] = SYSTEM_PAGE,
    now: Optional[datetime] = None,
) -> EventLog:
    """Append one audit row and commit it."""
    row = EventLog(
        event=event,
        level=EventLevel(level).value,
        context=dict(context or {}),
        page=page,
        workspace_id=workspace_id,
        ts=now or utc_now(),
    )
    session.add(row)
    session.commit()

    details = dict(context or {})
    log_business_event(
        event,
        {"level": row.level, **details},
        model_id=details.get("model_id"),
        workspace_id=workspace_id,
    )
    return row


def latest_events(session: Session, limit: int = 50) -> list[EventLog]:
    return (
        session.query(EventLog)
        .order_by(EventLog.ts.desc(), EventLog.id.desc())
        .limit(limit)
        .all()
    )


__all__ = ["record_event", "latest_events", "SYSTEM_PAGE", "MODELS_PAGE"]
