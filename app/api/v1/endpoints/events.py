"""
Audit event log (read-only).
"""
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.api.deps import get_db
from app.models.schemas import EventLogRead
from app.services.audit import latest_events

router = APIRouter()

@router.get(
    "",
    response_model=List[EventLogRead],
    summary="Latest audit events, newest first"
)
async def get_events(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> List[EventLogRead]:
    return [EventLogRead.model_validate(row) for row in latest_events(db, limit=limit)]
