"""
Externally triggered pipeline jobs and their heartbeats.

A cron dispatcher (or an operator) calls these; each call is one complete
unit of work and reports counts rather than failing atomically.
"""
from typing import Any, Dict, List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.api.deps import get_db, get_provider_client, get_request_id, get_settings
from app.config import Settings
from app.integrations.apify import ApifyClient
from app.models.schemas import CronStatusRead
from app.services.inbox_processor import process_inbox
from app.services.run_status import list_run_statuses
from app.services.scheduler import schedule_scrape
from app.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "/process-inbox",
    summary="Drain queued webhooks into reels and daily metrics"
)
async def run_process_inbox(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    client: ApifyClient = Depends(get_provider_client),
    request_id: str = Depends(get_request_id),
) -> Dict[str, Any]:
    logger.info("Inbox processing triggered", request_id=request_id)
    summary = await process_inbox(db, client, settings=settings)
    return {"ok": True, **summary}

@router.post(
    "/schedule-scrape",
    summary="Submit the daily incremental scrape for enabled models"
)
async def run_schedule_scrape(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    client: ApifyClient = Depends(get_provider_client),
    request_id: str = Depends(get_request_id),
) -> Dict[str, Any]:
    logger.info("Scheduled scrape triggered", request_id=request_id)
    return await schedule_scrape(db, client, settings)

@router.get(
    "/status",
    response_model=List[CronStatusRead],
    summary="Last heartbeat of every recurring job"
)
async def get_job_statuses(db: Session = Depends(get_db)) -> List[CronStatusRead]:
    return [CronStatusRead.model_validate(row) for row in list_run_statuses(db)]
