"""
Provider webhook receiver.

Authenticates the shared secret, derives the dedupe key from the run and
dataset ids and queues the notification. No dataset fetch happens here;
the inbox processor does that on its own schedule.
"""
import hmac
import json
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.api.deps import get_db, get_request_id, get_settings
from app.config import Settings
from app.integrations.sources import DEFAULT_SOURCE
from app.models.db.enums import JobName
from app.models.schemas import ApifyWebhookPayload
from app.services.inbox import append_entry, compute_dedupe_key
from app.services.run_status import record_run_status, run_best_effort
from app.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)

def _secret_matches(provided: Optional[str], expected: Optional[str]) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))

def _heartbeat(db: Session, ok: bool, message: str) -> None:
    run_best_effort(
        "heartbeat:apify_webhook_last",
        lambda: record_run_status(db, JobName.WEBHOOK, ok, message),
        session=db,
    )

@router.post(
    "/apify_webhook",
    summary="Receive a provider run notification"
)
async def receive_apify_webhook(
    request: Request,
    source: Optional[str] = Query(None, max_length=64),
    secret: Optional[str] = Query(None),
    workspace: Optional[str] = Query(None, max_length=128),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
) -> Dict[str, Any]:
    """Queue a run-completion notification; redeliveries are accepted idempotently."""
    if not _secret_matches(secret, settings.webhook_secret):
        logger.warning("Webhook rejected: bad secret", source=source, request_id=request_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except ValueError:
        body = None
    if not isinstance(body, dict):
        _heartbeat(db, False, "Invalid JSON body")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body must be a JSON object")

    try:
        payload = ApifyWebhookPayload.model_validate(body)
    except ValidationError as e:
        _heartbeat(db, False, "Malformed webhook payload")
        logger.warning("Webhook payload failed validation", errors=e.error_count(), request_id=request_id)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed webhook payload")

    run_id, dataset_id = payload.run_id, payload.dataset_id
    if not run_id and not dataset_id:
        _heartbeat(db, False, "Webhook missing run id and dataset id")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payload carries neither run id nor dataset id")

    tag = (source or DEFAULT_SOURCE).strip().lower() or DEFAULT_SOURCE
    try:
        result = append_entry(
            db,
            source=tag,
            payload=body,
            dedupe_key=compute_dedupe_key(run_id, dataset_id),
            workspace_id=(workspace or "").strip() or None,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to store webhook", error=str(e), run_id=run_id, dataset_id=dataset_id, request_id=request_id)
        _heartbeat(db, False, f"Store error: {type(e).__name__}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to store webhook")

    _heartbeat(
        db,
        True,
        f"{'Duplicate' if result.duplicate else 'Received'} webhook run={run_id} dataset={dataset_id}",
    )
    logger.info(
        "Webhook accepted",
        source=tag,
        workspace=workspace,
        run_id=run_id,
        dataset_id=dataset_id,
        event_type=payload.event_type,
        duplicate=result.duplicate,
        request_id=request_id,
    )
    return {"ok": True, "hash": result.hash, "duplicate": result.duplicate}
