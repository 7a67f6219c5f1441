"""
Tracked model (creator account) management endpoints.
"""
import time
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from app.api.deps import get_db, get_provider_client, get_request_id, get_settings
from app.config import Settings
from app.integrations.apify import ApifyClient
from app.models.db.enums import ModelStatus
from app.models.schemas import (
    DisableModelResponse,
    EnableModelResponse,
    ModelCreate,
    ModelRead,
)
from app.services.model_lifecycle import (
    BackfillSubmissionError,
    DuplicateModelError,
    InvalidTransitionError,
    ModelNotFoundError,
    add_model,
    disable_model,
    enable_model,
    list_models,
)
from app.utils import get_logger, log_performance

router = APIRouter()
logger = get_logger(__name__)

@router.post(
    "",
    response_model=ModelRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register a creator account"
)
async def create_model(
    model_data: ModelCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
) -> ModelRead:
    """Register a creator account in ``pending`` state."""
    workspace_id = model_data.workspace_id or settings.default_workspace_id
    try:
        model = add_model(
            db,
            username=model_data.username,
            workspace_id=workspace_id,
            display_name=model_data.display_name,
        )
    except DuplicateModelError as e:
        logger.warning("Model registration conflict", username=e.username, workspace_id=e.workspace_id, request_id=request_id)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return ModelRead.model_validate(model)

@router.get(
    "",
    response_model=List[ModelRead],
    summary="List creator accounts, newest first"
)
async def get_models(
    workspace_id: Optional[str] = Query(None),
    model_status: Optional[ModelStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
) -> List[ModelRead]:
    models = list_models(db, workspace_id=workspace_id, status=model_status)
    return [ModelRead.model_validate(m) for m in models]

@router.post(
    "/{model_id}/enable",
    response_model=EnableModelResponse,
    summary="Enable a model and submit its backfill run"
)
async def enable(
    model_id: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    client: ApifyClient = Depends(get_provider_client),
    request_id: str = Depends(get_request_id),
):
    """Enable a model.

    The status change is committed before the provider submission. A failed
    submission leaves the model enabled and answers 502 with ``started=false``.
    """
    start_time = time.time()
    try:
        run_id = await enable_model(db, client, settings, model_id)
    except ModelNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except BackfillSubmissionError as e:
        logger.error("Enable completed without backfill", model_id=model_id, error=str(e), request_id=request_id)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=EnableModelResponse(started=False, error=str(e)).model_dump(),
        )
    log_performance(
        operation="enable_model",
        duration_ms=(time.time() - start_time) * 1000,
        additional_data={"model_id": model_id},
    )
    return EnableModelResponse(started=True, run_id=run_id)

@router.post(
    "/{model_id}/disable",
    response_model=DisableModelResponse,
    summary="Disable a model"
)
async def disable(
    model_id: str,
    db: Session = Depends(get_db),
) -> DisableModelResponse:
    try:
        disable_model(db, model_id)
    except ModelNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return DisableModelResponse(ok=True)
