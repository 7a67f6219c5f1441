"""Model lifecycle: registration, enable (with backfill submission), disable.

Status is an operator intent flag. ``enable`` commits ``enabled`` before the
provider submission and keeps it when the submission fails; the failure is
recorded as an audit event and reported to the caller. Ingestion never
writes ``status``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import SCHEDULER_SETTINGS, Settings
from app.integrations.apify import ApifyClient, ApifyError, ApifyConfigError, build_webhook_url
from app.integrations.sources import DEFAULT_SOURCE, get_source
from app.models.db.creator_models import CreatorModel
from app.models.db.enums import MODEL_STATUS_TRANSITIONS, EventLevel, ModelStatus
from app.services.audit import MODELS_PAGE, record_event
from app.services.run_status import run_best_effort
from app.utils import get_logger, utc_now

logger = get_logger(__name__)


class ModelNotFoundError(Exception):
    def __init__(self, model_id: str):
        super().__init__(f"Model {model_id} not found")
        self.model_id = model_id


class DuplicateModelError(Exception):
    def __init__(self, username: str, workspace_id: str):
        super().__init__(f"Model '{username}' already exists in workspace '{workspace_id}'")
        self.username = username
        self.workspace_id = workspace_id


class InvalidTransitionError(Exception):
    pass


class BackfillSubmissionError(Exception):
    """Provider rejected the backfill run; the model stays enabled."""

    def __init__(self, model_id: str, message: str):
        super().__init__(message)
        self.model_id = model_id


def _get_model(session: Session, model_id: str) -> CreatorModel:
    model = session.query(CreatorModel).filter(CreatorModel.id == model_id).one_or_none()
    if model is None:
        raise ModelNotFoundError(model_id)
    return model


def _transition(model: CreatorModel, target: ModelStatus) -> None:
    current = ModelStatus(model.status)
    if target not in MODEL_STATUS_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move model from {current.value} to {target.value}")
    model.status = target


def add_model(
    session: Session,
    *,
    username: str,
    workspace_id: str,
    display_name: Optional[str] = None,
) -> CreatorModel:
    """Register a tracked account in ``pending`` state."""
    model = CreatorModel(
        username=username,
        workspace_id=workspace_id,
        display_name=display_name or username,
        status=ModelStatus.PENDING,
        backfill_completed=False,
        created_at=utc_now(),
    )
    session.add(model)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise DuplicateModelError(username, workspace_id) from e
    session.refresh(model)
    logger.info("Model registered", model_id=model.id, username=username, workspace_id=workspace_id)
    return model


def list_models(
    session: Session,
    *,
    workspace_id: Optional[str] = None,
    status: Optional[ModelStatus] = None,
) -> list[CreatorModel]:
    query = session.query(CreatorModel)
    if workspace_id:
        query = query.filter(CreatorModel.workspace_id == workspace_id)
    if status is not None:
        query = query.filter(CreatorModel.status == status)
    return query.order_by(CreatorModel.created_at.desc(), CreatorModel.id.desc()).all()


async def enable_model(
    session: Session,
    client: ApifyClient,
    settings: Settings,
    model_id: str,
    *,
    now: Optional[datetime] = None,
) -> str:
    """Enable a model and submit its backfill run; returns the provider run id.

    Raises:
        ModelNotFoundError: unknown ``model_id``.
        BackfillSubmissionError: the run could not be submitted (status stays enabled).
    """
    ts = now or utc_now()
    model = _get_model(session, model_id)
    _transition(model, ModelStatus.ENABLED)
    model.last_backfill_at = ts
    session.commit()

    username = model.username
    workspace_id = model.workspace_id
    run_best_effort(
        "audit:model:enabled",
        lambda: record_event(
            session,
            "model:enabled",
            context={"modelId": model_id, "username": username},
            workspace_id=workspace_id,
            page=MODELS_PAGE,
            now=ts,
        ),
        session=session,
    )

    source = get_source(DEFAULT_SOURCE)
    try:
        if not settings.webhook_secret:
            raise ApifyConfigError("APIFY_WEBHOOK_SECRET not configured", operation="start_run")
        run_id = await client.start_run(
            source.build_run_input([username], int(SCHEDULER_SETTINGS["backfill_results_limit"])),
            webhook_url=build_webhook_url(
                settings.public_base_url,
                settings.webhook_secret,
                source.kind.value,
                workspace=workspace_id,
            ),
            event_types=SCHEDULER_SETTINGS["webhook_event_types"],
        )
    except ApifyError as e:
        logger.error("Backfill submission failed", model_id=model_id, username=username, error=str(e))
        run_best_effort(
            "audit:model:apify_error",
            lambda: record_event(
                session,
                "model:apify_error",
                level=EventLevel.ERROR,
                context={"modelId": model_id, "error": str(e)},
                workspace_id=workspace_id,
                page=MODELS_PAGE,
                now=ts,
            ),
            session=session,
        )
        raise BackfillSubmissionError(model_id, str(e)) from e

    model = _get_model(session, model_id)
    model.apify_task_id = run_id
    session.commit()
    logger.info("Backfill submitted", model_id=model_id, username=username, run_id=run_id)
    return run_id


def disable_model(session: Session, model_id: str, *, now: Optional[datetime] = None) -> CreatorModel:
    """Flip a model to ``disabled``; repeated calls are no-ops. No provider call."""
    model = _get_model(session, model_id)
    already_disabled = ModelStatus(model.status) == ModelStatus.DISABLED
    _transition(model, ModelStatus.DISABLED)
    session.commit()

    if not already_disabled:
        username = model.username
        workspace_id = model.workspace_id
        run_best_effort(
            "audit:model:disabled",
            lambda: record_event(
                session,
                "model:disabled",
                context={"modelId": model_id, "username": username},
                workspace_id=workspace_id,
                page=MODELS_PAGE,
                now=now,
            ),
            session=session,
        )
    return model


__all__ = [
    "ModelNotFoundError",
    "DuplicateModelError",
    "InvalidTransitionError",
    "BackfillSubmissionError",
    "add_model",
    "list_models",
    "enable_model",
    "disable_model",
]
