"""Daily scrape scheduler.

Fans every enabled model out into fixed-size username chunks and submits one
small incremental run per chunk. Submissions are fire-and-forget: data comes
back later through the webhook path, so ``last_daily_scrape_at`` is stamped
on all enabled models whatever the per-chunk outcome.
"""
from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import SCHEDULER_SETTINGS, Settings
from app.integrations.apify import ApifyClient, ApifyError, ApifyConfigError, build_webhook_url
from app.integrations.sources import DEFAULT_SOURCE, get_source
from app.models.db.creator_models import CreatorModel
from app.models.db.enums import EventLevel, JobName, ModelStatus
from app.models.schemas import ScheduleRunSummary
from app.services.audit import SYSTEM_PAGE, record_event
from app.services.run_status import record_run_status, run_best_effort
from app.utils import get_logger, log_performance, utc_now

logger = get_logger(__name__)


def chunked(values: Sequence[str], size: int) -> Iterator[List[str]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(values), size):
        yield list(values[start:start + size])


def chunk_workspace(chunk: Iterable[str], workspaces_by_username: Mapping[str, set[str]]) -> Optional[str]:
    """The single workspace tracking every username in ``chunk``, else ``None``."""
    workspaces: set[str] = set()
    for username in chunk:
        workspaces.update(workspaces_by_username.get(username, ()))
    return next(iter(workspaces)) if len(workspaces) == 1 else None


def stamp_daily_scrape(session: Session, model_ids: Sequence[str], now: datetime) -> int:
    return (
        session.query(CreatorModel)
        .filter(CreatorModel.id.in_(model_ids))
        .update({CreatorModel.last_daily_scrape_at: now}, synchronize_session=False)
    )


async def schedule_scrape(
    session: Session,
    client: ApifyClient,
    settings: Settings,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Submit one run per chunk of enabled usernames; returns camelCase counts."""
    ts = now or utc_now()
    started = time.perf_counter()
    chunk_size = int(SCHEDULER_SETTINGS["chunk_size"])
    results_limit = int(SCHEDULER_SETTINGS["daily_results_limit"])
    source = get_source(DEFAULT_SOURCE)

    models = (
        session.query(CreatorModel)
        .filter(CreatorModel.status == ModelStatus.ENABLED)
        .order_by(CreatorModel.created_at.asc(), CreatorModel.id.asc())
        .all()
    )
    model_ids = [m.id for m in models]
    workspaces_by_username: Dict[str, set[str]] = {}
    for m in models:
        workspaces_by_username.setdefault(m.username, set()).add(m.workspace_id)
    # One account tracked in several workspaces is scraped once.
    usernames = list(workspaces_by_username)
    chunks = list(chunked(usernames, chunk_size))
    summary = ScheduleRunSummary(models_count=len(models), chunks_count=len(chunks))

    for index, chunk in enumerate(chunks):
        try:
            if not settings.webhook_secret:
                raise ApifyConfigError("APIFY_WEBHOOK_SECRET not configured", operation="start_run")
            run_id = await client.start_run(
                source.build_run_input(chunk, results_limit),
                webhook_url=build_webhook_url(
                    settings.public_base_url,
                    settings.webhook_secret,
                    source.kind.value,
                    workspace=chunk_workspace(chunk, workspaces_by_username),
                ),
                event_types=SCHEDULER_SETTINGS["webhook_event_types"],
            )
            summary.successful_runs += 1
            logger.info("Scrape chunk submitted", chunk=index, usernames=len(chunk), run_id=run_id)
        except ApifyError as e:
            summary.error_count += 1
            logger.error("Scrape chunk submission failed", chunk=index, usernames=len(chunk), error=str(e))

    if model_ids:
        try:
            stamp_daily_scrape(session, model_ids, ts)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            summary.error_count += 1
            logger.error("Failed to stamp daily scrape time", models=len(model_ids), error=str(e))

    ok = summary.error_count == 0
    message = (
        f"Scheduled {summary.successful_runs}/{summary.chunks_count} runs "
        f"for {summary.models_count} models"
    )
    if summary.error_count:
        message += f", {summary.error_count} errors"
    run_best_effort(
        "heartbeat:schedule_scrape_reels",
        lambda: record_run_status(session, JobName.SCHEDULE_SCRAPE, ok, message, now=ts),
        session=session,
    )
    counts = summary.model_dump(by_alias=True)
    run_best_effort(
        "audit:cron:schedule_scrape_completed",
        lambda: record_event(
            session,
            "cron:schedule_scrape_completed",
            level=EventLevel.INFO if ok else EventLevel.WARN,
            context=counts,
            page=SYSTEM_PAGE,
            now=ts,
        ),
        session=session,
    )
    log_performance("schedule_scrape", (time.perf_counter() - started) * 1000, counts)
    return counts


__all__ = ["schedule_scrape", "chunked", "chunk_workspace", "stamp_daily_scrape"]
