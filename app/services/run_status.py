"""Run-health heartbeats, best-effort side effects and the metrics-view refresh.

Heartbeats live in ``cron_status`` (one row per job name, overwritten on
every run). Side effects that must never fail their enclosing operation
(heartbeat on an error path, audit rows after a batch, the dashboard view
refresh) go through ``run_best_effort``.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.config import INGESTION_SETTINGS, Settings
from app.database import insert_for
from app.models.db.cron_status import CronStatus
from app.models.db.enums import JobName
from app.utils import get_logger, utc_now

logger = get_logger(__name__)

T = TypeVar("T")

_MAX_MESSAGE_LENGTH = 1000
_FUNCTION_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def record_run_status(
    session: Session,
    name: JobName | str,
    ok: bool,
    message: str,
    *,
    now: Optional[datetime] = None,
) -> None:
    """Upsert the heartbeat row for ``name`` and commit."""
    job = name.value if isinstance(name, JobName) else str(name)
    values = {
        "name": job,
        "last_run_at": now or utc_now(),
        "last_ok": bool(ok),
        "last_message": (message or "")[:_MAX_MESSAGE_LENGTH],
    }
    stmt = insert_for(session, CronStatus).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[CronStatus.name],
        set_={
            "last_run_at": stmt.excluded.last_run_at,
            "last_ok": stmt.excluded.last_ok,
            "last_message": stmt.excluded.last_message,
        },
    )
    session.execute(stmt)
    session.commit()
    logger.debug("Heartbeat recorded", job=job, ok=ok, last_message=values["last_message"])


def run_best_effort(
    operation: str,
    fn: Callable[[], T],
    *,
    session: Optional[Session] = None,
) -> Optional[T]:
    """Call ``fn``; log and swallow any failure, rolling ``session`` back."""
    try:
        return fn()
    except Exception as e:
        logger.warning(
            "Best-effort operation failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
        )
        if session is not None:
            try:
                session.rollback()
            except Exception as rollback_error:
                logger.error("Rollback after best-effort failure failed", operation=operation, error=str(rollback_error))
        return None


def refresh_metrics_views(session: Session, settings: Settings) -> bool:
    """Ask the database to refresh dashboard materialized views.

    Only PostgreSQL deployments carry the refresh function; other dialects
    report ``False`` without touching the database.
    """
    if not INGESTION_SETTINGS.get("refresh_metrics_views", True):
        return False
    dialect = session.get_bind().dialect.name
    if dialect != "postgresql":
        logger.debug("Metrics view refresh skipped", dialect=dialect)
        return False
    function_name = settings.metrics_refresh_function
    if not _FUNCTION_NAME.match(function_name or ""):
        raise ValueError(f"Invalid metrics refresh function name: {function_name!r}")
    session.execute(text(f"SELECT {function_name}()"))
    session.commit()
    logger.info("Metrics views refreshed", function=function_name)
    return True


def list_run_statuses(session: Session) -> list[CronStatus]:
    return session.query(CronStatus).order_by(CronStatus.name).all()


__all__ = [
    "record_run_status",
    "run_best_effort",
    "refresh_metrics_views",
    "list_run_statuses",
]
