"""Inbox processor: drain queued webhook notifications into reels and metrics.

Single public coroutine ``process_inbox(session, client)`` that:
1. Reads a bounded, oldest-first batch of unprocessed inbox entries.
2. Records a no-op heartbeat and returns when the batch is empty.
3. Marks entries without a dataset id processed (counted as skipped).
4. Fetches each dataset from the provider. A failed fetch is counted and the
   entry stays unprocessed so a later run retries it.
5. Parses every item with the entry's source strategy and reconciles it.
   Store failures roll back that item only and are counted.
6. Marks the entry processed once every item was attempted.
7. After the batch: one bookkeeping update for the touched models, the
   ``process_inbox`` heartbeat, a best-effort metrics view refresh and a
   best-effort audit event.

Entries and items are handled sequentially; each item commits on its own so
one bad record never loses the work done for its neighbours.
"""
from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import INGESTION_SETTINGS, Settings
from app.integrations.apify import ApifyClient, ApifyError
from app.integrations.sources import get_source
from app.models.db.enums import EventLevel, JobName
from app.models.db.webhooks_inbox import InboxEntry
from app.models.schemas import InboxRunSummary
from app.services.audit import SYSTEM_PAGE, record_event
from app.services.inbox import fetch_unprocessed, mark_processed, payload_dataset_id
from app.services.reconciler import mark_models_scraped, reconcile_record
from app.services.run_status import record_run_status, refresh_metrics_views, run_best_effort
from app.utils import get_logger, log_performance, utc_now

logger = get_logger(__name__)

NO_WORK_MESSAGE = "No webhooks to process"


def _finish_entry(session: Session, entry: InboxEntry, summary: InboxRunSummary, now: datetime) -> bool:
    entry_id = entry.id
    try:
        mark_processed(session, entry, now=now)
        session.commit()
        return True
    except SQLAlchemyError as e:
        session.rollback()
        summary.item_errors += 1
        logger.error("Failed to mark inbox entry processed", entry_id=entry_id, error=str(e))
        return False


def _status_message(summary: InboxRunSummary) -> str:
    message = f"Processed {summary.processed} webhooks"
    if summary.skipped:
        message += f", {summary.skipped} skipped"
    if summary.error_count:
        message += f", {summary.error_count} errors"
    return message


async def process_inbox(
    session: Session,
    client: ApifyClient,
    *,
    settings: Optional[Settings] = None,
    batch_size: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Run one inbox processing pass and return its summary counts."""
    ts = now or utc_now()
    settings = settings or Settings()
    started = time.perf_counter()
    summary = InboxRunSummary()

    try:
        entries = fetch_unprocessed(session, batch_size or int(INGESTION_SETTINGS["batch_size"]))
        summary.entries = len(entries)

        if not entries:
            logger.info("Inbox empty")
            run_best_effort(
                "heartbeat:process_inbox",
                lambda: record_run_status(session, JobName.PROCESS_INBOX, True, NO_WORK_MESSAGE, now=ts),
                session=session,
            )
            return summary.model_dump()

        touched_models: set[str] = set()
        for entry in entries:
            entry_id = entry.id
            dataset_id = payload_dataset_id(entry.payload)
            if not dataset_id:
                logger.info("Inbox entry has no dataset id", entry_id=entry_id, source=entry.source)
                if _finish_entry(session, entry, summary, ts):
                    summary.skipped += 1
                continue

            try:
                items = await client.fetch_dataset_items(dataset_id)
            except ApifyError as e:
                summary.fetch_errors += 1
                logger.warning(
                    "Dataset fetch failed, entry left for retry",
                    entry_id=entry_id,
                    dataset_id=dataset_id,
                    retryable=e.retryable,
                    status=e.status,
                    error=str(e),
                )
                continue

            source = get_source(entry.source)
            workspace_id = entry.workspace_id
            logger.info("Processing dataset", entry_id=entry_id, dataset_id=dataset_id, items=len(items))
            for raw in items:
                record = source.parse_item(raw)
                if record is None:
                    summary.records_skipped += 1
                    continue
                try:
                    touched = reconcile_record(session, record, workspace_id=workspace_id, now=ts)
                    session.commit()
                except SQLAlchemyError as e:
                    session.rollback()
                    summary.item_errors += 1
                    logger.error(
                        "Failed to reconcile dataset item",
                        entry_id=entry_id,
                        post_id=record.platform_post_id,
                        username=record.owner_username,
                        error=str(e),
                    )
                    continue
                if touched:
                    summary.records_reconciled += 1
                    touched_models.update(touched)
                else:
                    summary.records_skipped += 1

            if _finish_entry(session, entry, summary, ts):
                summary.processed += 1

        if touched_models:
            try:
                summary.models_updated = mark_models_scraped(session, touched_models, ts)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                summary.item_errors += 1
                logger.error("Failed to update model bookkeeping", models=len(touched_models), error=str(e))
    except Exception as e:
        session.rollback()
        logger.error("Inbox processing aborted", error=str(e), exc_info=True)
        run_best_effort(
            "heartbeat:process_inbox",
            lambda: record_run_status(session, JobName.PROCESS_INBOX, False, f"Error: {e}", now=ts),
            session=session,
        )
        raise

    ok = summary.error_count == 0
    run_best_effort(
        "heartbeat:process_inbox",
        lambda: record_run_status(session, JobName.PROCESS_INBOX, ok, _status_message(summary), now=ts),
        session=session,
    )
    run_best_effort(
        "refresh_metrics_views",
        lambda: refresh_metrics_views(session, settings),
        session=session,
    )
    run_best_effort(
        "audit:cron:process_inbox_completed",
        lambda: record_event(
            session,
            "cron:process_inbox_completed",
            level=EventLevel.INFO if ok else EventLevel.WARN,
            context={
                "processedCount": summary.processed,
                "errorCount": summary.error_count,
                "skippedCount": summary.skipped,
                "recordsReconciled": summary.records_reconciled,
            },
            page=SYSTEM_PAGE,
            now=ts,
        ),
        session=session,
    )

    log_performance(
        "process_inbox",
        (time.perf_counter() - started) * 1000,
        {"entries": summary.entries, "processed": summary.processed, "errors": summary.error_count},
    )
    return summary.model_dump()


__all__ = ["process_inbox", "NO_WORK_MESSAGE"]
