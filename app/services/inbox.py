"""Inbox store: durable queue of received provider webhook notifications.

Entries are appended by the webhook receiver and only ever flipped to
processed by the inbox processor; nothing deletes them. Uniqueness of the
dedupe key is enforced by the database at insert time, so a redelivered
notification never produces a second row.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import INGESTION_SETTINGS
from app.models.db.webhooks_inbox import InboxEntry
from app.models.schemas import ApifyWebhookPayload
from app.utils import get_logger, utc_now

logger = get_logger(__name__)


@dataclass
class AppendResult:
    entry_id: str
    hash: str
    duplicate: bool


def compute_dedupe_key(run_id: Optional[str], dataset_id: Optional[str]) -> str:
    """Stable key from the provider ids; incidental payload drift never changes it."""
    return f"{run_id or ''}-{dataset_id or ''}"


def compute_hash(dedupe_key: str) -> str:
    return hashlib.sha256(dedupe_key.encode("utf-8")).hexdigest()


def payload_dataset_id(payload: Any) -> Optional[str]:
    """Dataset id carried by a stored payload, ``None`` when absent or unreadable."""
    if not isinstance(payload, dict):
        return None
    try:
        return ApifyWebhookPayload.model_validate(payload).dataset_id
    except ValidationError:
        return None


def append_entry(
    session: Session,
    *,
    source: str,
    payload: Dict[str, Any],
    dedupe_key: str,
    workspace_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AppendResult:
    """Insert an unprocessed entry; a duplicate dedupe key is an idempotent accept."""
    digest = compute_hash(dedupe_key)
    entry = InboxEntry(
        source=source,
        payload=payload,
        hash=digest,
        dedupe_key=dedupe_key,
        processed=False,
        workspace_id=workspace_id,
        created_at=now or utc_now(),
    )
    session.add(entry)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = session.query(InboxEntry).filter(InboxEntry.dedupe_key == dedupe_key).one_or_none()
        if existing is None:
            raise
        logger.info("Duplicate webhook ignored", dedupe_key=dedupe_key, entry_id=existing.id)
        return AppendResult(entry_id=existing.id, hash=existing.hash, duplicate=True)

    logger.info("Webhook queued", entry_id=entry.id, source=source, dedupe_key=dedupe_key)
    return AppendResult(entry_id=entry.id, hash=digest, duplicate=False)


def fetch_unprocessed(session: Session, limit: Optional[int] = None) -> list[InboxEntry]:
    """Oldest-first bounded batch of entries still waiting for processing."""
    batch_size = int(limit or INGESTION_SETTINGS["batch_size"])
    return (
        session.query(InboxEntry)
        .filter(InboxEntry.processed.is_(False))
        .order_by(InboxEntry.created_at.asc(), InboxEntry.id.asc())
        .limit(batch_size)
        .all()
    )


def mark_processed(session: Session, entry: InboxEntry, *, now: Optional[datetime] = None) -> None:
    entry.processed = True
    entry.processed_at = now or utc_now()
    session.flush()


__all__ = [
    "AppendResult",
    "compute_dedupe_key",
    "compute_hash",
    "payload_dataset_id",
    "append_entry",
    "fetch_unprocessed",
    "mark_processed",
]
