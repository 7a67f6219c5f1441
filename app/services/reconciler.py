"""Entity reconciler.

Maps one normalized ``PostRecord`` onto the tracked model(s) owning it, then
writes the reel and today's metrics snapshot. Both writes are single
``INSERT ... ON CONFLICT DO UPDATE`` statements keyed on natural keys, so
overlapping processor runs converge on last-write-wins instead of racing a
read-then-write.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.database import insert_for
from app.models.db.creator_models import CreatorModel
from app.models.db.reel_metrics import ReelMetricsDaily
from app.models.db.reels import Reel
from app.models.schemas import PostRecord
from app.utils import get_logger, utc_day, utc_now

logger = get_logger(__name__)


def resolve_models(session: Session, username: str, workspace_id: Optional[str] = None) -> list[CreatorModel]:
    """Tracked models for an external username (exact match).

    Scoped to ``workspace_id`` when given; otherwise every workspace tracking
    the account gets the post.
    """
    query = session.query(CreatorModel).filter(CreatorModel.username == username)
    if workspace_id:
        query = query.filter(CreatorModel.workspace_id == workspace_id)
    return query.order_by(CreatorModel.workspace_id).all()


def upsert_reel(session: Session, model: CreatorModel, record: PostRecord, *, now: Optional[datetime] = None) -> str:
    """Insert or refresh the reel for ``(workspace, platform_post_id)``; returns the reel id."""
    ts = now or utc_now()
    stmt = insert_for(session, Reel).values(
        id=str(uuid.uuid4()),
        workspace_id=model.workspace_id,
        model_id=model.id,
        platform_post_id=record.platform_post_id,
        url=record.url,
        caption=record.caption,
        hashtags=list(record.hashtags),
        thumbnail_url=record.thumbnail_url,
        posted_at=record.posted_at,
        duration_seconds=record.duration_seconds,
        updated_at=ts,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["workspace_id", "platform_post_id"],
        set_={
            "model_id": stmt.excluded.model_id,
            "url": stmt.excluded.url,
            "caption": stmt.excluded.caption,
            "hashtags": stmt.excluded.hashtags,
            "thumbnail_url": stmt.excluded.thumbnail_url,
            "posted_at": stmt.excluded.posted_at,
            "duration_seconds": stmt.excluded.duration_seconds,
            "updated_at": stmt.excluded.updated_at,
        },
    ).returning(Reel.id)
    return session.execute(stmt).scalar_one()


def upsert_daily_metrics(
    session: Session,
    *,
    reel_id: str,
    workspace_id: str,
    record: PostRecord,
    day: date,
    now: Optional[datetime] = None,
) -> None:
    """Write the snapshot for ``(reel_id, day)``; later observations overwrite the counters."""
    ts = now or utc_now()
    stmt = insert_for(session, ReelMetricsDaily).values(
        id=str(uuid.uuid4()),
        workspace_id=workspace_id,
        reel_id=reel_id,
        day=day,
        views=record.views,
        likes=record.likes,
        comments=record.comments,
        saves=0,
        shares=0,
        watch_time_seconds=0,
        completion_rate=None,
        updated_at=ts,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["reel_id", "day"],
        set_={
            "views": stmt.excluded.views,
            "likes": stmt.excluded.likes,
            "comments": stmt.excluded.comments,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    session.execute(stmt)


def reconcile_record(
    session: Session,
    record: PostRecord,
    *,
    workspace_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[str]:
    """Reconcile one post; returns ids of the models it was written for.

    An untracked username is a silent skip (empty list). Store errors
    propagate to the caller, which owns the transaction.
    """
    ts = now or utc_now()
    models = resolve_models(session, record.owner_username, workspace_id)
    if not models:
        logger.debug(
            "No tracked model for username",
            username=record.owner_username,
            workspace_id=workspace_id,
            post_id=record.platform_post_id,
        )
        return []

    day = utc_day(ts)
    touched: list[str] = []
    for model in models:
        reel_id = upsert_reel(session, model, record, now=ts)
        upsert_daily_metrics(
            session,
            reel_id=reel_id,
            workspace_id=model.workspace_id,
            record=record,
            day=day,
            now=ts,
        )
        touched.append(model.id)
    return touched


def mark_models_scraped(session: Session, model_ids: Iterable[str], now: Optional[datetime] = None) -> int:
    """Single bookkeeping UPDATE for every distinct model touched in a run."""
    ids = sorted(set(model_ids))
    if not ids:
        return 0
    updated = (
        session.query(CreatorModel)
        .filter(CreatorModel.id.in_(ids))
        .update(
            {
                CreatorModel.last_scraped_at: now or utc_now(),
                CreatorModel.backfill_completed: True,
            },
            synchronize_session=False,
        )
    )
    logger.info("Models marked scraped", models=len(ids), rows=updated)
    return updated


__all__ = [
    "resolve_models",
    "upsert_reel",
    "upsert_daily_metrics",
    "reconcile_record",
    "mark_models_scraped",
]
