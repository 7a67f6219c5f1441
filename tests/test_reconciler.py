from datetime import date, datetime, timezone
from sqlalchemy.orm import Session
from app.models.db import CreatorModel, Reel, ReelMetricsDaily
from app.models.schemas import PostRecord
from app.services.reconciler import (
    mark_models_scraped,
    reconcile_record,
    resolve_models,
    upsert_daily_metrics,
    upsert_reel,
)
from app.utils.time import as_utc

NOW = datetime(2024, 3, 5, 23, 30, tzinfo=timezone.utc)


def _record(post_id: str = "p1", username: str = "alice", **overrides) -> PostRecord:
    data = {
        "platform_post_id": post_id,
        "owner_username": username,
        "url": f"https://www.instagram.com/reel/{post_id}/",
        "caption": "hello",
        "hashtags": ["a"],
        "views": 10,
        "likes": 2,
        "comments": 1,
    }
    data.update(overrides)
    return PostRecord(**data)


def test_resolve_models_exact_and_scoped(db_session: Session, model_factory):
    model_factory("alice", workspace_id="ws-1")
    model_factory("alice", workspace_id="ws-2")
    model_factory("alice_2", workspace_id="ws-1")

    assert len(resolve_models(db_session, "alice")) == 2
    scoped = resolve_models(db_session, "alice", "ws-2")
    assert [m.workspace_id for m in scoped] == ["ws-2"]
    assert resolve_models(db_session, "Alice") == []
    assert resolve_models(db_session, "nobody") == []


def test_upsert_reel_overwrites_mutable_fields(db_session: Session, model_factory):
    alice = model_factory("alice")
    first_id = upsert_reel(db_session, alice, _record(caption="v1", hashtags=["one"]), now=NOW)
    db_session.commit()
    second_id = upsert_reel(
        db_session,
        alice,
        _record(caption="v2", hashtags=["two", "three"], duration_seconds=30, thumbnail_url="https://cdn.test/t.jpg"),
        now=NOW,
    )
    db_session.commit()

    assert first_id == second_id
    db_session.expire_all()
    reel = db_session.query(Reel).one()
    assert reel.caption == "v2"
    assert reel.hashtags == ["two", "three"]
    assert reel.duration_seconds == 30
    assert reel.thumbnail_url == "https://cdn.test/t.jpg"


def test_same_post_in_two_workspaces_is_two_reels(db_session: Session, model_factory):
    a1 = model_factory("alice", workspace_id="ws-1")
    a2 = model_factory("alice", workspace_id="ws-2")
    id1 = upsert_reel(db_session, a1, _record(), now=NOW)
    id2 = upsert_reel(db_session, a2, _record(), now=NOW)
    db_session.commit()
    assert id1 != id2
    assert db_session.query(Reel).count() == 2


def test_daily_metrics_last_write_wins(db_session: Session, model_factory):
    alice = model_factory("alice")
    reel_id = upsert_reel(db_session, alice, _record(), now=NOW)
    upsert_daily_metrics(db_session, reel_id=reel_id, workspace_id=alice.workspace_id, record=_record(views=10, likes=1), day=date(2024, 3, 5), now=NOW)
    upsert_daily_metrics(db_session, reel_id=reel_id, workspace_id=alice.workspace_id, record=_record(views=42, likes=7, comments=3), day=date(2024, 3, 5), now=NOW)
    db_session.commit()

    rows = db_session.query(ReelMetricsDaily).all()
    assert len(rows) == 1
    assert (rows[0].views, rows[0].likes, rows[0].comments) == (42, 7, 3)


def test_reconcile_record_uses_utc_day_of_observation(db_session: Session, model_factory):
    alice = model_factory("alice")
    touched = reconcile_record(db_session, _record(), now=NOW)
    db_session.commit()
    assert touched == [alice.id]
    assert db_session.query(ReelMetricsDaily).one().day == date(2024, 3, 5)


def test_reconcile_record_unknown_username_is_silent(db_session: Session, model_factory):
    model_factory("alice")
    assert reconcile_record(db_session, _record(username="ghost"), now=NOW) == []
    assert db_session.query(Reel).count() == 0


def test_mark_models_scraped_dedupes_ids(db_session: Session, model_factory):
    alice = model_factory("alice")
    bob = model_factory("bob")
    carol = model_factory("carol")
    updated = mark_models_scraped(db_session, [alice.id, bob.id, alice.id], NOW)
    db_session.commit()
    assert updated == 2

    db_session.expire_all()
    assert db_session.get(CreatorModel, alice.id).backfill_completed is True
    assert as_utc(db_session.get(CreatorModel, bob.id).last_scraped_at) == NOW
    assert db_session.get(CreatorModel, carol.id).backfill_completed is False
    assert mark_models_scraped(db_session, [], NOW) == 0
