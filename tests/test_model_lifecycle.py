import asyncio
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from app.integrations.apify import ApifyRateLimitError
from app.models.db import CreatorModel, EventLog, ModelStatus
from app.services.model_lifecycle import (
    BackfillSubmissionError,
    ModelNotFoundError,
    disable_model,
    enable_model,
)


def test_register_model_strips_at_and_starts_pending(client: TestClient, db_session: Session):
    r = client.post("/api/v1/models", json={"username": "@alice.b_1", "display_name": "Alice"})
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["username"] == "alice.b_1"
    assert data["status"] == "pending"
    assert data["workspace_id"] == "default"
    assert data["backfill_completed"] is False
    assert db_session.query(CreatorModel).count() == 1


@pytest.mark.parametrize("username", ["", "@", "alice smith", "bob!", "a/b"])
def test_register_model_rejects_invalid_usernames(client: TestClient, username: str):
    r = client.post("/api/v1/models", json={"username": username})
    assert r.status_code == 422


def test_register_duplicate_in_workspace_conflicts(client: TestClient):
    assert client.post("/api/v1/models", json={"username": "alice"}).status_code == 201
    r = client.post("/api/v1/models", json={"username": "@alice"})
    assert r.status_code == 409
    assert r.json()["success"] is False
    # same username in another workspace is fine
    r = client.post("/api/v1/models", json={"username": "alice", "workspace_id": "ws-2"})
    assert r.status_code == 201


def test_list_models_newest_first(client: TestClient, model_factory):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    model_factory("older", created_at=base)
    model_factory("newer", created_at=base + timedelta(hours=1))
    model_factory("other_ws", workspace_id="ws-2", created_at=base + timedelta(hours=2))

    r = client.get("/api/v1/models")
    assert r.status_code == 200
    assert [m["username"] for m in r.json()] == ["other_ws", "newer", "older"]

    r = client.get("/api/v1/models", params={"workspace_id": "default"})
    assert [m["username"] for m in r.json()] == ["newer", "older"]


def test_enable_submits_backfill_and_stores_run_id(client: TestClient, db_session: Session, fake_apify, model_factory):
    alice = model_factory("alice", model_id="alice-id")

    r = client.post(f"/api/v1/models/{alice.id}/enable")
    assert r.status_code == 200, r.text
    assert r.json() == {"started": True, "run_id": "run-1", "error": None}

    db_session.expire_all()
    model = db_session.get(CreatorModel, "alice-id")
    assert model.status == ModelStatus.ENABLED
    assert model.apify_task_id == "run-1"
    assert model.last_backfill_at is not None

    assert len(fake_apify.started_runs) == 1
    run = fake_apify.started_runs[0]
    assert run["input"] == {"usernames": ["alice"], "resultsLimit": 100}
    assert run["event_types"] == ["ACTOR.RUN.SUCCEEDED", "ACTOR.RUN.FAILED", "ACTOR.RUN.ABORTED"]
    url = urlparse(run["webhook_url"])
    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://ingest.test/api/v1/apify_webhook"
    assert parse_qs(url.query) == {"source": ["instagram"], "secret": ["test-secret"], "workspace": ["default"]}

    event = db_session.query(EventLog).filter(EventLog.event == "model:enabled").one()
    assert event.context == {"modelId": "alice-id", "username": "alice"}
    assert event.page == "/models"
    assert event.workspace_id == "default"


def test_enable_unknown_model_is_404(client: TestClient, fake_apify):
    r = client.post("/api/v1/models/missing/enable")
    assert r.status_code == 404
    assert fake_apify.started_runs == []


def test_enable_submission_failure_keeps_status_enabled(client: TestClient, db_session: Session, fake_apify, model_factory):
    alice = model_factory("alice")
    fake_apify.start_error = ApifyRateLimitError("Apify rate limit exceeded", status=429)

    r = client.post(f"/api/v1/models/{alice.id}/enable")
    assert r.status_code == 502
    body = r.json()
    assert body["started"] is False
    assert "rate limit" in body["error"]

    db_session.expire_all()
    model = db_session.get(CreatorModel, alice.id)
    assert model.status == ModelStatus.ENABLED
    assert model.apify_task_id is None
    assert model.last_backfill_at is not None

    error_event = db_session.query(EventLog).filter(EventLog.event == "model:apify_error").one()
    assert error_event.level == "error"
    assert error_event.context["modelId"] == alice.id
    assert db_session.query(EventLog).filter(EventLog.event == "model:enabled").count() == 1


def test_enable_without_webhook_secret_reports_failure(db_session: Session, fake_apify, model_factory, settings):
    alice = model_factory("alice")
    with pytest.raises(BackfillSubmissionError):
        asyncio.run(enable_model(db_session, fake_apify, settings.with_overrides(webhook_secret=None), alice.id))
    assert fake_apify.started_runs == []
    db_session.expire_all()
    assert db_session.get(CreatorModel, alice.id).status == ModelStatus.ENABLED


def test_status_transitions(client: TestClient, db_session: Session, model_factory):
    pending = model_factory("pending_one")
    enabled = model_factory("enabled_one", status=ModelStatus.ENABLED)

    assert client.post(f"/api/v1/models/{pending.id}/disable").json() == {"ok": True}
    assert client.post(f"/api/v1/models/{enabled.id}/disable").status_code == 200
    # idempotent
    assert client.post(f"/api/v1/models/{enabled.id}/disable").status_code == 200

    db_session.expire_all()
    assert db_session.get(CreatorModel, pending.id).status == ModelStatus.DISABLED
    assert db_session.get(CreatorModel, enabled.id).status == ModelStatus.DISABLED
    assert db_session.query(EventLog).filter(EventLog.event == "model:disabled").count() == 2

    r = client.post(f"/api/v1/models/{enabled.id}/enable")
    assert r.status_code == 200
    db_session.expire_all()
    assert db_session.get(CreatorModel, enabled.id).status == ModelStatus.ENABLED

    statuses = {m.status for m in db_session.query(CreatorModel).all()}
    assert statuses <= {ModelStatus.PENDING, ModelStatus.ENABLED, ModelStatus.DISABLED}


def test_disable_unknown_model_is_404(client: TestClient):
    assert client.post("/api/v1/models/missing/disable").status_code == 404


def test_disable_makes_no_provider_call(db_session: Session, fake_apify, model_factory):
    alice = model_factory("alice", status=ModelStatus.ENABLED)
    disable_model(db_session, alice.id)
    assert fake_apify.started_runs == []
    with pytest.raises(ModelNotFoundError):
        disable_model(db_session, "nope")
