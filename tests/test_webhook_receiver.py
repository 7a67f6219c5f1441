import hashlib
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from app.api.v1.endpoints import webhooks as webhooks_endpoint
from app.models.db import CronStatus, InboxEntry


WEBHOOK_URL = "/api/v1/apify_webhook?source=instagram&secret=test-secret"


def _payload(run_id: str = "run1", dataset_id: str = "ds1", **extra):
    body = {
        "eventType": "ACTOR.RUN.SUCCEEDED",
        "data": {"id": run_id},
        "resource": {"defaultDatasetId": dataset_id, "status": "SUCCEEDED"},
    }
    body.update(extra)
    return body


def test_webhook_queues_entry_and_returns_hash(client: TestClient, db_session: Session):
    r = client.post(WEBHOOK_URL, json=_payload())
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["ok"] is True
    assert body["duplicate"] is False
    assert body["hash"] == hashlib.sha256(b"run1-ds1").hexdigest()

    entries = db_session.query(InboxEntry).all()
    assert len(entries) == 1
    entry = entries[0]
    assert entry.processed is False
    assert entry.source == "instagram"
    assert entry.dedupe_key == "run1-ds1"
    assert entry.payload["resource"]["defaultDatasetId"] == "ds1"

    heartbeat = db_session.get(CronStatus, "apify_webhook_last")
    assert heartbeat is not None and heartbeat.last_ok is True


def test_redelivered_webhook_is_idempotent_despite_payload_drift(client: TestClient, db_session: Session):
    first = client.post(WEBHOOK_URL, json=_payload(createdAt="2024-01-01T00:00:00.000Z"))
    second = client.post(WEBHOOK_URL, json=_payload(createdAt="2024-01-01T00:00:03.512Z"))
    assert first.status_code == 200 and second.status_code == 200
    assert second.json()["duplicate"] is True
    assert first.json()["hash"] == second.json()["hash"]
    assert db_session.query(InboxEntry).count() == 1


def test_different_dataset_is_a_new_entry(client: TestClient, db_session: Session):
    client.post(WEBHOOK_URL, json=_payload(dataset_id="ds1"))
    client.post(WEBHOOK_URL, json=_payload(dataset_id="ds2"))
    assert db_session.query(InboxEntry).count() == 2


def test_bad_secret_rejected_without_side_effects(client: TestClient, db_session: Session):
    r = client.post("/api/v1/apify_webhook?source=instagram&secret=wrong", json=_payload())
    assert r.status_code == 401
    r = client.post("/api/v1/apify_webhook?source=instagram", json=_payload())
    assert r.status_code == 401
    assert db_session.query(InboxEntry).count() == 0
    assert db_session.get(CronStatus, "apify_webhook_last") is None


def test_unconfigured_secret_rejects_everything(client: TestClient, db_session: Session, settings):
    client.app.state.settings = settings.with_overrides(webhook_secret=None)
    r = client.post(WEBHOOK_URL, json=_payload())
    assert r.status_code == 401
    assert db_session.query(InboxEntry).count() == 0


def test_malformed_json_is_400_and_heartbeat_records_failure(client: TestClient, db_session: Session):
    r = client.post(WEBHOOK_URL, content=b"{not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["success"] is False
    heartbeat = db_session.get(CronStatus, "apify_webhook_last")
    assert heartbeat is not None
    assert heartbeat.last_ok is False
    assert db_session.query(InboxEntry).count() == 0


def test_non_object_body_is_400(client: TestClient, db_session: Session):
    r = client.post(WEBHOOK_URL, json=[{"data": {"id": "run1"}}])
    assert r.status_code == 400
    assert db_session.query(InboxEntry).count() == 0


def test_payload_without_ids_is_400(client: TestClient, db_session: Session):
    r = client.post(WEBHOOK_URL, json={"eventType": "ACTOR.RUN.SUCCEEDED"})
    assert r.status_code == 400
    assert db_session.query(InboxEntry).count() == 0


def test_run_id_falls_back_to_top_level_and_resource(client: TestClient, db_session: Session):
    r = client.post(WEBHOOK_URL, json={"id": "top", "resource": {"defaultDatasetId": "dsA"}})
    assert r.status_code == 200
    r = client.post(WEBHOOK_URL, json={"resource": {"id": "res", "defaultDatasetId": "dsB"}})
    assert r.status_code == 200
    keys = sorted(e.dedupe_key for e in db_session.query(InboxEntry).all())
    assert keys == ["res-dsB", "top-dsA"]


def test_dataset_id_from_data_block(client: TestClient, db_session: Session):
    r = client.post(WEBHOOK_URL, json={"data": {"id": "run9", "defaultDatasetId": "ds9"}})
    assert r.status_code == 200
    entry = db_session.query(InboxEntry).one()
    assert entry.dedupe_key == "run9-ds9"


def test_missing_source_defaults_to_instagram(client: TestClient, db_session: Session):
    r = client.post("/api/v1/apify_webhook?secret=test-secret", json=_payload())
    assert r.status_code == 200
    assert db_session.query(InboxEntry).one().source == "instagram"


def test_cors_preflight_accepted(client: TestClient):
    r = client.options(
        WEBHOOK_URL,
        headers={
            "Origin": "https://console.apify.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )
    assert r.status_code == 200
    assert "access-control-allow-origin" in {k.lower() for k in r.headers.keys()}


def test_webhook_stores_workspace_from_query(client: TestClient, db_session: Session):
    r = client.post(WEBHOOK_URL + "&workspace=ws-1", json=_payload(run_id="run-ws", dataset_id="ds-ws"))
    assert r.status_code == 200, r.text
    client.post(WEBHOOK_URL, json=_payload(run_id="run-none", dataset_id="ds-none"))

    scoped = db_session.query(InboxEntry).filter(InboxEntry.dedupe_key == "run-ws-ds-ws").one()
    assert scoped.workspace_id == "ws-1"
    unscoped = db_session.query(InboxEntry).filter(InboxEntry.dedupe_key == "run-none-ds-none").one()
    assert unscoped.workspace_id is None


def test_store_failure_returns_500_and_failing_heartbeat(client: TestClient, db_session: Session, monkeypatch):
    def fail_append(*args, **kwargs):
        raise OperationalError("INSERT INTO webhooks_inbox", {}, Exception("database is locked"))

    monkeypatch.setattr(webhooks_endpoint, "append_entry", fail_append)

    r = client.post(WEBHOOK_URL, json=_payload())
    assert r.status_code == 500
    assert r.json()["success"] is False
    assert db_session.query(InboxEntry).count() == 0

    db_session.expire_all()
    heartbeat = db_session.get(CronStatus, "apify_webhook_last")
    assert heartbeat is not None
    assert heartbeat.last_ok is False
    assert heartbeat.last_message == "Store error: OperationalError"
