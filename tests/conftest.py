"""Pytest fixtures and factories.

All model modules are imported (via app.models.db) before Base.metadata.create_all()
so relationship back_populates targets exist.
"""
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root on sys.path so 'app' package resolves when running from the repo root
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.main import app  # type: ignore
from app.database import Base  # type: ignore
from app.api import deps  # type: ignore
from app.config import Settings  # type: ignore
from app.integrations.apify import ApifyError
from app.models.db import CreatorModel, ModelStatus
from app.services.inbox import append_entry, compute_dedupe_key
from app.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER

WEBHOOK_SECRET = "test-secret"

TEST_SETTINGS = Settings(
    apify_base_url="https://apify.invalid/v2",
    apify_token="test-token",
    webhook_secret=WEBHOOK_SECRET,
    public_base_url="https://ingest.test",
    database_url="sqlite+pysqlite:///./test_reels.db",
    default_workspace_id="default",
)

# File-based SQLite so the TestClient's request sessions and the test's own
# session see the same data.
SQLALCHEMY_TEST_URL = TEST_SETTINGS.database_url
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

import app.database as _app_database  # noqa: E402
_app_database.SessionLocal = TestingSessionLocal  # type: ignore


class FakeApifyClient:
    """In-process stand-in for the provider client.

    ``datasets`` maps dataset id -> items; ``fetch_failures`` maps dataset id
    -> exception to raise. ``failing_start_calls`` holds 0-based indices of
    ``start_run`` calls that should fail.
    """

    def __init__(self):
        self.datasets: dict[str, list[Any]] = {}
        self.fetch_failures: dict[str, Exception] = {}
        self.fetch_calls: list[str] = []
        self.started_runs: list[dict[str, Any]] = []
        self.failing_start_calls: set[int] = set()
        self.start_error: Exception | None = None

    async def start_run(self, run_input, *, webhook_url=None, event_types=None, actor_id=None):
        call_index = len(self.started_runs)
        self.started_runs.append({
            "input": dict(run_input),
            "webhook_url": webhook_url,
            "event_types": list(event_types or []),
        })
        if self.start_error is not None:
            raise self.start_error
        if call_index in self.failing_start_calls:
            raise ApifyError("Apify server error: 503", status=503, operation="start_run")
        return f"run-{call_index + 1}"

    async def fetch_dataset_items(self, dataset_id):
        self.fetch_calls.append(dataset_id)
        if dataset_id in self.fetch_failures:
            raise self.fetch_failures[dataset_id]
        return list(self.datasets.get(dataset_id, []))


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    app.state.settings = TEST_SETTINGS
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    try:
        os.remove("test_reels.db")
    except OSError:
        pass

@pytest.fixture(autouse=True)
def _isolate_test_state(create_test_db):  # type: ignore[unused-argument]
    """Per-test isolation: empty every table and reset the in-memory circuit breaker."""
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    GLOBAL_CIRCUIT_BREAKER.reset()
    app.state.settings = TEST_SETTINGS
    yield
    GLOBAL_CIRCUIT_BREAKER.reset()

@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

# Override dependencies
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

app.dependency_overrides[deps.get_db] = _override_get_db

@pytest.fixture()
def fake_apify():
    fake = FakeApifyClient()
    app.dependency_overrides[deps.get_provider_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(deps.get_provider_client, None)

@pytest.fixture()
def client(fake_apify):
    return TestClient(app)

@pytest.fixture()
def settings():
    return TEST_SETTINGS

# ---------- Data factory helpers ----------

@pytest.fixture()
def model_factory(db_session):
    def _create(
        username: str,
        *,
        status: ModelStatus = ModelStatus.PENDING,
        workspace_id: str = "default",
        model_id: str | None = None,
        created_at: datetime | None = None,
    ) -> CreatorModel:
        model = CreatorModel(
            username=username,
            display_name=username.title(),
            workspace_id=workspace_id,
            status=status,
            backfill_completed=False,
        )
        if model_id:
            model.id = model_id
        if created_at:
            model.created_at = created_at
        db_session.add(model)
        db_session.commit()
        db_session.refresh(model)
        return model
    return _create

@pytest.fixture()
def inbox_factory(db_session):
    def _create(
        run_id: str | None,
        dataset_id: str | None,
        *,
        source: str = "instagram",
        workspace_id: str | None = None,
        created_at: datetime | None = None,
    ):
        payload: dict[str, Any] = {"eventType": "ACTOR.RUN.SUCCEEDED"}
        if run_id:
            payload["data"] = {"id": run_id}
        if dataset_id:
            payload["resource"] = {"defaultDatasetId": dataset_id}
        return append_entry(
            db_session,
            source=source,
            payload=payload,
            dedupe_key=compute_dedupe_key(run_id, dataset_id),
            workspace_id=workspace_id,
            now=created_at,
        )
    return _create

def _reel_item(post_id: str, username: str, **overrides: Any) -> dict[str, Any]:
    """Dataset item in the provider's shape."""
    item: dict[str, Any] = {
        "id": post_id,
        "ownerUsername": username,
        "url": f"https://www.instagram.com/reel/{post_id}/",
        "caption": f"Caption for {post_id} #test",
        "hashtags": ["test"],
        "displayUrl": f"https://cdn.test/{post_id}.jpg",
        "timestamp": "2024-01-01T00:00:00Z",
        "videoDuration": 12.4,
        "videoPlayCount": 100,
        "likesCount": 10,
        "commentsCount": 1,
    }
    item.update(overrides)
    return item

@pytest.fixture()
def reel_item():
    return _reel_item

@pytest.fixture()
def fixed_now():
    return datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
