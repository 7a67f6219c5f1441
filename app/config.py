"""Core application configuration & tunable ingestion rules.

Deployment values (provider endpoint, tokens, shared secret, database) are
read once from the environment into an explicit, immutable ``Settings``
object which the application stores on ``app.state`` at startup and hands to
services through dependencies. Nothing downstream reads ``os.environ``.

Tunable rule groups (batch sizes, chunking, retry / breaker thresholds) stay
module-level dicts so tests can monkeypatch values.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace


def _env_bool(name: str, default: bool) -> bool:
	raw = os.getenv(name)
	if raw is None or not raw.strip():
		return default
	return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
	"""Explicit configuration injected into the app at startup."""

	# Scraping provider (Apify)
	apify_base_url: str = "https://api.apify.com/v2"
	apify_token: str | None = None
	apify_actor_id: str = "apify~instagram-reel-scraper"
	apify_timeout_seconds: float = 30.0

	# Shared secret carried in the webhook query string
	webhook_secret: str | None = None
	# Externally reachable base URL of this service (used to build callback URLs)
	public_base_url: str = "http://localhost:8000"

	# Relational store
	database_url: str = "sqlite+pysqlite:///./reels.db"
	default_workspace_id: str = "default"

	# Postgres function that refreshes dashboard materialized views
	metrics_refresh_function: str = "refresh_materialized_views"

	cors_origins: list[str] = field(default_factory=lambda: ["*"])
	log_level: str = "INFO"
	log_file: str | None = None

	def with_overrides(self, **changes: object) -> "Settings":
		return replace(self, **changes)


def load_settings() -> Settings:
	"""Build ``Settings`` from environment variables."""
	return Settings(
		apify_base_url=os.getenv("APIFY_BASE_URL", "https://api.apify.com/v2").rstrip("/"),
		apify_token=os.getenv("APIFY_TOKEN") or None,
		apify_actor_id=os.getenv("APIFY_ACTOR_ID", "apify~instagram-reel-scraper"),
		apify_timeout_seconds=float(os.getenv("APIFY_TIMEOUT_SECONDS", "30")),
		webhook_secret=os.getenv("APIFY_WEBHOOK_SECRET") or None,
		public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
		database_url=os.getenv("DATABASE_URL", "sqlite+pysqlite:///./reels.db"),
		default_workspace_id=os.getenv("DEFAULT_WORKSPACE_ID", "default"),
		metrics_refresh_function=os.getenv("METRICS_REFRESH_FUNCTION", "refresh_materialized_views"),
		cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
		log_level=os.getenv("LOG_LEVEL", "INFO"),
		log_file=os.getenv("LOG_FILE") or None,
	)


# ------------------------------- Ingestion -------------------------------- #
INGESTION_SETTINGS: dict[str, int | bool] = {
	"batch_size": 200,              # Max inbox entries drained per run
	"refresh_metrics_views": _env_bool("REFRESH_METRICS_VIEWS", True),
}

# ------------------------------- Scheduling ------------------------------- #
SCHEDULER_SETTINGS: dict[str, int | list[str]] = {
	"chunk_size": 10,               # Usernames per provider run
	"daily_results_limit": 3,       # Incremental refresh, newest items only
	"backfill_results_limit": 100,  # Initial scrape on enable
	"webhook_event_types": [
		"ACTOR.RUN.SUCCEEDED",
		"ACTOR.RUN.FAILED",
		"ACTOR.RUN.ABORTED",
	],
}

# ----------------------------- Circuit Breaker ---------------------------- #
CIRCUIT_BREAKER: dict[str, int | float] = {
	"failure_threshold": 5,          # Consecutive failures before OPEN
	"open_cooldown_seconds": 300,    # Stay OPEN for 5 minutes
	"half_open_probe_count": 3,      # Probes allowed in HALF_OPEN
}

# --------------------------------- Backoff -------------------------------- #
BACKOFF_POLICY: dict[str, int | float] = {
	"base_seconds": 1,
	"factor": 2,          # Exponential factor
	"max_seconds": 30,
	"max_attempts": 3,    # Per provider call, retryable failures only
	"jitter_pct": 0.10,   # +/-10% jitter
}

__all__ = [
	"Settings",
	"load_settings",
	"INGESTION_SETTINGS",
	"SCHEDULER_SETTINGS",
	"CIRCUIT_BREAKER",
	"BACKOFF_POLICY",
]
