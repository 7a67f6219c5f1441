"""Central Enum definitions for core domain states.

These replace scattered string literals to ensure consistency across
DB models, schemas, and pipeline logic.
"""
from __future__ import annotations
import enum


class ModelStatus(str, enum.Enum):
    PENDING = "pending"
    ENABLED = "enabled"
    DISABLED = "disabled"


# Allowed lifecycle moves. Re-enabling an enabled model re-submits the
# backfill; disabling twice is a no-op.
MODEL_STATUS_TRANSITIONS: dict[ModelStatus, frozenset[ModelStatus]] = {
    ModelStatus.PENDING: frozenset({ModelStatus.ENABLED, ModelStatus.DISABLED}),
    ModelStatus.ENABLED: frozenset({ModelStatus.ENABLED, ModelStatus.DISABLED}),
    ModelStatus.DISABLED: frozenset({ModelStatus.ENABLED, ModelStatus.DISABLED}),
}


class EventLevel(str, enum.Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class JobName(str, enum.Enum):
    """Heartbeat row names in ``cron_status``."""
    WEBHOOK = "apify_webhook_last"
    PROCESS_INBOX = "process_inbox"
    SCHEDULE_SCRAPE = "schedule_scrape_reels"


class SourceKind(str, enum.Enum):
    INSTAGRAM = "instagram"


__all__ = [
    "ModelStatus",
    "MODEL_STATUS_TRANSITIONS",
    "EventLevel",
    "JobName",
    "SourceKind",
]
