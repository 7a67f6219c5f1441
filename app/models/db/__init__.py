from .creator_models import CreatorModel
from .reels import Reel
from .reel_metrics import ReelMetricsDaily
from .webhooks_inbox import InboxEntry
from .cron_status import CronStatus
from .event_logs import EventLog
from .enums import ModelStatus, EventLevel, JobName, SourceKind

__all__ = [
    "CreatorModel",
    "Reel",
    "ReelMetricsDaily",
    "InboxEntry",
    "CronStatus",
    "EventLog",
    "ModelStatus",
    "EventLevel",
    "JobName",
    "SourceKind",
]
