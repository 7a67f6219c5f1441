from .base import PostRecord
from .apify import ApifyRunRef, ApifyWebhookPayload, InstagramReelItem
from .models import ModelCreate, ModelRead, EnableModelResponse, DisableModelResponse
from .jobs import CronStatusRead, EventLogRead, InboxRunSummary, ScheduleRunSummary

__all__ = [
    # Base
    "PostRecord",

    # Provider documents
    "ApifyRunRef",
    "ApifyWebhookPayload",
    "InstagramReelItem",

    # Models
    "ModelCreate",
    "ModelRead",
    "EnableModelResponse",
    "DisableModelResponse",

    # Jobs / diagnostics
    "CronStatusRead",
    "EventLogRead",
    "InboxRunSummary",
    "ScheduleRunSummary",
]
