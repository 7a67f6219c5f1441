"""
Pydantic schemas for the scraping provider's loosely shaped documents.

Both the webhook body and the dataset items are provider-defined; we declare
the fields we rely on (all optional where the provider may omit them) and
keep everything else so the raw payload survives in the inbox untouched.
"""
from typing import Optional, Any, List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict, field_validator

class ApifyRunRef(BaseModel):
    """Run descriptor as it appears under ``data`` / ``resource``."""
    id: Optional[str] = None
    default_dataset_id: Optional[str] = Field(None, alias="defaultDatasetId")
    status: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("id", "default_dataset_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value or None
        return str(value)

class ApifyWebhookPayload(BaseModel):
    """Webhook notification body sent by the provider when a run finishes."""
    id: Optional[str] = None
    event_type: Optional[str] = Field(None, alias="eventType")
    data: Optional[ApifyRunRef] = None
    resource: Optional[ApifyRunRef] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value or None
        return str(value)

    @property
    def run_id(self) -> Optional[str]:
        if self.data and self.data.id:
            return self.data.id
        if self.id:
            return self.id
        if self.resource and self.resource.id:
            return self.resource.id
        return None

    @property
    def dataset_id(self) -> Optional[str]:
        if self.resource and self.resource.default_dataset_id:
            return self.resource.default_dataset_id
        if self.data and self.data.default_dataset_id:
            return self.data.default_dataset_id
        return None

class InstagramReelItem(BaseModel):
    """Raw dataset item produced by the Instagram reel scraper actor.

    Only ``id`` and ``ownerUsername`` are required; every counter may be
    absent (image posts have no play count, private stats are omitted).
    """
    post_id: str = Field(alias="id", min_length=1)
    owner_username: str = Field(alias="ownerUsername", min_length=1)
    url: Optional[str] = None
    short_code: Optional[str] = Field(None, alias="shortCode")
    caption: Optional[str] = None
    hashtags: List[str] = Field(default_factory=list)
    display_url: Optional[str] = Field(None, alias="displayUrl")
    timestamp: Optional[datetime] = None
    video_duration: Optional[float] = Field(None, alias="videoDuration")
    video_play_count: Optional[int] = Field(None, alias="videoPlayCount")
    video_view_count: Optional[int] = Field(None, alias="videoViewCount")
    likes_count: Optional[int] = Field(None, alias="likesCount")
    comments_count: Optional[int] = Field(None, alias="commentsCount")

    @field_validator("post_id", "owner_username", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value

    @field_validator("hashtags", mode="before")
    @classmethod
    def _clean_hashtags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(tag) for tag in value if tag is not None]
        return value

    model_config = ConfigDict(populate_by_name=True, extra="ignore", json_schema_extra={
        "example": {
            "id": "3301234567890123456",
            "ownerUsername": "alice",
            "url": "https://www.instagram.com/reel/C9abcDEF/",
            "caption": "Morning routine #coffee",
            "hashtags": ["coffee"],
            "displayUrl": "https://cdn.example/thumb.jpg",
            "timestamp": "2024-01-01T00:00:00.000Z",
            "videoDuration": 14.6,
            "videoPlayCount": 500,
            "likesCount": 20,
            "commentsCount": 3
        }
    })
