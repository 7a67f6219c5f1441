"""
Base schemas used across the application.
"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

class PostRecord(BaseModel):
    """
    Normalized post record that every scrape source maps to.
    This is our internal common format consumed by the reconciler.
    """
    platform_post_id: str = Field(min_length=1, description="Provider post id (natural key)")
    owner_username: str = Field(min_length=1, description="Account that owns the post")
    url: Optional[str] = None
    caption: Optional[str] = None
    hashtags: List[str] = Field(default_factory=list)
    thumbnail_url: Optional[str] = None
    posted_at: Optional[datetime] = None
    duration_seconds: Optional[int] = Field(None, ge=0)

    views: int = Field(0, ge=0, description="Cumulative plays/views reported by the provider")
    likes: int = Field(0, ge=0)
    comments: int = Field(0, ge=0)
