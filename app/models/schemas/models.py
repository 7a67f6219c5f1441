"""
Pydantic schemas for tracked creator accounts.
"""
import re
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.models.db.enums import ModelStatus

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9._]+$")

class ModelCreate(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    display_name: Optional[str] = Field(None, max_length=200)
    workspace_id: Optional[str] = Field(None, description="Defaults to the configured workspace")

    @field_validator("username")
    @classmethod
    def _clean_username(cls, value: str) -> str:
        cleaned = value.strip().lstrip("@")
        if not cleaned or not USERNAME_PATTERN.match(cleaned):
            raise ValueError("Invalid username format")
        return cleaned

class ModelRead(BaseModel):
    id: str
    workspace_id: str
    username: str
    display_name: Optional[str]
    status: ModelStatus
    apify_task_id: Optional[str]
    backfill_completed: bool
    last_backfill_at: Optional[datetime]
    last_daily_scrape_at: Optional[datetime]
    last_scraped_at: Optional[datetime]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

class EnableModelResponse(BaseModel):
    started: bool
    run_id: Optional[str] = None
    error: Optional[str] = None

class DisableModelResponse(BaseModel):
    ok: bool = True
