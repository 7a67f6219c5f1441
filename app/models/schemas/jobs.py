"""
Pydantic schemas for job heartbeats, run summaries and audit events.
"""
from datetime import datetime
from typing import Optional, Any, Dict
from pydantic import BaseModel, Field, ConfigDict

class CronStatusRead(BaseModel):
    name: str
    last_run_at: Optional[datetime]
    last_ok: Optional[bool]
    last_message: Optional[str]

    model_config = ConfigDict(from_attributes=True)

class EventLogRead(BaseModel):
    id: str
    event: str
    level: Optional[str]
    context: Optional[Dict[str, Any]]
    page: Optional[str]
    workspace_id: Optional[str]
    ts: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

class InboxRunSummary(BaseModel):
    """Counts reported by one inbox processing run."""
    entries: int = 0
    processed: int = 0
    skipped: int = 0
    fetch_errors: int = 0
    item_errors: int = 0
    records_reconciled: int = 0
    records_skipped: int = 0
    models_updated: int = 0

    @property
    def error_count(self) -> int:
        return self.fetch_errors + self.item_errors

class ScheduleRunSummary(BaseModel):
    """Counts reported by one scheduler run (camelCase on the wire)."""
    models_count: int = Field(0, alias="modelsCount")
    chunks_count: int = Field(0, alias="chunksCount")
    successful_runs: int = Field(0, alias="successfulRuns")
    error_count: int = Field(0, alias="errorCount")

    model_config = ConfigDict(populate_by_name=True)
