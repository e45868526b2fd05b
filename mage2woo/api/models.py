"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.job import EntityType, JobStatus


# Request Models
class StartMigrationRequest(BaseModel):
    entity_type: EntityType
    scope: Optional[int] = Field(default=None, ge=1, description="Migrate only this source page")
    resume: bool = False


# Response Models
class StartMigrationResponse(BaseModel):
    job_id: str
    status: JobStatus


class JobEventResponse(BaseModel):
    item: str
    message: str
    timestamp: datetime


class JobResponse(BaseModel):
    id: str
    entity_type: EntityType
    status: JobStatus
    scope: Optional[int] = None
    start_page: int
    current_page: int
    cancel_requested: bool
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total: int
    processed: int
    successful: int
    failed: int
    percentage: int
    success_rate: int
    time_remaining: Optional[float] = None
    duration_seconds: Optional[float] = None
    current_item: str = ""
    outcomes: Dict[str, int] = Field(default_factory=dict)
    error_count: int = 0
    errors: List[JobEventResponse] = Field(default_factory=list)
    warning_count: int = 0
    warnings: List[JobEventResponse] = Field(default_factory=list)
    message: str = ""


class ProgressResponse(BaseModel):
    job: Optional[JobResponse] = None


class CancelResponse(BaseModel):
    cancelled: bool


class EntityStatsResponse(BaseModel):
    migrated_count_local: int
    total_count_remote: Optional[int] = None


class PageCountResponse(BaseModel):
    entity_type: EntityType
    total: int
    page_size: int
    pages: int


class LogEntryResponse(BaseModel):
    id: int
    level: str
    action: str
    entity_type: Optional[str] = None
    item_id: Optional[str] = None
    job_id: Optional[str] = None
    message: str
    created_at: datetime


class LogListResponse(BaseModel):
    logs: List[LogEntryResponse]
    total: int


class LogSummaryResponse(BaseModel):
    counts: Dict[str, int]
    recent_errors: List[LogEntryResponse]


class ClearLogsResponse(BaseModel):
    deleted: int
    days: int
