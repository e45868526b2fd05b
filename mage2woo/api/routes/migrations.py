"""Migration start, progress, cancellation and reporting endpoints."""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from ..dependencies import get_service
from ..models import (
    CancelResponse,
    ClearLogsResponse,
    EntityStatsResponse,
    LogListResponse,
    LogSummaryResponse,
    PageCountResponse,
    ProgressResponse,
    StartMigrationRequest,
    StartMigrationResponse,
)
from ...errors import (
    ConfigurationError,
    JobConflictError,
    MigratorError,
    PreflightConnectivityError,
)
from ...models.job import EntityType, JobStatus
from ...services.migration_service import MigrationService
from ...storage.audit_log import LEVELS

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/start", response_model=StartMigrationResponse, status_code=202)
def start_migration(
    data: StartMigrationRequest,
    background_tasks: BackgroundTasks,
    service: MigrationService = Depends(get_service),
):
    """Queue a migration and run it in the background."""
    try:
        job_id = service.start_migration(data.entity_type, scope=data.scope, resume=data.resume)
    except JobConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PreflightConnectivityError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    background_tasks.add_task(service.run_job, job_id)
    return StartMigrationResponse(job_id=job_id, status=JobStatus.PENDING)


@router.get("/progress", response_model=ProgressResponse)
def get_progress(
    errors_limit: int = Query(10, ge=0, le=100),
    service: MigrationService = Depends(get_service),
):
    """Snapshot of the latest job, or ``{"job": null}``."""
    job = service.get_progress()
    if job is None:
        return ProgressResponse(job=None)
    return {"job": job.to_dict(errors_limit=errors_limit)}


@router.post("/cancel", response_model=CancelResponse)
def cancel_migration(service: MigrationService = Depends(get_service)):
    """Request cancellation of the active job."""
    return CancelResponse(cancelled=service.cancel_migration())


@router.get("/stats", response_model=Dict[str, EntityStatsResponse])
def get_stats(service: MigrationService = Depends(get_service)):
    """Migrated and remote counts per entity type."""
    return service.get_stats()


@router.get("/pages/{entity_type}", response_model=PageCountResponse)
def get_page_count(entity_type: EntityType, service: MigrationService = Depends(get_service)):
    """Number of source pages for an entity type."""
    try:
        return service.get_page_count(entity_type)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MigratorError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/logs", response_model=LogListResponse)
def get_logs(
    limit: int = Query(100, ge=1, le=1000),
    level: Optional[str] = None,
    entity_type: Optional[EntityType] = None,
    service: MigrationService = Depends(get_service),
):
    """Audit log entries, newest first."""
    if level is not None and level not in LEVELS:
        raise HTTPException(status_code=400, detail=f"Unknown level: {level}")
    logs = service.recent_logs(limit=limit, level=level, entity_type=entity_type)
    return LogListResponse(logs=logs, total=len(logs))


@router.get("/logs/summary", response_model=LogSummaryResponse)
def get_log_summary(service: MigrationService = Depends(get_service)):
    """Entry counts per level and the latest errors."""
    return service.log_summary()


@router.delete("/logs", response_model=ClearLogsResponse)
def clear_logs(
    days: Optional[int] = Query(None, ge=0),
    service: MigrationService = Depends(get_service),
):
    """Delete audit log entries older than ``days`` days."""
    if days is None:
        days = service.settings.log_retention_days
    deleted = service.clear_old_logs(days)
    logger.info(f"Cleared {deleted} audit log entries via API")
    return ClearLogsResponse(deleted=deleted, days=days)
