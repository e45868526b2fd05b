"""Migration orchestrator - drives one paginated run for one entity type."""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .errors import (
    AuthenticationError,
    ConnectivityError,
    MalformedPageError,
    NormalizationError,
)
from .extractors.base import BaseSourceClient
from .loaders.base import BaseLoader
from .models.job import EntityType, JobStatus, MigrationJob
from .services.normalizers import NORMALIZERS, NormalizationContext, Normalizer, describe_raw
from .storage.audit_log import AuditLog
from .storage.job_repository import JobRepository

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[MigrationJob], None]

FINAL_LOG_LEVELS = {
    JobStatus.COMPLETED: "info",
    JobStatus.CANCELLED: "warning",
    JobStatus.FAILED: "error",
}


def scope_total(count: int, page: int, batch_size: int) -> int:
    """Number of items expected on ``page`` given the remote count."""
    return min(batch_size, max(0, count - (page - 1) * batch_size))


def page_total(count: int, batch_size: int) -> int:
    if count <= 0 or batch_size <= 0:
        return 0
    return (count + batch_size - 1) // batch_size


class MigrationOrchestrator:
    """
    Runs one migration job from claim to final status.

    Handles:
    - Claiming the pending job
    - Fetching pages until the source runs dry
    - Normalizing and upserting each item in isolation
    - Cooperative cancellation at page boundaries
    - Progress persistence after every item
    """

    def __init__(
        self,
        source: BaseSourceClient,
        loader: BaseLoader,
        jobs: JobRepository,
        audit: AuditLog,
        settings: Optional[Settings] = None,
        normalizers: Optional[Dict[EntityType, Normalizer]] = None,
        on_progress: Optional[ProgressCallback] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            source: Client for the remote source
            loader: Target store the entities are written to
            jobs: Job repository
            audit: Audit log for per-item outcomes
            settings: Pagination policy, defaults when omitted
            normalizers: Normalizer per entity type
            on_progress: Called with the job after every item
        """
        self.source = source
        self.loader = loader
        self.jobs = jobs
        self.audit = audit
        self.settings = settings or Settings()
        self.normalizers = normalizers or NORMALIZERS
        self.on_progress = on_progress

    def run(self, job_id: str) -> MigrationJob:
        """
        Claim a pending job and run it to a terminal status.

        Connectivity and authentication errors while fetching pages end the
        run as failed. Items already written stay written.

        Returns:
            The finished job
        """
        job = self.jobs.claim(job_id)
        self.audit.job_id = job.id
        entity = job.entity_type.value

        logger.info(f"=== MIGRATION {job.id}: {entity.upper()} ===")
        self.audit.info("start", f"Started {entity} migration", entity_type=job.entity_type)

        try:
            status, message = self._run_pages(job)
        except (ConnectivityError, AuthenticationError) as e:
            logger.error(f"Migration {job.id} failed: {e}")
            job.record_error(f"page {job.current_page or job.start_page}", str(e))
            status, message = JobStatus.FAILED, str(e)
        except Exception as e:
            logger.exception(f"Migration {job.id} failed unexpectedly")
            job.record_error("run", str(e))
            status, message = JobStatus.FAILED, f"Unexpected error: {e}"

        self._recover_session()
        finished = self.jobs.finalize(job, status, message)

        level = FINAL_LOG_LEVELS.get(status, "error")
        self.audit.log(level, status.value, message, entity_type=job.entity_type)
        logger.info(f"=== MIGRATION {status.value.upper()}: {message} ===")
        return finished

    def _run_pages(self, job: MigrationJob) -> Tuple[JobStatus, str]:
        batch_size = self.settings.batch_size
        scoped = job.scope is not None
        page = job.start_page

        remote_count = self.source.count(job.entity_type)
        total_pages = page_total(remote_count, batch_size)
        if scoped:
            job.total = scope_total(remote_count, page, batch_size)
        else:
            job.total = max(0, remote_count - (page - 1) * batch_size)
        self._save(job)

        logger.info(
            f"Source reports {remote_count} {job.entity_type.value} "
            f"({total_pages} pages of {batch_size}), starting at page {page}"
        )

        empty_streak = 0
        pages_fetched = 0

        while True:
            if self.jobs.is_cancel_requested(job.id):
                logger.info(f"Cancellation seen before page {page}")
                if pages_fetched == 0:
                    return JobStatus.CANCELLED, f"Cancelled before page {page}"
                return JobStatus.CANCELLED, f"Cancelled after page {job.current_page}"

            if pages_fetched >= self.settings.max_pages:
                logger.warning(f"Reached page limit of {self.settings.max_pages}, stopping")
                job.record_warning("run", f"Stopped at page limit ({self.settings.max_pages})")
                break

            job.current_page = page
            records, media_url = self._fetch(job, page)
            pages_fetched += 1

            if not records:
                empty_streak += 1
                if scoped:
                    job.total = 0
                    self._save(job)
                    break
                self._save(job)
                if empty_streak >= self.settings.max_empty_pages:
                    logger.info(f"{empty_streak} empty pages in a row, stopping")
                    break
                if page > total_pages:
                    logger.info(f"Page {page} is past the last page ({total_pages}), stopping")
                    break
                page += 1
                continue

            empty_streak = 0
            if scoped:
                job.total = len(records)
            logger.info(f"Processing page {page}: {len(records)} {job.entity_type.value}")

            for raw in records:
                self._process_item(job, raw, media_url)

            if scoped:
                break
            page += 1

        return JobStatus.COMPLETED, (
            f"Processed {job.processed} {job.entity_type.value}: "
            f"{job.successful} succeeded, {job.failed} failed"
        )

    def _fetch(self, job: MigrationJob, page: int) -> Tuple[List[Any], Optional[str]]:
        """Fetch one page; malformed pages come back empty."""
        try:
            source_page = self.source.fetch_page(job.entity_type, self.settings.batch_size, page)
        except MalformedPageError as e:
            logger.warning(f"Malformed page {page}: {e}")
            job.record_error(f"page {page}", str(e))
            self.audit.error(
                "fetch", f"Malformed page {page}: {e}", entity_type=job.entity_type
            )
            return [], None
        return source_page.records, source_page.media_url

    def _process_item(self, job: MigrationJob, raw: Any, media_url: Optional[str]) -> None:
        """Normalize and upsert one record; failures stay with the item."""
        entity_type = job.entity_type
        label = describe_raw(entity_type, raw) if isinstance(raw, dict) else "unknown"
        job.current_item = label
        ctx = NormalizationContext(lookup=self.loader.find_local_id, media_url=media_url)

        try:
            if not isinstance(raw, dict):
                raise NormalizationError("Record is not an object")
            entity = self.normalizers[entity_type](raw, ctx)
            label = entity.label
            job.current_item = label
            local_id = self.loader.find_local_id(entity_type, entity.external_id)
            result = self.loader.upsert(entity_type, entity, local_id)
        except Exception as e:
            if isinstance(e, SQLAlchemyError):
                self._recover_session()
            job.failed += 1
            job.record_error(label, str(e))
            logger.warning(f"Failed to migrate {entity_type.value} {label}: {e}")
            self.audit.error("migrate", str(e), entity_type=entity_type, item_id=label)
        else:
            job.successful += 1
            outcome = "created" if result.created else "updated"
            job.outcomes[outcome] = job.outcomes.get(outcome, 0) + 1
            self.audit.success(
                outcome,
                f"{outcome.capitalize()} {entity_type.value} {label} as {result.local_id}",
                entity_type=entity_type,
                item_id=label,
            )
        finally:
            for warning in ctx.warnings:
                job.record_warning(label, warning)
                self.audit.warning("normalize", warning, entity_type=entity_type, item_id=label)
            job.processed += 1
            if job.processed > job.total:
                job.total = job.processed
            self._save(job)

    def _save(self, job: MigrationJob) -> None:
        self.jobs.save_progress(job)
        if self.on_progress:
            self.on_progress(job)

    def _recover_session(self) -> None:
        """Roll back a session left unusable by a failed flush."""
        self.jobs.session.rollback()
