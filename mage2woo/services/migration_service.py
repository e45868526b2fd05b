"""Operations exposed to the REST API and the CLI."""

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import TARGET_STAGING, Settings
from ..errors import ConfigurationError, JobConflictError, MigratorError, PreflightConnectivityError
from ..extractors.base import BaseSourceClient
from ..extractors.magento_connector import MagentoConnectorClient
from ..loaders.base import BaseLoader
from ..loaders.staging_loader import StagingLoader
from ..loaders.woocommerce_loader import WooCommerceLoader
from ..models.job import EntityType, JobStatus, MigrationJob
from ..orchestrator import MigrationOrchestrator, ProgressCallback, page_total
from ..storage.audit_log import AuditLog
from ..storage.database import Database
from ..storage.job_repository import JobRepository
from ..storage.mapping_repository import MappingRepository
from .preflight import run_preflight

logger = logging.getLogger(__name__)

SourceFactory = Callable[[Settings], BaseSourceClient]
LoaderFactory = Callable[[Settings, Session], BaseLoader]


def build_source(settings: Settings) -> BaseSourceClient:
    return MagentoConnectorClient.from_settings(settings)


def build_loader(settings: Settings, session: Session) -> BaseLoader:
    """Loader for the configured target, sharing the session's mappings."""
    mappings = MappingRepository(session)
    if settings.target == TARGET_STAGING:
        return StagingLoader(session, mappings)
    return WooCommerceLoader.from_settings(settings, mappings)


class MigrationService:
    """
    Starts, runs, cancels and reports on migration jobs.

    Each operation opens its own database session, so ``run_job`` can be
    handed to a background task after the request that queued it is gone.
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        source_factory: Optional[SourceFactory] = None,
        loader_factory: Optional[LoaderFactory] = None
    ):
        self.settings = settings
        self.database = database
        self.source_factory = source_factory or build_source
        self.loader_factory = loader_factory or build_loader

    def start_migration(
        self,
        entity_type: EntityType,
        scope: Optional[int] = None,
        resume: bool = False
    ) -> str:
        """
        Validate, run pre-flight checks and queue a pending job.

        Args:
            entity_type: Entity type to migrate
            scope: Migrate only this page
            resume: Continue from where the last failed or cancelled job of
                this type stopped

        Returns:
            The new job id

        Raises:
            ConfigurationError: If settings are incomplete or arguments conflict
            PreflightError: If a pre-flight check fails
            JobConflictError: If another job is active
        """
        errors = self.settings.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))
        if scope is not None and scope < 1:
            raise ConfigurationError("Scope page must be 1 or greater")
        if scope is not None and resume:
            raise ConfigurationError("Scope and resume cannot be combined")

        with self.database.session() as session:
            jobs = JobRepository(session)
            active = jobs.active()
            if active is not None:
                raise JobConflictError(
                    f"A migration is already in progress ({active.entity_type.value} job {active.id})"
                )

            self._preflight(session)

            start_page = scope or 1
            if resume:
                start_page = self._resume_page(jobs, entity_type)

            job = jobs.create(entity_type, scope=scope, start_page=start_page)
            AuditLog(session, job.id).info(
                "queued",
                f"Queued {entity_type.value} migration from page {start_page}"
                + (" (single page)" if scope else ""),
                entity_type=entity_type,
            )
            return job.id

    def _preflight(self, session: Session) -> Dict[str, Any]:
        source = self.source_factory(self.settings)
        try:
            details = run_preflight(source)
        finally:
            source.close()

        loader = self.loader_factory(self.settings, session)
        try:
            if not loader.validate_connection():
                raise PreflightConnectivityError(
                    "target", "Target store is not reachable or rejected the credentials."
                )
        finally:
            loader.close()
        return details

    @staticmethod
    def _resume_page(jobs: JobRepository, entity_type: EntityType) -> int:
        """
        First page the resumed job should fetch.

        A failed job restarts at the page it was on. A cancelled job finished
        its last page, so the next one follows.
        """
        last = jobs.last_for(entity_type, (JobStatus.FAILED, JobStatus.CANCELLED))
        if last is None:
            return 1
        if last.current_page < last.start_page:
            # Stopped before its first fetch, so its own resume point still holds
            return max(1, last.start_page)
        if last.status == JobStatus.CANCELLED:
            return last.current_page + 1
        return last.current_page

    def run_job(self, job_id: str, on_progress: Optional[ProgressCallback] = None) -> MigrationJob:
        """Background entry point: run a queued job to completion."""
        with self.database.session() as session:
            jobs = JobRepository(session)
            try:
                source = self.source_factory(self.settings)
                loader = self.loader_factory(self.settings, session)
            except MigratorError as e:
                logger.error(f"Could not set up job {job_id}: {e}")
                job = jobs.get(job_id)
                if job is None:
                    raise
                return jobs.finalize(job, JobStatus.FAILED, str(e))

            orchestrator = MigrationOrchestrator(
                source=source,
                loader=loader,
                jobs=jobs,
                audit=AuditLog(session, job_id),
                settings=self.settings,
                on_progress=on_progress,
            )
            try:
                return orchestrator.run(job_id)
            finally:
                source.close()
                loader.close()

    def get_progress(self) -> Optional[MigrationJob]:
        """The most recent job, or None when no job exists."""
        with self.database.session() as session:
            return JobRepository(session).latest()

    def cancel_migration(self) -> bool:
        """Ask the active job to stop. False when nothing is active."""
        with self.database.session() as session:
            return JobRepository(session).request_cancel() is not None

    def reset(self) -> Optional[MigrationJob]:
        """Fail a stuck active job so a new one can start."""
        with self.database.session() as session:
            return JobRepository(session).clear_active()

    def get_stats(self) -> Dict[str, Dict[str, Optional[int]]]:
        """
        Migrated and remote counts per entity type.

        ``total_count_remote`` is None for types the source could not count.
        """
        stats = {}
        source = None
        try:
            source = self.source_factory(self.settings)
        except MigratorError as e:
            logger.warning(f"Source unavailable for stats: {e}")

        try:
            with self.database.session() as session:
                mappings = MappingRepository(session)
                for entity_type in EntityType:
                    stats[entity_type.value] = {
                        "migrated_count_local": mappings.count(entity_type),
                        "total_count_remote": self._remote_count(source, entity_type),
                    }
        finally:
            if source is not None:
                source.close()
        return stats

    @staticmethod
    def _remote_count(source: Optional[BaseSourceClient], entity_type: EntityType) -> Optional[int]:
        if source is None:
            return None
        try:
            return source.count(entity_type)
        except MigratorError as e:
            logger.warning(f"Could not count remote {entity_type.value}: {e}")
            return None

    def get_page_count(self, entity_type: EntityType) -> Dict[str, Any]:
        """Remote count and number of pages, for choosing a scope page."""
        source = self.source_factory(self.settings)
        try:
            total = source.count(entity_type)
        finally:
            source.close()
        page_size = self.settings.batch_size
        return {
            "entity_type": entity_type.value,
            "total": total,
            "page_size": page_size,
            "pages": page_total(total, page_size),
        }

    def recent_logs(
        self,
        limit: int = 100,
        level: Optional[str] = None,
        entity_type: Optional[EntityType] = None
    ) -> List[Dict[str, Any]]:
        with self.database.session() as session:
            return AuditLog(session).recent(limit=limit, level=level, entity_type=entity_type)

    def log_summary(self) -> Dict[str, Any]:
        """Entry counts per level and the latest errors."""
        with self.database.session() as session:
            audit = AuditLog(session)
            return {
                "counts": audit.counts(),
                "recent_errors": audit.recent_errors(self.settings.recent_errors_limit),
            }

    def clear_old_logs(self, days: Optional[int] = None) -> int:
        if days is None:
            days = self.settings.log_retention_days
        with self.database.session() as session:
            return AuditLog(session).clear_old_logs(days)
