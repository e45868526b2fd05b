"""Tests for the migration service used by the API and CLI."""

from unittest.mock import MagicMock

import pytest

from mage2woo.errors import ConfigurationError, ConnectivityError, JobConflictError, PreflightConnectivityError
from mage2woo.loaders.staging_loader import StagingLoader
from mage2woo.models.job import EntityType, JobStatus
from mage2woo.services.migration_service import MigrationService
from mage2woo.storage.job_repository import JobRepository

from .conftest import FakeSourceClient, make_products


def make_service(settings, database, source, loader_factory=None):
    return MigrationService(
        settings,
        database,
        source_factory=lambda s: source,
        loader_factory=loader_factory or (lambda s, db: StagingLoader(db)),
    )


class TestStart:
    def test_rejects_invalid_settings(self, settings, database, fake_source):
        settings.connector_api_key = None
        service = make_service(settings, database, fake_source)

        with pytest.raises(ConfigurationError, match="API key"):
            service.start_migration(EntityType.PRODUCTS)

    def test_scope_sets_start_page(self, service):
        job_id = service.start_migration(EntityType.PRODUCTS, scope=3)

        job = service.get_progress()
        assert job.id == job_id
        assert job.status == JobStatus.PENDING
        assert job.start_page == 3

    def test_second_start_conflicts(self, service):
        service.start_migration(EntityType.PRODUCTS)

        with pytest.raises(JobConflictError):
            service.start_migration(EntityType.ORDERS)

    def test_target_rejection(self, settings, database, fake_source):
        def refusing_loader(s, db):
            loader = MagicMock()
            loader.validate_connection.return_value = False
            return loader

        service = make_service(settings, database, fake_source, refusing_loader)

        with pytest.raises(PreflightConnectivityError) as exc:
            service.start_migration(EntityType.PRODUCTS)

        assert exc.value.stage == "target"
        assert fake_source.closed


class TestResume:
    def test_failed_job_resumes_at_failed_page(self, settings, database):
        source = FakeSourceClient(
            records={EntityType.PRODUCTS: make_products(60)},
            failures={2: ConnectivityError("connector timed out")},
        )
        service = make_service(settings, database, source)
        failed = service.run_job(service.start_migration(EntityType.PRODUCTS))
        assert failed.status == JobStatus.FAILED

        source.failures.clear()
        source.fetched_pages.clear()
        resumed = service.run_job(service.start_migration(EntityType.PRODUCTS, resume=True))

        assert resumed.start_page == 2
        assert resumed.status == JobStatus.COMPLETED
        assert resumed.total == 40
        assert source.fetched_pages[0] == 2

    def test_resume_point_survives_failure_before_first_fetch(self, settings, database):
        source = FakeSourceClient(
            records={EntityType.PRODUCTS: make_products(100)},
            failures={4: ConnectivityError("connector timed out")},
        )
        service = make_service(settings, database, source)
        service.run_job(service.start_migration(EntityType.PRODUCTS))

        source.count_error = ConnectivityError("connector timed out")
        second = service.run_job(service.start_migration(EntityType.PRODUCTS, resume=True))
        assert second.status == JobStatus.FAILED
        assert second.start_page == 4

        source.count_error = None
        source.failures.clear()
        service.start_migration(EntityType.PRODUCTS, resume=True)

        assert service.get_progress().start_page == 4

    def test_resume_point_survives_cancel_while_pending(self, settings, database):
        source = FakeSourceClient(
            records={EntityType.PRODUCTS: make_products(100)},
            failures={3: ConnectivityError("connector timed out")},
        )
        service = make_service(settings, database, source)
        service.run_job(service.start_migration(EntityType.PRODUCTS))

        service.start_migration(EntityType.PRODUCTS, resume=True)
        assert service.cancel_migration() is True

        service.start_migration(EntityType.PRODUCTS, resume=True)

        assert service.get_progress().start_page == 3

    def test_cancelled_job_resumes_after_last_page(self, service, database):
        jobs = JobRepository(database.new_session())
        job = jobs.claim(jobs.create(EntityType.PRODUCTS).id)
        job.current_page = 3
        jobs.finalize(job, JobStatus.CANCELLED, "Cancelled after page 3")

        service.start_migration(EntityType.PRODUCTS, resume=True)

        assert service.get_progress().start_page == 4

    def test_resume_without_history_starts_at_first_page(self, service):
        service.start_migration(EntityType.CUSTOMERS, resume=True)

        assert service.get_progress().start_page == 1

    def test_scope_and_resume_rejected(self, service):
        with pytest.raises(ConfigurationError):
            service.start_migration(EntityType.PRODUCTS, scope=2, resume=True)


class TestRunJob:
    def test_loader_setup_failure_fails_job(self, settings, database, fake_source):
        calls = []

        def loader_factory(s, db):
            calls.append(1)
            if len(calls) > 1:
                raise ConfigurationError("WooCommerce URL is required")
            return StagingLoader(db)

        service = make_service(settings, database, fake_source, loader_factory)
        job_id = service.start_migration(EntityType.PRODUCTS)

        job = service.run_job(job_id)

        assert job.status == JobStatus.FAILED
        assert "WooCommerce URL" in job.message

    def test_reset_clears_stuck_job(self, service):
        service.start_migration(EntityType.PRODUCTS)

        cleared = service.reset()

        assert cleared.status == JobStatus.FAILED
        assert service.start_migration(EntityType.PRODUCTS)


class TestReporting:
    def test_stats_without_source(self, settings, database):
        def broken_source(s):
            raise ConfigurationError("Connector URL is required")

        service = MigrationService(settings, database, source_factory=broken_source)

        stats = service.get_stats()

        assert stats["products"] == {"migrated_count_local": 0, "total_count_remote": None}

    def test_page_count(self, service):
        assert service.get_page_count(EntityType.PRODUCTS) == {
            "entity_type": "products",
            "total": 25,
            "page_size": 20,
            "pages": 2,
        }

    def test_log_summary_after_run(self, service):
        service.run_job(service.start_migration(EntityType.PRODUCTS))

        summary = service.log_summary()

        assert summary["counts"]["success"] == 25
        assert summary["counts"]["info"] == 3
        assert summary["recent_errors"] == []
        assert service.clear_old_logs() == 0
