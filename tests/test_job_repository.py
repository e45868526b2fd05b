"""Tests for job persistence and the single-active-job rule."""

import pytest

from mage2woo.errors import JobConflictError, JobNotFoundError
from mage2woo.models.job import EntityType, JobStatus
from mage2woo.storage.job_repository import JobRepository


class TestCreateAndClaim:
    def test_create_pending_job(self, jobs):
        job = jobs.create(EntityType.PRODUCTS, scope=3, start_page=3)

        assert job.status == JobStatus.PENDING
        assert job.scope == 3
        assert job.start_page == 3
        assert jobs.active().id == job.id

    def test_second_job_conflicts(self, jobs):
        jobs.create(EntityType.PRODUCTS)

        with pytest.raises(JobConflictError):
            jobs.create(EntityType.CUSTOMERS)

    def test_conflict_is_enforced_across_sessions(self, database):
        first = JobRepository(database.new_session())
        second = JobRepository(database.new_session())
        first.create(EntityType.PRODUCTS)

        with pytest.raises(JobConflictError):
            second.create(EntityType.ORDERS)

    def test_claim_moves_to_processing(self, jobs):
        job = jobs.create(EntityType.PRODUCTS)

        claimed = jobs.claim(job.id)

        assert claimed.status == JobStatus.PROCESSING
        assert claimed.started_at is not None

    def test_claim_twice_conflicts(self, jobs):
        job = jobs.create(EntityType.PRODUCTS)
        jobs.claim(job.id)

        with pytest.raises(JobConflictError):
            jobs.claim(job.id)

    def test_claim_unknown_job(self, jobs):
        with pytest.raises(JobNotFoundError):
            jobs.claim("does-not-exist")

    def test_new_job_allowed_after_finish(self, jobs):
        job = jobs.claim(jobs.create(EntityType.PRODUCTS).id)
        jobs.finalize(job, JobStatus.COMPLETED, "done")

        second = jobs.create(EntityType.PRODUCTS)

        assert second.id != job.id
        assert jobs.latest().id == second.id


class TestProgress:
    def test_save_progress_round_trip(self, jobs):
        job = jobs.claim(jobs.create(EntityType.PRODUCTS).id)
        job.total = 10
        job.processed = 3
        job.successful = 2
        job.failed = 1
        job.current_page = 1
        job.outcomes["created"] = 2
        job.record_error("SKU-3", "rejected")

        jobs.save_progress(job)
        stored = jobs.get(job.id)

        assert stored.processed == 3
        assert stored.failed == 1
        assert stored.outcomes == {"created": 2, "updated": 0}
        assert stored.errors[0].item == "SKU-3"
        assert stored.percentage == 30
        assert stored.success_rate == 67

    def test_save_progress_ignored_after_finish(self, jobs):
        job = jobs.claim(jobs.create(EntityType.PRODUCTS).id)
        jobs.finalize(job, JobStatus.CANCELLED, "stopped")

        job.processed = 99
        jobs.save_progress(job)

        assert jobs.get(job.id).processed == 0

    def test_finalize_never_overwrites_terminal_status(self, jobs):
        job = jobs.claim(jobs.create(EntityType.PRODUCTS).id)
        jobs.finalize(job, JobStatus.FAILED, "boom")

        result = jobs.finalize(job, JobStatus.COMPLETED, "late")

        assert result.status == JobStatus.FAILED
        assert result.message == "boom"

    def test_finalize_requires_terminal_status(self, jobs):
        job = jobs.claim(jobs.create(EntityType.PRODUCTS).id)

        with pytest.raises(ValueError):
            jobs.finalize(job, JobStatus.PROCESSING)

    def test_last_for(self, jobs):
        job = jobs.claim(jobs.create(EntityType.PRODUCTS).id)
        job.current_page = 4
        jobs.finalize(job, JobStatus.FAILED, "down")

        found = jobs.last_for(EntityType.PRODUCTS, (JobStatus.FAILED,))

        assert found.id == job.id
        assert found.current_page == 4
        assert jobs.last_for(EntityType.ORDERS, (JobStatus.FAILED,)) is None


class TestCancellation:
    def test_cancel_without_active_job(self, jobs):
        assert jobs.request_cancel() is None

    def test_cancel_pending_job_finishes_it(self, jobs):
        job = jobs.create(EntityType.PRODUCTS)

        cancelled = jobs.request_cancel()

        assert cancelled.id == job.id
        assert cancelled.status == JobStatus.CANCELLED
        assert jobs.active() is None
        with pytest.raises(JobConflictError):
            jobs.claim(job.id)

    def test_cancel_processing_job_sets_flag(self, jobs):
        job = jobs.claim(jobs.create(EntityType.PRODUCTS).id)

        flagged = jobs.request_cancel()

        assert flagged.status == JobStatus.PROCESSING
        assert jobs.is_cancel_requested(job.id) is True

    def test_clear_active(self, jobs):
        job = jobs.claim(jobs.create(EntityType.PRODUCTS).id)

        cleared = jobs.clear_active()

        assert cleared.id == job.id
        assert cleared.status == JobStatus.FAILED
        assert cleared.message == "Abandoned"
        assert jobs.active() is None
