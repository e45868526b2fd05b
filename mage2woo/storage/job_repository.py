"""
Repository for migration jobs.

All job SQL lives here. The single-active-job rule is enforced by the
database: creating a job takes the unique active slot, and the run claims
its job with a conditional UPDATE, so two writers can never both win.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import JobConflictError, JobNotFoundError
from ..models.job import EntityType, JobEvent, JobStatus, MigrationJob
from .tables import JobRecord

logger = logging.getLogger(__name__)

ACTIVE_SLOT = 1
ACTIVE_STATUSES = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)


def _to_model(record: JobRecord) -> MigrationJob:
    return MigrationJob(
        id=record.id,
        entity_type=EntityType(record.entity_type),
        status=JobStatus(record.status),
        scope=record.scope,
        start_page=record.start_page,
        current_page=record.current_page,
        cancel_requested=record.cancel_requested,
        created_at=record.created_at,
        started_at=record.started_at,
        completed_at=record.completed_at,
        total=record.total,
        processed=record.processed,
        successful=record.successful,
        failed=record.failed,
        current_item=record.current_item,
        outcomes=dict(record.outcomes or {"created": 0, "updated": 0}),
        errors=[JobEvent.from_dict(e) for e in (record.errors or [])],
        warnings=[JobEvent.from_dict(w) for w in (record.warnings or [])],
        message=record.message or "",
    )


class JobRepository:
    """Persists MigrationJob snapshots and guards the active slot."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _get_record(self, job_id: str) -> Optional[JobRecord]:
        stmt = select(JobRecord).where(JobRecord.id == job_id).execution_options(
            populate_existing=True
        )
        return self.session.execute(stmt).scalars().first()

    def create(
        self,
        entity_type: EntityType,
        scope: Optional[int] = None,
        start_page: int = 1
    ) -> MigrationJob:
        """
        Create a pending job in the active slot.

        Raises:
            JobConflictError: If another job is pending or processing
        """
        job = MigrationJob(entity_type=entity_type, scope=scope, start_page=start_page)
        record = JobRecord(
            id=job.id,
            entity_type=entity_type.value,
            status=JobStatus.PENDING.value,
            active_slot=ACTIVE_SLOT,
            scope=scope,
            start_page=start_page,
            current_page=0,
            cancel_requested=False,
            created_at=job.created_at,
            current_item="",
            outcomes=dict(job.outcomes),
            errors=[],
            warnings=[],
            message="",
        )
        self.session.add(record)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            active = self.active()
            detail = f" ({active.entity_type.value} job {active.id} is {active.status.value})" if active else ""
            raise JobConflictError(f"A migration is already in progress{detail}")

        logger.info(f"Created {entity_type.value} job {job.id}")
        return _to_model(record)

    def claim(self, job_id: str) -> MigrationJob:
        """
        Move a pending job to processing.

        Raises:
            JobNotFoundError: If the job does not exist
            JobConflictError: If the job is no longer pending
        """
        result = self.session.execute(
            update(JobRecord)
            .where(JobRecord.id == job_id, JobRecord.status == JobStatus.PENDING.value)
            .values(status=JobStatus.PROCESSING.value, started_at=datetime.utcnow())
        )
        self.session.commit()

        record = self._get_record(job_id)
        if record is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        if result.rowcount != 1:
            raise JobConflictError(f"Job {job_id} cannot be claimed in status {record.status}")
        return _to_model(record)

    def get(self, job_id: str) -> Optional[MigrationJob]:
        record = self._get_record(job_id)
        return _to_model(record) if record else None

    def latest(self) -> Optional[MigrationJob]:
        """The most recently created job, whatever its status."""
        stmt = select(JobRecord).order_by(JobRecord.created_at.desc()).limit(1).execution_options(
            populate_existing=True
        )
        record = self.session.execute(stmt).scalars().first()
        return _to_model(record) if record else None

    def active(self) -> Optional[MigrationJob]:
        stmt = select(JobRecord).where(JobRecord.active_slot == ACTIVE_SLOT).execution_options(
            populate_existing=True
        )
        record = self.session.execute(stmt).scalars().first()
        return _to_model(record) if record else None

    def list(self, limit: int = 20) -> List[MigrationJob]:
        stmt = select(JobRecord).order_by(JobRecord.created_at.desc()).limit(limit)
        return [_to_model(r) for r in self.session.execute(stmt).scalars().all()]

    def last_for(
        self,
        entity_type: EntityType,
        statuses: Iterable[JobStatus]
    ) -> Optional[MigrationJob]:
        """Most recent job of a type in one of the given statuses."""
        stmt = (
            select(JobRecord)
            .where(
                JobRecord.entity_type == entity_type.value,
                JobRecord.status.in_([s.value for s in statuses]),
            )
            .order_by(JobRecord.created_at.desc())
            .limit(1)
        )
        record = self.session.execute(stmt).scalars().first()
        return _to_model(record) if record else None

    def save_progress(self, job: MigrationJob) -> None:
        """
        Persist counters, page position and error lists of a processing job.

        Status and the cancellation flag are left alone; they belong to
        claim/finalize and request_cancel.
        """
        self.session.execute(
            update(JobRecord)
            .where(JobRecord.id == job.id, JobRecord.status == JobStatus.PROCESSING.value)
            .values(
                total=job.total,
                processed=job.processed,
                successful=job.successful,
                failed=job.failed,
                current_item=job.current_item[:500],
                current_page=job.current_page,
                outcomes=dict(job.outcomes),
                errors=[e.to_dict() for e in job.errors],
                warnings=[w.to_dict() for w in job.warnings],
            )
        )
        self.session.commit()

    def is_cancel_requested(self, job_id: str) -> bool:
        value = self.session.execute(
            select(JobRecord.cancel_requested).where(JobRecord.id == job_id)
        ).scalar()
        self.session.commit()
        return bool(value)

    def request_cancel(self) -> Optional[MigrationJob]:
        """
        Ask the active job to stop.

        A processing job gets its cancellation flag set and stops at the
        next page boundary. A job still pending is cancelled on the spot.

        Returns:
            The affected job, or None when no job is active
        """
        record = self.session.execute(
            select(JobRecord).where(JobRecord.active_slot == ACTIVE_SLOT).execution_options(
                populate_existing=True
            )
        ).scalars().first()
        if record is None:
            return None

        if record.status == JobStatus.PENDING.value:
            self.session.execute(
                update(JobRecord)
                .where(JobRecord.id == record.id, JobRecord.status == JobStatus.PENDING.value)
                .values(
                    status=JobStatus.CANCELLED.value,
                    active_slot=None,
                    cancel_requested=True,
                    completed_at=datetime.utcnow(),
                    message="Cancelled before start",
                )
            )
        else:
            self.session.execute(
                update(JobRecord).where(JobRecord.id == record.id).values(cancel_requested=True)
            )
        self.session.commit()
        logger.info(f"Cancellation requested for job {record.id}")
        return self.get(record.id)

    def finalize(self, job: MigrationJob, status: JobStatus, message: str = "") -> MigrationJob:
        """
        Write the final snapshot and release the active slot.

        A job already in a terminal state is never overwritten.
        """
        if not status.is_terminal:
            raise ValueError(f"Not a terminal status: {status}")

        completed_at = datetime.utcnow()
        result = self.session.execute(
            update(JobRecord)
            .where(JobRecord.id == job.id, JobRecord.status.in_(ACTIVE_STATUSES))
            .values(
                status=status.value,
                active_slot=None,
                completed_at=completed_at,
                total=job.total,
                processed=job.processed,
                successful=job.successful,
                failed=job.failed,
                current_item=job.current_item[:500],
                current_page=job.current_page,
                outcomes=dict(job.outcomes),
                errors=[e.to_dict() for e in job.errors],
                warnings=[w.to_dict() for w in job.warnings],
                message=message,
            )
        )
        self.session.commit()

        if result.rowcount == 1:
            job.status = status
            job.completed_at = completed_at
            job.message = message
            logger.info(f"Job {job.id} finished: {status.value}")
        else:
            logger.warning(f"Job {job.id} was already finished, keeping stored status")
        return self.get(job.id) or job

    def clear_active(self, message: str = "Abandoned") -> Optional[MigrationJob]:
        """Mark a stuck active job as failed so a new one can start."""
        active = self.active()
        if active is None:
            return None
        return self.finalize(active, JobStatus.FAILED, message)
