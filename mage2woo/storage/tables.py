"""ORM tables for jobs, external-ID mappings, the audit log and staged entities."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class JobRecord(Base):
    """
    Persisted migration job.

    ``active_slot`` is 1 while the job is pending or processing and NULL
    afterwards. The unique constraint on it admits one active job at most.
    """

    __tablename__ = "migration_jobs"
    __table_args__ = (UniqueConstraint("active_slot", name="uq_migration_jobs_active_slot"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    active_slot: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    scope: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    start_page: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_page: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_item: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    outcomes: Mapped[Optional[Dict[str, int]]] = mapped_column(JSON, nullable=True)
    errors: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    warnings: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")


class IdMapping(Base):
    """Source identifier to local identifier, one row per (entity_type, external_id)."""

    __tablename__ = "external_id_mappings"
    __table_args__ = (
        UniqueConstraint("entity_type", "external_id", name="uq_external_id_mappings_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    local_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class AuditLogEntry(Base):
    """Per-item outcome record with age-based retention."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(10), nullable=False, index=True)  # info, success, warning, error
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    item_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    job_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    message: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, index=True
    )


class StagedEntity(Base):
    """Normalized entity held locally by the staging target."""

    __tablename__ = "staged_entities"
    __table_args__ = (
        UniqueConstraint("entity_type", "external_id", name="uq_staged_entities_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    natural_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )
