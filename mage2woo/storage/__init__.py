"""Job store: jobs, external-ID mappings and the audit log."""

from .database import Base, Database, create_db_engine
from .tables import JobRecord, IdMapping, AuditLogEntry, StagedEntity
from .job_repository import JobRepository
from .mapping_repository import MappingRepository
from .audit_log import AuditLog

__all__ = [
    "Base",
    "Database",
    "create_db_engine",
    "JobRecord",
    "IdMapping",
    "AuditLogEntry",
    "StagedEntity",
    "JobRepository",
    "MappingRepository",
    "AuditLog",
]
