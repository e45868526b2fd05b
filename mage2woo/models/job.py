"""Migration job models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class EntityType(str, Enum):
    """Entity types the connector can serve."""
    PRODUCTS = "products"
    CATEGORIES = "categories"
    CUSTOMERS = "customers"
    ORDERS = "orders"


class JobStatus(str, Enum):
    """Status of a migration job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.PROCESSING)


@dataclass
class JobEvent:
    """An error or warning recorded against a job."""
    item: str
    message: str
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item": self.item,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobEvent":
        timestamp = data.get("timestamp")
        return cls(
            item=str(data.get("item", "")),
            message=str(data.get("message", "")),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.utcnow(),
        )


@dataclass
class MigrationJob:
    """
    One run of the orchestrator for one entity type.

    Counters only move forward during a run and always satisfy
    processed == successful + failed.
    """
    entity_type: EntityType
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    scope: Optional[int] = None  # Single source page, None for all pages
    start_page: int = 1
    current_page: int = 0
    cancel_requested: bool = False

    # Timing
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Progress
    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    current_item: str = ""
    outcomes: Dict[str, int] = field(default_factory=lambda: {"created": 0, "updated": 0})

    errors: List[JobEvent] = field(default_factory=list)
    warnings: List[JobEvent] = field(default_factory=list)
    message: str = ""

    @property
    def percentage(self) -> int:
        """Share of total items processed, 0 while total is unknown."""
        if self.total <= 0:
            return 0
        return round(self.processed / self.total * 100)

    @property
    def success_rate(self) -> int:
        if self.processed <= 0:
            return 0
        return round(self.successful / self.processed * 100)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def time_remaining(self, now: Optional[datetime] = None) -> Optional[float]:
        """
        Estimate seconds left from the average time per processed item.

        Advisory only; returns None until at least one item is processed.
        """
        if not self.started_at or self.processed <= 0 or self.total <= 0:
            return None
        if self.status.is_terminal:
            return 0.0
        elapsed = ((now or datetime.utcnow()) - self.started_at).total_seconds()
        remaining = max(0, self.total - self.processed)
        return max(0.0, elapsed / self.processed * remaining)

    def record_error(self, item: str, message: str) -> JobEvent:
        event = JobEvent(item=item, message=message)
        self.errors.append(event)
        return event

    def record_warning(self, item: str, message: str) -> JobEvent:
        event = JobEvent(item=item, message=message)
        self.warnings.append(event)
        return event

    def recent_errors(self, limit: int = 10) -> List[JobEvent]:
        """Most recent errors, oldest first."""
        if limit <= 0:
            return []
        return self.errors[-limit:]

    def to_dict(self, errors_limit: Optional[int] = None) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        errors = self.errors if errors_limit is None else self.recent_errors(errors_limit)
        warnings = self.warnings if errors_limit is None else self.warnings[-errors_limit:]
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "status": self.status.value,
            "scope": self.scope,
            "start_page": self.start_page,
            "current_page": self.current_page,
            "cancel_requested": self.cancel_requested,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total": self.total,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "percentage": self.percentage,
            "success_rate": self.success_rate,
            "time_remaining": self.time_remaining(),
            "duration_seconds": self.duration_seconds,
            "current_item": self.current_item,
            "outcomes": dict(self.outcomes),
            "error_count": len(self.errors),
            "errors": [e.to_dict() for e in errors],
            "warning_count": len(self.warnings),
            "warnings": [w.to_dict() for w in warnings],
            "message": self.message,
        }
