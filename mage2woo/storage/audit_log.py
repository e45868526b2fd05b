"""Persistent audit log of per-item migration outcomes."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..models.job import EntityType
from .tables import AuditLogEntry

logger = logging.getLogger(__name__)

LEVELS = ("info", "success", "warning", "error")
MAX_MESSAGE_LENGTH = 1000


class AuditLog:
    """Append-only log with age-based retention."""

    def __init__(self, session: Session, job_id: Optional[str] = None) -> None:
        self.session = session
        self.job_id = job_id

    def log(
        self,
        level: str,
        action: str,
        message: str,
        entity_type: Optional[EntityType] = None,
        item_id: Optional[str] = None
    ) -> AuditLogEntry:
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}")

        entry = AuditLogEntry(
            level=level,
            action=action[:50],
            entity_type=entity_type.value if entity_type else None,
            item_id=str(item_id)[:100] if item_id is not None else None,
            job_id=self.job_id,
            message=(message or "")[:MAX_MESSAGE_LENGTH],
            created_at=datetime.utcnow(),
        )
        self.session.add(entry)
        self.session.commit()
        return entry

    def info(self, action: str, message: str, **kwargs) -> AuditLogEntry:
        return self.log("info", action, message, **kwargs)

    def success(self, action: str, message: str, **kwargs) -> AuditLogEntry:
        return self.log("success", action, message, **kwargs)

    def warning(self, action: str, message: str, **kwargs) -> AuditLogEntry:
        return self.log("warning", action, message, **kwargs)

    def error(self, action: str, message: str, **kwargs) -> AuditLogEntry:
        return self.log("error", action, message, **kwargs)

    def recent(
        self,
        limit: int = 100,
        level: Optional[str] = None,
        entity_type: Optional[EntityType] = None
    ) -> List[Dict[str, Any]]:
        """Newest entries first."""
        stmt = select(AuditLogEntry).order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        if level:
            stmt = stmt.where(AuditLogEntry.level == level)
        if entity_type:
            stmt = stmt.where(AuditLogEntry.entity_type == entity_type.value)
        stmt = stmt.limit(limit)
        return [self._to_dict(e) for e in self.session.execute(stmt).scalars().all()]

    def recent_errors(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.recent(limit=limit, level="error")

    def counts(self) -> Dict[str, int]:
        """Number of entries per level."""
        stmt = select(AuditLogEntry.level, func.count()).group_by(AuditLogEntry.level)
        counts = {level: 0 for level in LEVELS}
        for level, count in self.session.execute(stmt):
            counts[level] = int(count)
        return counts

    def clear_old_logs(self, days: int = 30) -> int:
        """Delete entries older than ``days`` days and return how many went."""
        cutoff = datetime.utcnow() - timedelta(days=days)
        result = self.session.execute(delete(AuditLogEntry).where(AuditLogEntry.created_at < cutoff))
        self.session.commit()
        if result.rowcount:
            logger.info(f"Purged {result.rowcount} audit log entries older than {days} days")
        return result.rowcount

    def clear_all(self) -> int:
        result = self.session.execute(delete(AuditLogEntry))
        self.session.commit()
        return result.rowcount

    @staticmethod
    def _to_dict(entry: AuditLogEntry) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "level": entry.level,
            "action": entry.action,
            "entity_type": entry.entity_type,
            "item_id": entry.item_id,
            "job_id": entry.job_id,
            "message": entry.message,
            "created_at": entry.created_at.isoformat(),
        }
