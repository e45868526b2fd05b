"""Repository for external-ID mappings."""

import logging
from typing import Dict, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.job import EntityType
from .tables import IdMapping

logger = logging.getLogger(__name__)


class MappingRepository:
    """
    Maps (entity_type, external_id) to the local identifier.

    ``save`` is insert-or-get: a concurrent insert of the same key loses on
    the unique constraint and falls back to updating the winner's row.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def _find(self, entity_type: EntityType, external_id: str) -> Optional[IdMapping]:
        stmt = select(IdMapping).where(
            IdMapping.entity_type == entity_type.value,
            IdMapping.external_id == str(external_id),
        )
        return self.session.execute(stmt).scalars().first()

    def get(self, entity_type: EntityType, external_id: str) -> Optional[str]:
        mapping = self._find(entity_type, external_id)
        return mapping.local_id if mapping else None

    def save(self, entity_type: EntityType, external_id: str, local_id: str) -> str:
        """Record the mapping and return the stored local id."""
        external_id = str(external_id)
        local_id = str(local_id)

        existing = self._find(entity_type, external_id)
        if existing is None:
            self.session.add(IdMapping(
                entity_type=entity_type.value,
                external_id=external_id,
                local_id=local_id,
            ))
            try:
                self.session.commit()
                return local_id
            except IntegrityError:
                self.session.rollback()
                logger.debug(f"Mapping {entity_type.value}:{external_id} inserted concurrently")
                existing = self._find(entity_type, external_id)
                if existing is None:
                    raise

        if existing.local_id != local_id:
            logger.info(
                f"Remapping {entity_type.value}:{external_id} from {existing.local_id} to {local_id}"
            )
            existing.local_id = local_id
        self.session.commit()
        return existing.local_id

    def delete(self, entity_type: EntityType, external_id: str) -> bool:
        result = self.session.execute(
            delete(IdMapping).where(
                IdMapping.entity_type == entity_type.value,
                IdMapping.external_id == str(external_id),
            )
        )
        self.session.commit()
        return result.rowcount > 0

    def count(self, entity_type: EntityType) -> int:
        stmt = select(func.count()).select_from(IdMapping).where(
            IdMapping.entity_type == entity_type.value
        )
        return int(self.session.execute(stmt).scalar() or 0)

    def all_for(self, entity_type: EntityType) -> Dict[str, str]:
        stmt = select(IdMapping.external_id, IdMapping.local_id).where(
            IdMapping.entity_type == entity_type.value
        )
        return {row.external_id: row.local_id for row in self.session.execute(stmt)}
