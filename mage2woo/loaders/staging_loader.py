"""Loader that keeps normalized entities in a local table for review."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .base import BaseLoader, TargetRecordMissing
from ..errors import UpsertValidationError
from ..models.entities import NormalizedEntity
from ..models.job import EntityType
from ..storage.mapping_repository import MappingRepository
from ..storage.tables import StagedEntity

logger = logging.getLogger(__name__)


def natural_key(entity_type: EntityType, entity: NormalizedEntity) -> Optional[str]:
    """Business key that identifies an entity independently of its source id."""
    if entity_type == EntityType.PRODUCTS:
        return entity.sku or None
    if entity_type == EntityType.CUSTOMERS:
        return entity.email.lower() or None
    if entity_type == EntityType.ORDERS:
        return entity.increment_id or None
    return None


class StagingLoader(BaseLoader):
    """
    Stores each normalized entity as one JSON row in ``staged_entities``.

    Useful for dry runs: the whole pipeline runs, mappings are recorded and
    the result can be inspected before pointing the engine at WooCommerce.
    """

    def __init__(self, session: Session, mappings: Optional[MappingRepository] = None):
        super().__init__(mappings or MappingRepository(session))
        self.session = session

    def create_record(self, entity_type: EntityType, entity: NormalizedEntity) -> str:
        payload = entity.to_dict()
        if not payload.get("external_id"):
            raise UpsertValidationError(f"{entity_type.value} has no external id")

        row = StagedEntity(
            entity_type=entity_type.value,
            external_id=entity.external_id,
            natural_key=natural_key(entity_type, entity),
            payload=payload,
        )
        self.session.add(row)
        self.session.commit()
        logger.debug(f"Staged {entity_type.value} {entity.label} as {row.id}")
        return str(row.id)

    def update_record(self, entity_type: EntityType, entity: NormalizedEntity, local_id: str) -> None:
        row = self._get(entity_type, local_id)
        if row is None:
            raise TargetRecordMissing(f"No staged {entity_type.value} with id {local_id}")

        row.external_id = entity.external_id
        row.natural_key = natural_key(entity_type, entity)
        row.payload = entity.to_dict()
        row.updated_at = datetime.utcnow()
        self.session.commit()

    def find_by_natural_key(self, entity_type: EntityType, entity: NormalizedEntity) -> Optional[str]:
        """
        Staged row for ``entity`` when its mapping is missing.

        Matches on the business key first, then on the source id, which is
        unique per entity type in the staging table.
        """
        key = natural_key(entity_type, entity)
        if key:
            stmt = select(StagedEntity.id).where(
                StagedEntity.entity_type == entity_type.value,
                StagedEntity.natural_key == key,
            )
            found = self.session.execute(stmt).scalar()
            if found is not None:
                return str(found)

        if not entity.external_id:
            return None
        stmt = select(StagedEntity.id).where(
            StagedEntity.entity_type == entity_type.value,
            StagedEntity.external_id == entity.external_id,
        )
        found = self.session.execute(stmt).scalar()
        return str(found) if found is not None else None

    def _get(self, entity_type: EntityType, local_id: str) -> Optional[StagedEntity]:
        try:
            row_id = int(local_id)
        except (TypeError, ValueError):
            return None
        row = self.session.get(StagedEntity, row_id)
        if row is None or row.entity_type != entity_type.value:
            return None
        return row

    def get_payload(self, entity_type: EntityType, local_id: str) -> Optional[Dict[str, Any]]:
        row = self._get(entity_type, local_id)
        return dict(row.payload) if row else None

    def list_payloads(self, entity_type: EntityType, limit: int = 100) -> List[Dict[str, Any]]:
        stmt = (
            select(StagedEntity)
            .where(StagedEntity.entity_type == entity_type.value)
            .order_by(StagedEntity.id)
            .limit(limit)
        )
        return [dict(row.payload) for row in self.session.execute(stmt).scalars().all()]

    def count_staged(self, entity_type: EntityType) -> int:
        stmt = select(func.count()).select_from(StagedEntity).where(
            StagedEntity.entity_type == entity_type.value
        )
        return int(self.session.execute(stmt).scalar() or 0)
