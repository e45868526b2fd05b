"""Base loader interface for target stores."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import logging

from ..errors import UpsertError
from ..models.entities import NormalizedEntity
from ..models.job import EntityType
from ..storage.mapping_repository import MappingRepository

logger = logging.getLogger(__name__)


class TargetRecordMissing(UpsertError):
    """A mapped local record no longer exists in the target store."""


@dataclass
class UpsertResult:
    """Outcome of one upsert."""
    entity_type: EntityType
    external_id: str
    local_id: str
    created: bool

    def to_dict(self):
        return {
            "entity_type": self.entity_type.value,
            "external_id": self.external_id,
            "local_id": self.local_id,
            "created": self.created,
        }


class BaseLoader(ABC):
    """
    Base class for target store adapters.

    Loaders create or update one normalized entity at a time and record the
    external-ID mapping on success, so upserting the same entity twice
    leaves a single local record.
    """

    def __init__(self, mappings: MappingRepository):
        """
        Initialize the loader.

        Args:
            mappings: Repository holding external-ID mappings
        """
        self.mappings = mappings

    def find_local_id(self, entity_type: EntityType, external_id: str) -> Optional[str]:
        """Look up the local identifier for a source entity."""
        return self.mappings.get(entity_type, external_id)

    def upsert(
        self,
        entity_type: EntityType,
        entity: NormalizedEntity,
        local_id: Optional[str] = None
    ) -> UpsertResult:
        """
        Create or update the local record for ``entity``.

        Args:
            entity_type: Type of the entity
            entity: Normalized entity
            local_id: Known local identifier, or None to create

        Returns:
            UpsertResult with the local identifier

        Raises:
            UpsertValidationError: If the target rejects the data
            UpsertTransientError: If the target failed for a transient reason
        """
        created = False

        if local_id is None:
            local_id = self.find_by_natural_key(entity_type, entity)
            if local_id is not None:
                logger.info(
                    f"Matched existing {entity_type.value} {entity.label} to local id {local_id}"
                )

        if local_id is not None:
            try:
                self.update_record(entity_type, entity, local_id)
            except TargetRecordMissing:
                logger.warning(
                    f"Local {entity_type.value} {local_id} for {entity.label} is gone, recreating"
                )
                local_id = None

        if local_id is None:
            local_id = self.create_record(entity_type, entity)
            created = True

        stored = self.mappings.save(entity_type, entity.external_id, str(local_id))
        return UpsertResult(
            entity_type=entity_type,
            external_id=entity.external_id,
            local_id=stored,
            created=created,
        )

    @abstractmethod
    def create_record(self, entity_type: EntityType, entity: NormalizedEntity) -> str:
        """Create a local record and return its identifier."""
        pass

    @abstractmethod
    def update_record(self, entity_type: EntityType, entity: NormalizedEntity, local_id: str) -> None:
        """
        Update an existing local record.

        Raises:
            TargetRecordMissing: If no record has ``local_id``
        """
        pass

    def find_by_natural_key(self, entity_type: EntityType, entity: NormalizedEntity) -> Optional[str]:
        """Find an unmapped local record for the same real-world entity."""
        return None

    def count_local(self, entity_type: EntityType) -> int:
        """Number of source entities migrated into this store."""
        return self.mappings.count(entity_type)

    def validate_connection(self) -> bool:
        """Validate the connection to the target store."""
        return True

    def close(self) -> None:
        """Release any held resources."""
