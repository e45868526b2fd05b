"""Base source client interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from ..models.job import EntityType

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    OK = "ok"
    UNREACHABLE = "unreachable"


class ProbeStatus(str, Enum):
    OK = "ok"
    UNAUTHORIZED = "unauthorized"
    MISCONFIGURED = "misconfigured"


@dataclass
class SourcePage:
    """One page of raw records returned by the source."""
    entity_type: EntityType
    page_number: int
    records: List[Any] = field(default_factory=list)
    total: int = 0
    total_pages: Optional[int] = None
    page_size: Optional[int] = None
    media_url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return len(self.records) == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "entity_type": self.entity_type.value,
            "page_number": self.page_number,
            "record_count": len(self.records),
            "total": self.total,
            "total_pages": self.total_pages,
            "page_size": self.page_size,
            "media_url": self.media_url,
        }


class BaseSourceClient(ABC):
    """
    Base class for remote data sources.

    A source client can report liveness without credentials, probe whether
    the credentials are accepted, count entities and fetch pages of raw
    entity records.
    """

    @abstractmethod
    def health_check(self) -> HealthStatus:
        """Check that the source answers at all. Never requires credentials."""
        pass

    @abstractmethod
    def authenticate_probe(self) -> ProbeStatus:
        """Check that the configured credentials are accepted."""
        pass

    @abstractmethod
    def capability_check(self) -> Dict[str, Any]:
        """
        Run the full capability check.

        Returns:
            Details reported by the source (e.g. platform version)

        Raises:
            MigratorError: If the source is not usable
        """
        pass

    @abstractmethod
    def count(self, entity_type: EntityType) -> int:
        """Return the number of entities of a type the source holds."""
        pass

    @abstractmethod
    def fetch_page(
        self,
        entity_type: EntityType,
        page_size: int,
        page_number: int
    ) -> SourcePage:
        """
        Fetch one page of raw records.

        Args:
            entity_type: Entity type to fetch
            page_size: Maximum records per page
            page_number: 1-based page number

        Returns:
            SourcePage with the raw records and the reported total

        Raises:
            ConnectivityError: If the source could not be reached
            AuthenticationError: If the source rejected the credentials
            MalformedPageError: If the response could not be interpreted
        """
        pass

    def page_count(self, entity_type: EntityType, page_size: int) -> int:
        """Number of pages needed to cover the reported count."""
        total = self.count(entity_type)
        if total <= 0 or page_size <= 0:
            return 0
        return (total + page_size - 1) // page_size

    def close(self) -> None:
        """Release any held resources."""
