"""Data models for the migration engine."""

from .job import (
    EntityType,
    JobStatus,
    JobEvent,
    MigrationJob,
)
from .raw import (
    RawMediaEntry,
    RawProduct,
    RawCategory,
    RawAddress,
    RawCustomer,
    RawOrderItem,
    RawOrder,
)
from .entities import (
    MediaReference,
    NormalizedProduct,
    NormalizedCategory,
    AddressSnapshot,
    NormalizedCustomer,
    OrderLine,
    NormalizedOrder,
    NormalizedEntity,
)

__all__ = [
    "EntityType",
    "JobStatus",
    "JobEvent",
    "MigrationJob",
    "RawMediaEntry",
    "RawProduct",
    "RawCategory",
    "RawAddress",
    "RawCustomer",
    "RawOrderItem",
    "RawOrder",
    "MediaReference",
    "NormalizedProduct",
    "NormalizedCategory",
    "AddressSnapshot",
    "NormalizedCustomer",
    "OrderLine",
    "NormalizedOrder",
    "NormalizedEntity",
]
