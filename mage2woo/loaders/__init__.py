"""Target store loaders."""

from .base import BaseLoader, TargetRecordMissing, UpsertResult
from .staging_loader import StagingLoader
from .woocommerce_loader import WooCommerceLoader

__all__ = [
    "BaseLoader",
    "TargetRecordMissing",
    "UpsertResult",
    "StagingLoader",
    "WooCommerceLoader",
]
