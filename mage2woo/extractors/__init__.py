"""Remote source clients."""

from .base import BaseSourceClient, HealthStatus, ProbeStatus, SourcePage
from .magento_connector import MagentoConnectorClient

__all__ = [
    "BaseSourceClient",
    "HealthStatus",
    "ProbeStatus",
    "SourcePage",
    "MagentoConnectorClient",
]
