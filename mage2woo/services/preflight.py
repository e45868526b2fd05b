"""Pre-flight checks run before a migration job is created."""

import logging
from typing import Any, Dict

from ..errors import (
    AuthenticationError,
    ConnectivityError,
    MigratorError,
    PreflightConnectivityError,
    PreflightError,
)
from ..extractors.base import BaseSourceClient, HealthStatus, ProbeStatus

logger = logging.getLogger(__name__)


def run_preflight(client: BaseSourceClient) -> Dict[str, Any]:
    """
    Verify the source is reachable, accepts our key and can serve data.

    Runs ``health_check``, then ``authenticate_probe``, then the full
    capability check, stopping at the first failure.

    Args:
        client: Source client to check

    Returns:
        Details reported by the capability check

    Raises:
        PreflightError: If any check fails (PreflightConnectivityError when
            the source could not be reached)
    """
    logger.info("Running pre-flight checks...")

    if client.health_check() != HealthStatus.OK:
        raise PreflightConnectivityError(
            "ping", "Connector is not reachable. Check the connector URL and that the script is deployed."
        )

    probe = client.authenticate_probe()
    if probe == ProbeStatus.UNAUTHORIZED:
        raise PreflightError("authenticate", "Connector rejected the API key.")
    if probe != ProbeStatus.OK:
        raise PreflightError("authenticate", "Connector is misconfigured or the API key is missing.")

    try:
        details = client.capability_check()
    except ConnectivityError as e:
        raise PreflightConnectivityError("test", str(e)) from e
    except AuthenticationError as e:
        raise PreflightError("test", str(e)) from e
    except MigratorError as e:
        raise PreflightError("test", f"Connector could not load Magento: {e}") from e

    logger.info("Pre-flight checks passed successfully.")
    return details
