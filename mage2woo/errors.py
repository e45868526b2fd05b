"""Exception hierarchy for the migration engine."""

from typing import Optional


class MigratorError(Exception):
    """Base class for all migration errors."""


class ConfigurationError(MigratorError):
    """Missing or invalid settings or credentials."""


class ConnectivityError(MigratorError):
    """The remote source or target store could not be reached."""


class AuthenticationError(ConfigurationError):
    """The remote source rejected the configured credentials."""


class PreflightError(ConfigurationError):
    """A pre-flight check failed before a job could be created."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"Pre-flight check '{stage}' failed: {message}")
        self.stage = stage
        self.reason = message


class PreflightConnectivityError(PreflightError, ConnectivityError):
    """Pre-flight failed because the source was unreachable."""


class MalformedPageError(MigratorError):
    """A page response could not be interpreted."""


class NormalizationError(MigratorError):
    """A raw record could not be mapped to a normalized entity."""

    def __init__(self, message: str, item: Optional[str] = None):
        super().__init__(message)
        self.item = item


class UpsertError(MigratorError):
    """The target store failed to create or update an entity."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpsertValidationError(UpsertError):
    """The target store rejected the entity data."""


class UpsertTransientError(UpsertError):
    """The target store failed for a reason that may go away on retry."""


class JobConflictError(MigratorError):
    """Another migration job is already active."""


class JobNotFoundError(MigratorError):
    """No job exists with the requested identifier."""
