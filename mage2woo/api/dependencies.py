"""FastAPI dependencies."""

from functools import lru_cache

from fastapi import Depends

from ..config import Settings
from ..services.migration_service import MigrationService
from ..storage.database import Database


@lru_cache()
def get_settings() -> Settings:
    """Settings from ``MAGE2WOO_*`` environment variables, read once."""
    return Settings.from_env()


@lru_cache()
def get_database() -> Database:
    database = Database(get_settings().database_url)
    database.create_all()
    return database


def get_service(
    settings: Settings = Depends(get_settings),
    database: Database = Depends(get_database),
) -> MigrationService:
    return MigrationService(settings, database)
