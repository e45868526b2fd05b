"""
Shared test fixtures for mage2woo.

Provides:
- database / session: In-memory SQLite job store with all tables created
- FakeSourceClient: Scripted source serving pages from plain lists
- settings: Settings pointing at the staging target
- client: FastAPI TestClient with the service dependency overridden
"""

from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from mage2woo.api.dependencies import get_service
from mage2woo.api.main import app
from mage2woo.config import Settings
from mage2woo.extractors.base import BaseSourceClient, HealthStatus, ProbeStatus, SourcePage
from mage2woo.loaders.staging_loader import StagingLoader
from mage2woo.models.job import EntityType
from mage2woo.orchestrator import MigrationOrchestrator
from mage2woo.services.migration_service import MigrationService
from mage2woo.storage.audit_log import AuditLog
from mage2woo.storage.database import Database
from mage2woo.storage.job_repository import JobRepository


def make_products(count: int, start: int = 1, **extra) -> List[Dict[str, Any]]:
    return [
        dict({
            "entity_id": str(i),
            "sku": f"SKU-{i}",
            "name": f"Product {i}",
            "price": "10.00",
            "status": 1,
            "visibility": 4,
        }, **extra)
        for i in range(start, start + count)
    ]


class FakeSourceClient(BaseSourceClient):
    """
    Source that serves records from in-memory lists.

    ``counts`` overrides what ``count`` reports, ``failures`` maps a page
    number to the exception that fetching it raises and ``count_error`` is
    raised by ``count``.
    """

    def __init__(
        self,
        records: Optional[Dict[EntityType, List[Any]]] = None,
        counts: Optional[Dict[EntityType, int]] = None,
        failures: Optional[Dict[int, Exception]] = None,
        health: HealthStatus = HealthStatus.OK,
        probe: ProbeStatus = ProbeStatus.OK,
        capability_error: Optional[Exception] = None,
        media_url: Optional[str] = "https://magento.test/media/catalog/product/",
        on_fetch: Optional[Callable[[int], None]] = None,
        count_error: Optional[Exception] = None
    ):
        self.records = records or {}
        self.counts = counts or {}
        self.failures = failures or {}
        self.health = health
        self.probe = probe
        self.capability_error = capability_error
        self.media_url = media_url
        self.on_fetch = on_fetch
        self.count_error = count_error
        self.fetched_pages: List[int] = []
        self.closed = False

    def health_check(self) -> HealthStatus:
        return self.health

    def authenticate_probe(self) -> ProbeStatus:
        return self.probe

    def capability_check(self) -> Dict[str, Any]:
        if self.capability_error:
            raise self.capability_error
        return {"magento_version": "2.4.6"}

    def count(self, entity_type: EntityType) -> int:
        if self.count_error:
            raise self.count_error
        if entity_type in self.counts:
            return self.counts[entity_type]
        return len(self.records.get(entity_type, []))

    def fetch_page(self, entity_type: EntityType, page_size: int, page_number: int) -> SourcePage:
        self.fetched_pages.append(page_number)
        if self.on_fetch:
            self.on_fetch(page_number)
        if page_number in self.failures:
            raise self.failures[page_number]

        records = self.records.get(entity_type, [])
        start = (page_number - 1) * page_size
        return SourcePage(
            entity_type=entity_type,
            page_number=page_number,
            records=records[start:start + page_size],
            total=len(records),
            page_size=page_size,
            media_url=self.media_url,
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def database():
    """In-memory SQLite for unit tests."""
    db = Database("sqlite:///:memory:")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    db = database.new_session()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def settings():
    return Settings(
        connector_url="https://magento.test/connector.php",
        connector_api_key="secret-key",
        target="staging",
        database_url="sqlite:///:memory:",
    )


@pytest.fixture
def jobs(session):
    return JobRepository(session)


@pytest.fixture
def loader(session):
    return StagingLoader(session)


@pytest.fixture
def run_job(session, settings, loader):
    """Create and run a job against a fake source, returning the finished job."""

    def _run(source, entity_type=EntityType.PRODUCTS, scope=None, start_page=None, on_progress=None):
        jobs = JobRepository(session)
        job = jobs.create(entity_type, scope=scope, start_page=start_page or scope or 1)
        orchestrator = MigrationOrchestrator(
            source=source,
            loader=loader,
            jobs=jobs,
            audit=AuditLog(session),
            settings=settings,
            on_progress=on_progress,
        )
        return orchestrator.run(job.id)

    return _run


@pytest.fixture
def fake_source():
    return FakeSourceClient(records={EntityType.PRODUCTS: make_products(25)})


@pytest.fixture
def service(settings, database, fake_source):
    return MigrationService(
        settings,
        database,
        source_factory=lambda s: fake_source,
        loader_factory=lambda s, db: StagingLoader(db),
    )


@pytest.fixture
def client(service):
    """FastAPI TestClient backed by the in-memory service."""
    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
