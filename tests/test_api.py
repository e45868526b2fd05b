"""Tests for the REST API endpoints."""

from mage2woo.extractors.base import HealthStatus, ProbeStatus
from mage2woo.models.job import EntityType
from mage2woo.storage.job_repository import JobRepository


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestStart:
    def test_start_runs_in_background(self, client):
        response = client.post("/api/migrations/start", json={"entity_type": "products"})

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "pending"

        # TestClient runs background tasks before returning
        job = client.get("/api/migrations/progress").json()["job"]
        assert job["id"] == body["job_id"]
        assert job["status"] == "completed"
        assert job["processed"] == 25
        assert job["successful"] == 25
        assert job["percentage"] == 100
        assert job["outcomes"] == {"created": 25, "updated": 0}

    def test_scope_runs_one_page(self, client, fake_source):
        client.post("/api/migrations/start", json={"entity_type": "products", "scope": 2})

        job = client.get("/api/migrations/progress").json()["job"]
        assert job["scope"] == 2
        assert job["total"] == 5
        assert job["processed"] == 5
        assert fake_source.fetched_pages == [2]

    def test_conflict(self, client, database):
        JobRepository(database.new_session()).create(EntityType.CUSTOMERS)

        response = client.post("/api/migrations/start", json={"entity_type": "products"})

        assert response.status_code == 409

    def test_unreachable_source(self, client, fake_source):
        fake_source.health = HealthStatus.UNREACHABLE

        response = client.post("/api/migrations/start", json={"entity_type": "products"})

        assert response.status_code == 502
        assert client.get("/api/migrations/progress").json() == {"job": None}

    def test_rejected_credentials(self, client, fake_source):
        fake_source.probe = ProbeStatus.UNAUTHORIZED

        response = client.post("/api/migrations/start", json={"entity_type": "products"})

        assert response.status_code == 400

    def test_scope_and_resume_conflict(self, client):
        response = client.post(
            "/api/migrations/start",
            json={"entity_type": "products", "scope": 1, "resume": True},
        )

        assert response.status_code == 400

    def test_invalid_request(self, client):
        assert client.post("/api/migrations/start", json={"entity_type": "invoices"}).status_code == 422
        assert client.post(
            "/api/migrations/start", json={"entity_type": "products", "scope": 0}
        ).status_code == 422


class TestProgressAndCancel:
    def test_no_job(self, client):
        assert client.get("/api/migrations/progress").json() == {"job": None}

    def test_cancel_without_job(self, client):
        assert client.post("/api/migrations/cancel").json() == {"cancelled": False}

    def test_cancel_pending_job(self, client, database):
        JobRepository(database.new_session()).create(EntityType.ORDERS)

        assert client.post("/api/migrations/cancel").json() == {"cancelled": True}
        job = client.get("/api/migrations/progress").json()["job"]
        assert job["status"] == "cancelled"


class TestReporting:
    def test_stats(self, client):
        client.post("/api/migrations/start", json={"entity_type": "products"})

        stats = client.get("/api/migrations/stats").json()

        assert stats["products"] == {"migrated_count_local": 25, "total_count_remote": 25}
        assert stats["orders"] == {"migrated_count_local": 0, "total_count_remote": 0}

    def test_page_count(self, client):
        response = client.get("/api/migrations/pages/products")

        assert response.json() == {
            "entity_type": "products",
            "total": 25,
            "page_size": 20,
            "pages": 2,
        }

    def test_logs(self, client):
        client.post("/api/migrations/start", json={"entity_type": "products"})

        body = client.get("/api/migrations/logs", params={"level": "success"}).json()

        assert body["total"] > 0
        assert all(entry["level"] == "success" for entry in body["logs"])

    def test_unknown_log_level(self, client):
        assert client.get("/api/migrations/logs", params={"level": "trace"}).status_code == 400

    def test_log_summary(self, client):
        client.post("/api/migrations/start", json={"entity_type": "products"})

        summary = client.get("/api/migrations/logs/summary").json()

        assert summary["counts"]["error"] == 0
        assert summary["counts"]["info"] >= 1
        assert summary["recent_errors"] == []

    def test_clear_logs_keeps_recent_entries(self, client):
        client.post("/api/migrations/start", json={"entity_type": "products"})

        response = client.delete("/api/migrations/logs", params={"days": 30})

        assert response.json() == {"deleted": 0, "days": 30}
        assert client.get("/api/migrations/logs").json()["total"] > 0
