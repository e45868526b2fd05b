"""Tests for external-ID mappings and the audit log."""

from datetime import datetime, timedelta

import pytest

from mage2woo.models.job import EntityType
from mage2woo.storage.audit_log import MAX_MESSAGE_LENGTH, AuditLog
from mage2woo.storage.mapping_repository import MappingRepository
from mage2woo.storage.tables import AuditLogEntry


class TestMappingRepository:
    def test_save_and_get(self, session):
        mappings = MappingRepository(session)

        mappings.save(EntityType.PRODUCTS, "10", "501")

        assert mappings.get(EntityType.PRODUCTS, "10") == "501"
        assert mappings.get(EntityType.CUSTOMERS, "10") is None

    def test_save_twice_keeps_one_row(self, session):
        mappings = MappingRepository(session)

        mappings.save(EntityType.PRODUCTS, "10", "501")
        mappings.save(EntityType.PRODUCTS, "10", "501")

        assert mappings.count(EntityType.PRODUCTS) == 1

    def test_remap(self, session):
        mappings = MappingRepository(session)
        mappings.save(EntityType.PRODUCTS, "10", "501")

        stored = mappings.save(EntityType.PRODUCTS, "10", "777")

        assert stored == "777"
        assert mappings.all_for(EntityType.PRODUCTS) == {"10": "777"}

    def test_delete(self, session):
        mappings = MappingRepository(session)
        mappings.save(EntityType.ORDERS, "1", "2")

        assert mappings.delete(EntityType.ORDERS, "1") is True
        assert mappings.delete(EntityType.ORDERS, "1") is False


class TestAuditLog:
    def test_log_levels(self, session):
        audit = AuditLog(session, job_id="job-1")
        audit.info("start", "Started")
        audit.success("created", "Created SKU-1", entity_type=EntityType.PRODUCTS, item_id="SKU-1")
        audit.warning("normalize", "Category missing", entity_type=EntityType.PRODUCTS)
        audit.error("migrate", "Rejected", entity_type=EntityType.PRODUCTS, item_id="SKU-2")

        assert audit.counts() == {"info": 1, "success": 1, "warning": 1, "error": 1}
        errors = audit.recent_errors()
        assert errors[0]["item_id"] == "SKU-2"
        assert errors[0]["job_id"] == "job-1"

    def test_unknown_level(self, session):
        with pytest.raises(ValueError):
            AuditLog(session).log("debug", "x", "y")

    def test_message_truncated(self, session):
        entry = AuditLog(session).error("migrate", "x" * 5000)

        assert len(entry.message) == MAX_MESSAGE_LENGTH

    def test_recent_filters(self, session):
        audit = AuditLog(session)
        audit.success("created", "a", entity_type=EntityType.PRODUCTS)
        audit.success("created", "b", entity_type=EntityType.CUSTOMERS)

        customers = audit.recent(entity_type=EntityType.CUSTOMERS)

        assert [e["message"] for e in customers] == ["b"]
        assert [e["message"] for e in audit.recent(limit=1)] == ["b"]

    def test_clear_old_logs(self, session):
        audit = AuditLog(session)
        old = audit.info("start", "old")
        audit.info("start", "new")
        entry = session.get(AuditLogEntry, old.id)
        entry.created_at = datetime.utcnow() - timedelta(days=45)
        session.commit()

        deleted = audit.clear_old_logs(days=30)

        assert deleted == 1
        assert [e["message"] for e in audit.recent()] == ["new"]
