"""Tests for the staging loader."""

import pytest

from mage2woo.errors import UpsertValidationError
from mage2woo.models.entities import NormalizedCategory, NormalizedCustomer, NormalizedProduct
from mage2woo.models.job import EntityType
from mage2woo.storage.mapping_repository import MappingRepository


def product(external_id="1", sku="SKU-1", name="Product 1"):
    return NormalizedProduct(external_id=external_id, sku=sku, name=name, slug=name.lower())


def test_create_then_update(loader):
    first = loader.upsert(EntityType.PRODUCTS, product())
    second = loader.upsert(EntityType.PRODUCTS, product(name="Renamed"), first.local_id)

    assert first.created is True
    assert second.created is False
    assert second.local_id == first.local_id
    assert loader.get_payload(EntityType.PRODUCTS, first.local_id)["name"] == "Renamed"
    assert loader.count_staged(EntityType.PRODUCTS) == 1


def test_customer_matched_by_email(loader):
    original = loader.upsert(
        EntityType.CUSTOMERS, NormalizedCustomer(external_id="7", email="Jane@Example.com")
    )

    # Same person under a new source id
    again = loader.upsert(EntityType.CUSTOMERS, NormalizedCustomer(external_id="70", email="jane@example.com"))

    assert again.local_id == original.local_id
    assert again.created is False
    assert loader.find_local_id(EntityType.CUSTOMERS, "70") == original.local_id


def test_stale_mapping_is_recreated(loader):
    result = loader.upsert(EntityType.PRODUCTS, product(), local_id="999")

    assert result.created is True
    assert result.local_id != "999"
    assert loader.find_local_id(EntityType.PRODUCTS, "1") == result.local_id


def test_categories_have_no_natural_key(loader):
    loader.upsert(EntityType.CATEGORIES, NormalizedCategory(external_id="3", name="Shoes", slug="shoes"))
    loader.upsert(EntityType.CATEGORIES, NormalizedCategory(external_id="4", name="Shoes", slug="shoes"))

    assert loader.count_staged(EntityType.CATEGORIES) == 2


def test_category_found_by_source_id_when_mapping_lost(loader, session):
    category = NormalizedCategory(external_id="3", name="Shoes", slug="shoes")
    first = loader.upsert(EntityType.CATEGORIES, category)
    MappingRepository(session).delete(EntityType.CATEGORIES, "3")

    again = loader.upsert(EntityType.CATEGORIES, category)

    assert again.created is False
    assert again.local_id == first.local_id
    assert loader.count_staged(EntityType.CATEGORIES) == 1
    assert loader.find_local_id(EntityType.CATEGORIES, "3") == first.local_id


def test_missing_external_id(loader):
    with pytest.raises(UpsertValidationError):
        loader.upsert(EntityType.PRODUCTS, product(external_id=""))
