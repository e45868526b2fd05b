"""Tests for the Magento connector client."""

from unittest.mock import MagicMock

import pytest
import requests

from mage2woo.errors import (
    AuthenticationError,
    ConfigurationError,
    ConnectivityError,
    MalformedPageError,
)
from mage2woo.extractors.base import HealthStatus, ProbeStatus
from mage2woo.extractors.magento_connector import API_KEY_HEADER, MagentoConnectorClient
from mage2woo.models.job import EntityType

URL = "https://magento.test/connector.php"


def response(status_code=200, body=None, text=None):
    mock = MagicMock()
    mock.status_code = status_code
    if isinstance(body, Exception):
        mock.json.side_effect = body
    else:
        mock.json.return_value = body
    mock.text = text if text is not None else ("" if body is None else "{...}")
    return mock


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return MagentoConnectorClient(URL, api_key="k3y", session=session)


class TestRequests:
    def test_requires_url(self):
        with pytest.raises(ConfigurationError):
            MagentoConnectorClient("")

    def test_fetch_page(self, client, session):
        session.get.return_value = response(body={
            "success": True,
            "products": [{"entity_id": "1"}, {"entity_id": "2"}],
            "total": 42,
            "total_pages": 21,
            "current_page": 3,
            "page_size": 2,
            "media_url": "https://magento.test/media/catalog/product",
        })

        page = client.fetch_page(EntityType.PRODUCTS, 2, 3)

        assert len(page.records) == 2
        assert page.total == 42
        assert page.total_pages == 21
        assert page.media_url == "https://magento.test/media/catalog/product"
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"endpoint": "products", "limit": 2, "page": 3}
        assert kwargs["headers"] == {API_KEY_HEADER: "k3y"}

    def test_non_object_records_are_kept(self, client, session):
        session.get.return_value = response(body={
            "success": True,
            "products": [{"entity_id": "1"}, None, "junk"],
            "total": 3,
        })

        page = client.fetch_page(EntityType.PRODUCTS, 20, 1)

        assert page.records == [{"entity_id": "1"}, None, "junk"]
        assert page.total == 3

    def test_limit_and_page_are_clamped(self, client, session):
        session.get.return_value = response(body={"success": True, "products": []})

        client.fetch_page(EntityType.PRODUCTS, 5000, 0)

        _, kwargs = session.get.call_args
        assert kwargs["params"]["limit"] == 1000
        assert kwargs["params"]["page"] == 1

    def test_key_in_query(self, session):
        client = MagentoConnectorClient(URL, api_key="k3y", key_in_query=True, session=session)
        session.get.return_value = response(body={"success": True, "count": 5})

        assert client.count(EntityType.ORDERS) == 5
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"endpoint": "orders_count", "api_key": "k3y"}
        assert kwargs["headers"] == {}


class TestErrorMapping:
    def test_network_error(self, client, session):
        session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ConnectivityError):
            client.fetch_page(EntityType.PRODUCTS, 20, 1)

    def test_server_error(self, client, session):
        session.get.return_value = response(status_code=503)

        with pytest.raises(ConnectivityError):
            client.count(EntityType.PRODUCTS)

    @pytest.mark.parametrize("status", [401, 403])
    def test_rejected_credentials(self, client, session, status):
        session.get.return_value = response(status_code=status)

        with pytest.raises(AuthenticationError):
            client.fetch_page(EntityType.PRODUCTS, 20, 1)

    def test_auth_message(self, client, session):
        session.get.return_value = response(body={"success": False, "message": "Invalid API key"})

        with pytest.raises(AuthenticationError):
            client.fetch_page(EntityType.PRODUCTS, 20, 1)

    def test_other_failure_is_malformed(self, client, session):
        session.get.return_value = response(body={"success": False, "message": "Collection error"})

        with pytest.raises(MalformedPageError):
            client.fetch_page(EntityType.PRODUCTS, 20, 1)

    def test_invalid_json(self, client, session):
        session.get.return_value = response(body=ValueError("no json"), text="<html>Fatal</html>")

        with pytest.raises(MalformedPageError):
            client.fetch_page(EntityType.PRODUCTS, 20, 1)

    def test_non_list_payload(self, client, session):
        session.get.return_value = response(body={"success": True, "products": "oops"})

        with pytest.raises(MalformedPageError):
            client.fetch_page(EntityType.PRODUCTS, 20, 1)


class TestChecks:
    def test_health_check_has_no_key(self, client, session):
        session.get.return_value = response(body={"success": True, "message": "pong"})

        assert client.health_check() == HealthStatus.OK
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"endpoint": "ping"}
        assert kwargs["headers"] == {}

    def test_health_check_unreachable(self, client, session):
        session.get.side_effect = requests.exceptions.Timeout()

        assert client.health_check() == HealthStatus.UNREACHABLE

    def test_probe_unauthorized(self, client, session):
        session.get.return_value = response(status_code=401)

        assert client.authenticate_probe() == ProbeStatus.UNAUTHORIZED

    def test_probe_without_key(self, session):
        client = MagentoConnectorClient(URL, session=session)

        assert client.authenticate_probe() == ProbeStatus.MISCONFIGURED
        session.get.assert_not_called()

    def test_capability_check(self, client, session):
        session.get.return_value = response(body={"success": True, "magento_version": "2.4.6"})

        assert client.capability_check() == {"magento_version": "2.4.6"}


class TestCategoryListing:
    """Categories come back in one listing and are paged locally."""

    def test_pages_sliced_from_cached_listing(self, client, session):
        session.get.return_value = response(body={"success": True, "categories": [
            {"entity_id": "5", "level": 3, "position": 1},
            {"entity_id": "3", "level": 2, "position": 2},
            {"entity_id": "4", "level": 3, "position": 0},
            {"entity_id": "2", "level": 2, "position": 1},
            {"entity_id": "6", "level": 4, "position": 0},
        ]})

        first = client.fetch_page(EntityType.CATEGORIES, 2, 1)
        second = client.fetch_page(EntityType.CATEGORIES, 2, 2)
        third = client.fetch_page(EntityType.CATEGORIES, 2, 3)
        past_end = client.fetch_page(EntityType.CATEGORIES, 2, 4)

        assert [c["entity_id"] for c in first.records] == ["2", "3"]
        assert [c["entity_id"] for c in second.records] == ["4", "5"]
        assert [c["entity_id"] for c in third.records] == ["6"]
        assert past_end.is_empty
        assert first.total_pages == 3
        assert session.get.call_count == 1
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"endpoint": "categories"}

    def test_listing_with_junk_entries(self, client, session):
        session.get.return_value = response(body={"success": True, "categories": [
            {"entity_id": "3", "level": 2, "position": 1},
            None,
            {"entity_id": "4", "level": "inf", "position": 0},
        ]})

        page = client.fetch_page(EntityType.CATEGORIES, 20, 1)

        assert len(page.records) == 3
        assert None in page.records
