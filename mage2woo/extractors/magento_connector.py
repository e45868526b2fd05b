"""Client for the connector endpoint deployed on the Magento server."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseSourceClient, HealthStatus, ProbeStatus, SourcePage
from ..config import Settings
from ..errors import (
    AuthenticationError,
    ConfigurationError,
    ConnectivityError,
    MalformedPageError,
)
from ..models.job import EntityType

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Magento-Connector-Key"
MAX_LIMIT = 1000

AUTH_MESSAGE_HINTS = ("api key", "unauthorized", "authentication", "forbidden")


class MagentoConnectorClient(BaseSourceClient):
    """
    Source client speaking the connector's query-string protocol.

    Every call is a GET to the connector URL with an ``endpoint`` parameter:
    ``ping`` (no key), ``test_debug``, ``test``, ``<type>`` pages and
    ``<type>_count``. The category endpoint is not paginated on the server,
    so category pages are sliced locally from one cached listing.
    """

    UNPAGINATED = (EntityType.CATEGORIES,)

    def __init__(
        self,
        connector_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        key_in_query: bool = False,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the connector client.

        Args:
            connector_url: Full URL of the connector script
            api_key: Connector API key
            timeout: Request timeout in seconds
            max_retries: Retries for 429 and 5xx responses
            backoff_factor: Retry backoff factor
            key_in_query: Send the key as ``api_key`` query parameter
            verify_ssl: Verify TLS certificates
            session: Custom requests session
        """
        if not connector_url:
            raise ConfigurationError("Connector URL is required")
        self.connector_url = connector_url
        self.api_key = api_key
        self.timeout = timeout
        self.key_in_query = key_in_query
        self.verify_ssl = verify_ssl
        self._max_retries = max_retries
        self._backoff_factor = backoff_factor
        self._session = session or self._create_session()
        self._listing_cache: Dict[EntityType, List[Any]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "MagentoConnectorClient":
        return cls(
            connector_url=settings.connector_url,
            api_key=settings.connector_api_key,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            backoff_factor=settings.backoff_factor,
            key_in_query=settings.key_in_query,
            verify_ssl=settings.verify_ssl,
        )

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retries = Retry(
            total=self._max_retries,
            backoff_factor=self._backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers["Accept"] = "application/json"

        return session

    def _request(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        authenticated: bool = True
    ) -> Dict[str, Any]:
        """
        Call one connector endpoint and return the decoded JSON body.

        Raises:
            ConnectivityError: On network failures and timeouts
            AuthenticationError: On 401/403 responses
            MalformedPageError: On undecodable or non-object bodies
        """
        query = {"endpoint": endpoint}
        query.update(params or {})
        headers = {}
        if authenticated and self.api_key:
            if self.key_in_query:
                query["api_key"] = self.api_key
            else:
                headers[API_KEY_HEADER] = self.api_key

        try:
            response = self._session.get(
                self.connector_url,
                params=query,
                headers=headers,
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
        except requests.exceptions.RequestException as e:
            raise ConnectivityError(f"Connector request '{endpoint}' failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Connector rejected credentials for '{endpoint}' (HTTP {response.status_code})"
            )
        if response.status_code >= 500:
            raise ConnectivityError(
                f"Connector returned HTTP {response.status_code} for '{endpoint}'"
            )

        try:
            data = response.json()
        except ValueError as e:
            snippet = response.text[:200] if response.text else ""
            raise MalformedPageError(
                f"Invalid JSON from connector endpoint '{endpoint}': {snippet!r}"
            ) from e

        if not isinstance(data, dict):
            raise MalformedPageError(f"Unexpected response shape from '{endpoint}'")

        return data

    def _require_success(self, endpoint: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if data.get("success"):
            return data
        message = str(data.get("message") or "Unknown connector error")
        if any(hint in message.lower() for hint in AUTH_MESSAGE_HINTS):
            raise AuthenticationError(message)
        raise MalformedPageError(f"Connector endpoint '{endpoint}' failed: {message}")

    def health_check(self) -> HealthStatus:
        """Ping the connector without credentials."""
        try:
            data = self._request("ping", authenticated=False)
        except (ConnectivityError, AuthenticationError, MalformedPageError) as e:
            logger.warning(f"Connector ping failed: {e}")
            return HealthStatus.UNREACHABLE
        return HealthStatus.OK if data.get("success") else HealthStatus.UNREACHABLE

    def authenticate_probe(self) -> ProbeStatus:
        """Call test_debug, which checks the key without loading Magento."""
        if not self.api_key:
            return ProbeStatus.MISCONFIGURED
        try:
            data = self._request("test_debug")
        except AuthenticationError as e:
            logger.warning(f"Connector authentication failed: {e}")
            return ProbeStatus.UNAUTHORIZED
        except MalformedPageError as e:
            logger.warning(f"Connector auth probe returned garbage: {e}")
            return ProbeStatus.MISCONFIGURED

        if data.get("success"):
            return ProbeStatus.OK
        message = str(data.get("message") or "").lower()
        if any(hint in message for hint in AUTH_MESSAGE_HINTS):
            return ProbeStatus.UNAUTHORIZED
        return ProbeStatus.MISCONFIGURED

    def capability_check(self) -> Dict[str, Any]:
        """Call the full test endpoint, which boots Magento."""
        data = self._require_success("test", self._request("test"))
        logger.info(
            f"Connector reachable: Magento {data.get('magento_version', 'unknown')}"
        )
        return {k: v for k, v in data.items() if k != "success"}

    def count(self, entity_type: EntityType) -> int:
        """Return the count reported by <type>_count."""
        endpoint = f"{entity_type.value}_count"
        data = self._require_success(endpoint, self._request(endpoint))
        try:
            return max(0, int(data.get("count", data.get("total", 0)) or 0))
        except (TypeError, ValueError):
            raise MalformedPageError(f"Invalid count from '{endpoint}': {data.get('count')!r}")

    def fetch_page(
        self,
        entity_type: EntityType,
        page_size: int,
        page_number: int
    ) -> SourcePage:
        """Fetch one page of raw records."""
        limit = max(1, min(MAX_LIMIT, int(page_size)))
        page = max(1, int(page_number))

        if entity_type in self.UNPAGINATED:
            return self._slice_listing(entity_type, limit, page)

        endpoint = entity_type.value
        data = self._require_success(
            endpoint, self._request(endpoint, {"limit": limit, "page": page})
        )
        records = self._extract_records(entity_type, data)

        return SourcePage(
            entity_type=entity_type,
            page_number=page,
            records=records,
            total=self._int_field(data, "total", len(records)),
            total_pages=self._int_field(data, "total_pages", None),
            page_size=self._int_field(data, "page_size", limit),
            media_url=data.get("media_url") or None,
        )

    def _slice_listing(self, entity_type: EntityType, limit: int, page: int) -> SourcePage:
        """Serve a page out of a listing the connector returns in one piece."""
        listing = self._listing_cache.get(entity_type)
        if listing is None:
            endpoint = entity_type.value
            data = self._require_success(endpoint, self._request(endpoint))
            listing = self._extract_records(entity_type, data)
            if entity_type == EntityType.CATEGORIES:
                # Parents before children
                listing.sort(key=self._tree_order)
            self._listing_cache[entity_type] = listing
            logger.info(f"Fetched {len(listing)} {entity_type.value} in one listing")

        start = (page - 1) * limit
        total = len(listing)
        return SourcePage(
            entity_type=entity_type,
            page_number=page,
            records=listing[start:start + limit],
            total=total,
            total_pages=(total + limit - 1) // limit if total else 0,
            page_size=limit,
        )

    def _extract_records(self, entity_type: EntityType, data: Dict[str, Any]) -> List[Any]:
        """Records of a page as sent; non-object entries are left for the caller to reject."""
        items = data.get(entity_type.value)
        if items is None:
            items = data.get("items", data.get("data"))
        if items is None:
            raise MalformedPageError(f"Response has no '{entity_type.value}' array")
        if isinstance(items, dict):
            items = list(items.values())
        if not isinstance(items, list):
            raise MalformedPageError(f"'{entity_type.value}' is not a list")
        return items

    @staticmethod
    def _int_value(value: Any) -> int:
        try:
            return int(value)
        except (TypeError, ValueError, OverflowError):
            return 0

    @classmethod
    def _tree_order(cls, record: Any) -> Tuple[int, int]:
        if not isinstance(record, dict):
            return (0, 0)
        return (cls._int_value(record.get("level")), cls._int_value(record.get("position")))

    @staticmethod
    def _int_field(data: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
        value = data.get(key)
        if value is None or value == "":
            return default
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return default

    def invalidate_cache(self) -> None:
        self._listing_cache.clear()

    def close(self) -> None:
        self._session.close()
