"""Loader for the WooCommerce REST API (v3)."""

import time
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseLoader, TargetRecordMissing
from ..config import Settings
from ..errors import ConfigurationError, UpsertTransientError, UpsertValidationError
from ..models.entities import (
    AddressSnapshot,
    NormalizedCategory,
    NormalizedCustomer,
    NormalizedEntity,
    NormalizedOrder,
    NormalizedProduct,
    OrderLine,
)
from ..models.job import EntityType
from ..services.text import username_candidates
from ..storage.mapping_repository import MappingRepository

logger = logging.getLogger(__name__)

API_PREFIX = "/wp-json/wc/v3"

ENDPOINTS = {
    EntityType.PRODUCTS: "products",
    EntityType.CATEGORIES: "products/categories",
    EntityType.CUSTOMERS: "customers",
    EntityType.ORDERS: "orders",
}

PRODUCT_TYPES = {
    "configurable": "variable",
    "grouped": "grouped",
    "bundle": "grouped",
}

PAID_STATUSES = ("processing", "completed")

USERNAME_TAKEN = "registration-error-username-exists"
EMAIL_TAKEN = "registration-error-email-exists"
TERM_EXISTS = "term_exists"


def _money(value: Optional[Decimal]) -> str:
    if value is None:
        return ""
    return str(value.quantize(Decimal("0.01")))


def _address(snapshot: Optional[AddressSnapshot], with_contact: bool = True) -> Dict[str, str]:
    if snapshot is None:
        return {}
    data = {
        "first_name": snapshot.first_name,
        "last_name": snapshot.last_name,
        "company": snapshot.company,
        "address_1": snapshot.address_1,
        "address_2": snapshot.address_2,
        "city": snapshot.city,
        "state": snapshot.state,
        "postcode": snapshot.postcode,
        "country": snapshot.country,
    }
    if with_contact:
        data["email"] = snapshot.email
        data["phone"] = snapshot.phone
    return data


def _meta(**values: Any) -> List[Dict[str, Any]]:
    return [
        {"key": key, "value": value}
        for key, value in values.items()
        if value not in (None, "")
    ]


class WooCommerceLoader(BaseLoader):
    """
    Upserts normalized entities through the WooCommerce REST API.

    Products are matched by SKU, customers by email and categories by slug
    under the same parent when no mapping exists yet. Every record carries
    its Magento id in ``meta_data``.
    """

    def __init__(
        self,
        mappings: MappingRepository,
        base_url: str,
        consumer_key: Optional[str],
        consumer_secret: Optional[str],
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        verify_ssl: bool = True,
        rate_limit: float = 0.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the WooCommerce loader.

        Args:
            mappings: Repository holding external-ID mappings
            base_url: Store URL, without the REST prefix
            consumer_key: REST API consumer key
            consumer_secret: REST API consumer secret
            timeout: Request timeout in seconds
            max_retries: Retries for 429 and 5xx responses
            backoff_factor: Retry backoff factor
            verify_ssl: Verify TLS certificates
            rate_limit: Max requests per second, 0 for no limit
            session: Custom requests session
        """
        super().__init__(mappings)
        if not base_url:
            raise ConfigurationError("WooCommerce URL is required")
        self.base_url = base_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.rate_limit = rate_limit
        self._max_retries = max_retries
        self._backoff_factor = backoff_factor
        self._last_request_time = 0.0
        self._session = session or self._create_session()
        self._category_names: Dict[str, int] = {}

    @classmethod
    def from_settings(cls, settings: Settings, mappings: MappingRepository) -> "WooCommerceLoader":
        return cls(
            mappings=mappings,
            base_url=settings.wc_url,
            consumer_key=settings.wc_consumer_key,
            consumer_secret=settings.wc_consumer_secret,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            backoff_factor=settings.backoff_factor,
            verify_ssl=settings.verify_ssl,
        )

    def _create_session(self) -> requests.Session:
        """Create a requests session with authentication and retry logic."""
        session = requests.Session()

        retries = Retry(
            total=self._max_retries,
            backoff_factor=self._backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "PUT"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        if self.consumer_key and self.consumer_secret:
            session.auth = (self.consumer_key, self.consumer_secret)
        session.headers["Content-Type"] = "application/json"
        session.headers["Accept"] = "application/json"

        return session

    def _rate_limit_wait(self):
        """Wait to respect rate limits."""
        if self.rate_limit > 0:
            elapsed = time.time() - self._last_request_time
            wait_time = (1.0 / self.rate_limit) - elapsed
            if wait_time > 0:
                time.sleep(wait_time)
        self._last_request_time = time.time()

    def _url(self, entity_type: EntityType, local_id: Optional[str] = None) -> str:
        url = f"{self.base_url}{API_PREFIX}/{ENDPOINTS[entity_type]}"
        if local_id is not None:
            url = f"{url}/{local_id}"
        return url

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        self._rate_limit_wait()
        try:
            return self._session.request(
                method, url, timeout=self.timeout, verify=self.verify_ssl, **kwargs
            )
        except requests.exceptions.RequestException as e:
            raise UpsertTransientError(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _error_body(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _check(self, response: requests.Response) -> Any:
        """
        Decode a response or raise the matching upsert error.

        Raises:
            TargetRecordMissing: On 404
            UpsertValidationError: On other 4xx responses
            UpsertTransientError: On 429 and 5xx responses
        """
        if response.status_code < 400:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                raise UpsertTransientError(
                    f"Undecodable WooCommerce response ({response.status_code})"
                ) from e

        body = self._error_body(response)
        message = body.get("message") or response.reason or "request failed"
        code = body.get("code")
        detail = f"WooCommerce {response.status_code}: {message}"
        if code:
            detail = f"{detail} ({code})"

        if response.status_code == 404:
            raise TargetRecordMissing(detail, status_code=404)
        if response.status_code == 429 or response.status_code >= 500:
            raise UpsertTransientError(detail, status_code=response.status_code)
        raise UpsertValidationError(detail, status_code=response.status_code)

    # Natural-key lookup

    def find_by_natural_key(self, entity_type: EntityType, entity: NormalizedEntity) -> Optional[str]:
        if entity_type == EntityType.PRODUCTS and entity.sku:
            return self._first_id(entity_type, {"sku": entity.sku})
        if entity_type == EntityType.CUSTOMERS and entity.email:
            return self._first_id(entity_type, {"email": entity.email, "role": "all"})
        if entity_type == EntityType.CATEGORIES and entity.slug:
            parent = int(entity.parent_local_id) if entity.parent_local_id else 0
            return self._first_id(
                entity_type,
                {"slug": entity.slug},
                lambda row: int(row.get("parent") or 0) == parent,
            )
        return None

    def _first_id(self, entity_type: EntityType, params: Dict[str, Any], predicate=None) -> Optional[str]:
        response = self._send("GET", self._url(entity_type), params=params)
        if response.status_code == 404:
            return None
        rows = self._check(response)
        if not isinstance(rows, list):
            return None
        for row in rows:
            if predicate is None or predicate(row):
                return str(row["id"])
        return None

    # Create / update

    def create_record(self, entity_type: EntityType, entity: NormalizedEntity) -> str:
        if entity_type == EntityType.CUSTOMERS:
            return self._create_customer(entity)

        payload = self._payload(entity_type, entity, creating=True)
        response = self._send("POST", self._url(entity_type), json=payload)

        if entity_type == EntityType.CATEGORIES and response.status_code == 400:
            body = self._error_body(response)
            existing = (body.get("data") or {}).get("resource_id")
            if body.get("code") == TERM_EXISTS and existing:
                logger.info(f"Category {entity.label} already exists as {existing}")
                self.update_record(entity_type, entity, str(existing))
                return str(existing)

        data = self._check(response)
        logger.debug(f"Created {entity_type.value} {entity.label} as {data.get('id')}")
        return str(data["id"])

    def update_record(self, entity_type: EntityType, entity: NormalizedEntity, local_id: str) -> None:
        payload = self._payload(entity_type, entity, creating=False)
        response = self._send("PUT", self._url(entity_type, local_id), json=payload)
        self._check(response)
        logger.debug(f"Updated {entity_type.value} {entity.label} ({local_id})")

    def _create_customer(self, customer: NormalizedCustomer) -> str:
        payload = self._customer_payload(customer)
        url = self._url(EntityType.CUSTOMERS)

        candidates = username_candidates(
            customer.email, customer.first_name, customer.last_name, customer.external_id
        )
        if customer.username:
            candidates = iter([customer.username] + [c for c in candidates if c != customer.username])

        last_error = None
        for username in candidates:
            response = self._send("POST", url, json=dict(payload, username=username))
            code = self._error_body(response).get("code") if response.status_code == 400 else None

            if code == USERNAME_TAKEN:
                logger.debug(f"Username {username} taken, trying next")
                last_error = response
                continue
            if code == EMAIL_TAKEN:
                existing = self._first_id(
                    EntityType.CUSTOMERS, {"email": customer.email, "role": "all"}
                )
                if existing:
                    self.update_record(EntityType.CUSTOMERS, customer, existing)
                    return existing

            data = self._check(response)
            return str(data["id"])

        if last_error is not None:
            self._check(last_error)
        raise UpsertValidationError(f"No free username for {customer.email}")

    # Payloads

    def _payload(self, entity_type: EntityType, entity: NormalizedEntity, creating: bool) -> Dict[str, Any]:
        if entity_type == EntityType.PRODUCTS:
            return self._product_payload(entity)
        if entity_type == EntityType.CATEGORIES:
            return self._category_payload(entity)
        if entity_type == EntityType.CUSTOMERS:
            return self._customer_payload(entity)
        return self._order_payload(entity, creating)

    def _product_payload(self, product: NormalizedProduct) -> Dict[str, Any]:
        categories = [{"id": int(local_id)} for local_id in product.category_local_ids]
        if not categories and product.category_names:
            categories = [{"id": cid} for cid in self._category_ids_by_name(product.category_names)]

        payload = {
            "name": product.name,
            "slug": product.slug,
            "type": PRODUCT_TYPES.get(product.type, "simple"),
            "status": "publish" if product.enabled else "draft",
            "catalog_visibility": product.visibility,
            "description": product.description,
            "short_description": product.short_description,
            "sku": product.sku,
            "regular_price": _money(product.price),
            "sale_price": _money(product.special_price),
            "date_on_sale_from": product.special_from.isoformat() if product.special_from else None,
            "date_on_sale_to": product.special_to.isoformat() if product.special_to else None,
            "weight": str(product.weight) if product.weight else "",
            "manage_stock": product.manage_stock,
            "stock_status": "instock" if product.in_stock else "outofstock",
            "virtual": product.type == "virtual",
            "downloadable": product.type == "downloadable",
            "categories": categories,
            "images": [
                {"src": media.url, "name": media.label, "alt": media.label, "position": media.position}
                for media in product.media
                if media.url
            ],
            "meta_data": _meta(
                _magento_product_id=product.external_id,
                _magento_product_type=product.type,
                **{f"_magento_{key}": value for key, value in product.meta.items()}
            ),
        }
        if product.manage_stock:
            payload["stock_quantity"] = int(product.stock_quantity)
        return payload

    def _category_ids_by_name(self, names: List[str]) -> List[int]:
        """Resolve category names to term ids, creating missing terms."""
        ids = []
        for name in names:
            if name in self._category_names:
                ids.append(self._category_names[name])
                continue

            response = self._send("GET", self._url(EntityType.CATEGORIES), params={"search": name})
            rows = self._check(response)
            if not isinstance(rows, list):
                rows = []
            match = next((row for row in rows if row.get("name") == name), None)
            if match is None:
                response = self._send("POST", self._url(EntityType.CATEGORIES), json={"name": name})
                match = self._check(response)
                logger.info(f"Created category {name} ({match.get('id')}) from product data")

            self._category_names[name] = int(match["id"])
            ids.append(self._category_names[name])
        return ids

    def _category_payload(self, category: NormalizedCategory) -> Dict[str, Any]:
        return {
            "name": category.name,
            "slug": category.slug,
            "parent": int(category.parent_local_id) if category.parent_local_id else 0,
            "description": category.description,
            "menu_order": category.position,
        }

    def _customer_payload(self, customer: NormalizedCustomer) -> Dict[str, Any]:
        stats = {f"_magento_{key}": value for key, value in customer.stats.items()}
        return {
            "email": customer.email,
            "first_name": customer.first_name,
            "last_name": customer.last_name,
            "billing": _address(customer.billing),
            "shipping": _address(customer.shipping, with_contact=False),
            "meta_data": _meta(
                _magento_customer_id=customer.external_id,
                _magento_group_id=customer.group_id,
                _magento_created_at=customer.created_at.isoformat() if customer.created_at else None,
                **stats
            ),
        }

    def _order_payload(self, order: NormalizedOrder, creating: bool) -> Dict[str, Any]:
        payload = {
            "status": order.status,
            "billing": _address(order.billing),
            "shipping": _address(order.shipping, with_contact=False),
            "customer_note": order.customer_note,
            "meta_data": _meta(
                _magento_order_id=order.external_id,
                _magento_increment_id=order.increment_id,
                _magento_state=order.source_state,
                _magento_status=order.source_status,
                _magento_created_at=order.created_at.isoformat() if order.created_at else None,
                _magento_grand_total=_money(order.grand_total),
            ),
        }
        if not creating:
            return payload

        # Line items, shipping and fees are only sent once; PUT would append them.
        payload.update({
            "currency": order.currency,
            "customer_id": int(order.customer_local_id) if order.customer_local_id else 0,
            "payment_method": order.payment_method,
            "payment_method_title": order.payment_title,
            "set_paid": order.status in PAID_STATUSES,
            "line_items": [self._line_item(line) for line in order.lines],
        })
        if order.shipping_description or order.shipping_total:
            payload["shipping_lines"] = [{
                "method_id": "magento",
                "method_title": order.shipping_description or "Shipping",
                "total": _money(order.shipping_total),
            }]
        if order.discount_total:
            payload["fee_lines"] = [{
                "name": "Discount",
                "total": _money(-order.discount_total),
            }]
        return payload

    @staticmethod
    def _line_item(line: OrderLine) -> Dict[str, Any]:
        item = {
            "name": line.name,
            "quantity": int(line.quantity),
            "subtotal": _money(line.total),
            "total": _money(line.total),
            "meta_data": _meta(_magento_sku=line.sku),
        }
        if line.product_local_id:
            item["product_id"] = int(line.product_local_id)
        return item

    # Housekeeping

    def count_remote(self, entity_type: EntityType) -> Optional[int]:
        """Total records of a type in the store, from the X-WP-Total header."""
        response = self._send("GET", self._url(entity_type), params={"per_page": 1})
        self._check(response)
        total = response.headers.get("X-WP-Total")
        return int(total) if total is not None else None

    def validate_connection(self) -> bool:
        """Validate the connection to the WooCommerce API."""
        try:
            response = self._send("GET", self._url(EntityType.PRODUCTS), params={"per_page": 1})
        except UpsertTransientError as e:
            logger.error(f"WooCommerce connection failed: {e}")
            return False
        if response.status_code >= 400:
            logger.error(f"WooCommerce connection failed with status {response.status_code}")
            return False
        return True

    def close(self) -> None:
        self._session.close()
