"""Normalized target entities handed to the target store."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .job import EntityType


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _date(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class MediaReference:
    """One product image, unique by path within its product."""
    path: str
    label: str = ""
    position: int = 0
    disabled: bool = False
    url: Optional[str] = None
    source: str = "gallery"  # gallery, image, small_image, thumbnail

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "label": self.label,
            "position": self.position,
            "disabled": self.disabled,
            "url": self.url,
            "source": self.source,
        }


@dataclass
class NormalizedProduct:
    external_id: str
    sku: str
    name: str
    slug: str
    type: str = "simple"
    description: str = ""
    short_description: str = ""
    price: Decimal = Decimal("0")
    special_price: Optional[Decimal] = None
    special_from: Optional[datetime] = None
    special_to: Optional[datetime] = None
    weight: Decimal = Decimal("0")
    stock_quantity: Decimal = Decimal("0")
    in_stock: bool = True
    manage_stock: bool = False
    enabled: bool = True
    visibility: str = "visible"
    meta: Dict[str, str] = field(default_factory=dict)
    category_external_ids: List[str] = field(default_factory=list)
    category_local_ids: List[str] = field(default_factory=list)
    category_names: List[str] = field(default_factory=list)
    media: List[MediaReference] = field(default_factory=list)

    entity_type = EntityType.PRODUCTS

    @property
    def label(self) -> str:
        return self.sku or self.external_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "sku": self.sku,
            "name": self.name,
            "slug": self.slug,
            "type": self.type,
            "description": self.description,
            "short_description": self.short_description,
            "price": _money(self.price),
            "special_price": _money(self.special_price),
            "special_from": _date(self.special_from),
            "special_to": _date(self.special_to),
            "weight": _money(self.weight),
            "stock_quantity": _money(self.stock_quantity),
            "in_stock": self.in_stock,
            "manage_stock": self.manage_stock,
            "enabled": self.enabled,
            "visibility": self.visibility,
            "meta": self.meta,
            "category_external_ids": self.category_external_ids,
            "category_local_ids": self.category_local_ids,
            "category_names": self.category_names,
            "media": [m.to_dict() for m in self.media],
        }


@dataclass
class NormalizedCategory:
    external_id: str
    name: str
    slug: str
    description: str = ""
    parent_external_id: Optional[str] = None
    parent_local_id: Optional[str] = None
    is_active: bool = True
    include_in_menu: bool = True
    level: int = 0
    position: int = 0
    meta: Dict[str, str] = field(default_factory=dict)

    entity_type = EntityType.CATEGORIES

    @property
    def label(self) -> str:
        return self.name or self.external_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "parent_external_id": self.parent_external_id,
            "parent_local_id": self.parent_local_id,
            "is_active": self.is_active,
            "include_in_menu": self.include_in_menu,
            "level": self.level,
            "position": self.position,
            "meta": self.meta,
        }


@dataclass
class AddressSnapshot:
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    state: str = ""
    postcode: str = ""
    country: str = ""
    phone: str = ""
    email: str = ""
    default_billing: bool = False
    default_shipping: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "company": self.company,
            "address_1": self.address_1,
            "address_2": self.address_2,
            "city": self.city,
            "state": self.state,
            "postcode": self.postcode,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
            "default_billing": self.default_billing,
            "default_shipping": self.default_shipping,
        }


@dataclass
class NormalizedCustomer:
    external_id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    username: str = ""
    group_id: Optional[str] = None
    created_at: Optional[datetime] = None
    addresses: List[AddressSnapshot] = field(default_factory=list)
    billing: Optional[AddressSnapshot] = None
    shipping: Optional[AddressSnapshot] = None
    stats: Dict[str, Any] = field(default_factory=dict)

    entity_type = EntityType.CUSTOMERS

    @property
    def label(self) -> str:
        return self.email or self.external_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "username": self.username,
            "group_id": self.group_id,
            "created_at": _date(self.created_at),
            "addresses": [a.to_dict() for a in self.addresses],
            "billing": self.billing.to_dict() if self.billing else None,
            "shipping": self.shipping.to_dict() if self.shipping else None,
            "stats": self.stats,
        }


@dataclass
class OrderLine:
    sku: str
    name: str
    quantity: Decimal
    price: Decimal
    total: Decimal
    product_external_id: Optional[str] = None
    product_local_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "name": self.name,
            "quantity": _money(self.quantity),
            "price": _money(self.price),
            "total": _money(self.total),
            "product_external_id": self.product_external_id,
            "product_local_id": self.product_local_id,
        }


@dataclass
class NormalizedOrder:
    external_id: str
    increment_id: str
    status: str
    source_state: str = ""
    source_status: str = ""
    currency: str = "USD"
    grand_total: Decimal = Decimal("0")
    subtotal: Decimal = Decimal("0")
    tax_total: Decimal = Decimal("0")
    shipping_total: Decimal = Decimal("0")
    discount_total: Decimal = Decimal("0")
    billing: Optional[AddressSnapshot] = None
    shipping: Optional[AddressSnapshot] = None
    lines: List[OrderLine] = field(default_factory=list)
    customer_external_id: Optional[str] = None
    customer_local_id: Optional[str] = None
    customer_email: str = ""
    customer_name: str = ""
    payment_method: str = ""
    payment_title: str = ""
    shipping_description: str = ""
    customer_note: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    entity_type = EntityType.ORDERS

    @property
    def label(self) -> str:
        return f"#{self.increment_id}"

    @property
    def is_guest(self) -> bool:
        return self.customer_local_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "external_id": self.external_id,
            "increment_id": self.increment_id,
            "status": self.status,
            "source_state": self.source_state,
            "source_status": self.source_status,
            "currency": self.currency,
            "grand_total": _money(self.grand_total),
            "subtotal": _money(self.subtotal),
            "tax_total": _money(self.tax_total),
            "shipping_total": _money(self.shipping_total),
            "discount_total": _money(self.discount_total),
            "billing": self.billing.to_dict() if self.billing else None,
            "shipping": self.shipping.to_dict() if self.shipping else None,
            "lines": [line.to_dict() for line in self.lines],
            "customer_external_id": self.customer_external_id,
            "customer_local_id": self.customer_local_id,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "payment_method": self.payment_method,
            "payment_title": self.payment_title,
            "shipping_description": self.shipping_description,
            "customer_note": self.customer_note,
            "created_at": _date(self.created_at),
            "updated_at": _date(self.updated_at),
        }


NormalizedEntity = Union[NormalizedProduct, NormalizedCategory, NormalizedCustomer, NormalizedOrder]
