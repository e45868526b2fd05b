"""Typed views over raw connector records.

The connector returns loosely shaped JSON. Each record is parsed into one of
these dataclasses at the boundary so normalizers only deal with explicit,
typed fields.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ..errors import NormalizationError

NO_SELECTION = "no_selection"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _flag(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ("1", "true", "yes")


def _decimal(value: Any, name: str, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise NormalizationError(f"Invalid numeric value for {name}: {value!r}")


def _external_id(data: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = _text(data.get(key))
        if value:
            return value
    raise NormalizationError(f"Record has no identifier ({', '.join(keys)})")


def _id_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(",")
    ids = []
    for item in items:
        text = _text(item)
        if text and text not in ids:
            ids.append(text)
    return ids


def _image_path(value: Any) -> Optional[str]:
    path = _text(value)
    if not path or path == NO_SELECTION:
        return None
    return path


@dataclass
class RawMediaEntry:
    """One media gallery entry of a product."""
    path: Optional[str]
    label: str = ""
    position: Optional[int] = None
    disabled: bool = False
    media_type: str = "image"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawMediaEntry":
        position = data.get("position")
        return cls(
            path=_image_path(data.get("value") or data.get("file")),
            label=_text(data.get("label")),
            position=_int(position) if position not in (None, "") else None,
            disabled=_flag(data.get("disabled")),
            media_type=_text(data.get("media_type")) or "image",
        )


@dataclass
class RawProduct:
    """A product record as served by the connector."""
    external_id: str
    sku: str
    name: str = ""
    type_id: str = "simple"
    description: str = ""
    short_description: str = ""
    price: Decimal = Decimal("0")
    special_price: Optional[Decimal] = None
    special_from_date: Optional[str] = None
    special_to_date: Optional[str] = None
    weight: Decimal = Decimal("0")
    status: int = 1
    visibility: int = 4
    url_key: Optional[str] = None
    meta_title: str = ""
    meta_description: str = ""
    meta_keyword: str = ""
    qty: Decimal = Decimal("0")
    is_in_stock: bool = True
    manage_stock: bool = False
    category_ids: List[str] = field(default_factory=list)
    category_names: List[str] = field(default_factory=list)
    media: List[RawMediaEntry] = field(default_factory=list)
    image: Optional[str] = None
    small_image: Optional[str] = None
    thumbnail: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawProduct":
        stock = data.get("stock_data") or data.get("stock_item") or {}
        if not isinstance(stock, dict):
            stock = {}

        gallery = data.get("media")
        if gallery is None:
            gallery = data.get("media_gallery")
        if isinstance(gallery, dict):
            gallery = gallery.get("images", gallery)
        if isinstance(gallery, dict):
            gallery = list(gallery.values())
        if not isinstance(gallery, list):
            gallery = []

        names = data.get("categories") or ""
        if isinstance(names, list):
            category_names = [_text(n) for n in names if _text(n)]
        else:
            category_names = [n.strip() for n in str(names).split(",") if n.strip()]

        return cls(
            external_id=_external_id(data, "entity_id", "id"),
            sku=_text(data.get("sku")),
            name=_text(data.get("name")),
            type_id=_text(data.get("type_id")) or "simple",
            description=_text(data.get("description")),
            short_description=_text(data.get("short_description")),
            price=_decimal(data.get("price"), "price"),
            special_price=_decimal(data.get("special_price"), "special_price", default=None),
            special_from_date=_optional_text(data.get("special_from_date")),
            special_to_date=_optional_text(data.get("special_to_date")),
            weight=_decimal(data.get("weight"), "weight"),
            status=_int(data.get("status"), 1),
            visibility=_int(data.get("visibility"), 4),
            url_key=_optional_text(data.get("url_key")),
            meta_title=_text(data.get("meta_title")),
            meta_description=_text(data.get("meta_description")),
            meta_keyword=_text(data.get("meta_keyword")),
            qty=_decimal(stock.get("qty", data.get("qty")), "qty"),
            is_in_stock=_flag(stock.get("is_in_stock", data.get("is_in_stock")), True),
            manage_stock=_flag(stock.get("manage_stock", data.get("manage_stock"))),
            category_ids=_id_list(data.get("category_ids")),
            category_names=category_names,
            media=[RawMediaEntry.from_dict(m) for m in gallery if isinstance(m, dict)],
            image=_image_path(data.get("image")),
            small_image=_image_path(data.get("small_image")),
            thumbnail=_image_path(data.get("thumbnail")),
        )


@dataclass
class RawCategory:
    """A category record as served by the connector."""
    external_id: str
    name: str
    parent_id: Optional[str] = None
    url_key: Optional[str] = None
    url_path: Optional[str] = None
    description: str = ""
    is_active: bool = True
    include_in_menu: bool = True
    level: int = 0
    position: int = 0
    meta_title: str = ""
    meta_description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawCategory":
        return cls(
            external_id=_external_id(data, "entity_id", "id"),
            name=_text(data.get("name")),
            parent_id=_optional_text(data.get("parent_id")),
            url_key=_optional_text(data.get("url_key")),
            url_path=_optional_text(data.get("url_path")),
            description=_text(data.get("description")),
            is_active=_flag(data.get("is_active"), True),
            include_in_menu=_flag(data.get("include_in_menu"), True),
            level=_int(data.get("level")),
            position=_int(data.get("position")),
            meta_title=_text(data.get("meta_title")),
            meta_description=_text(data.get("meta_description")),
        )


@dataclass
class RawAddress:
    """A customer or order address."""
    external_id: Optional[str] = None
    firstname: str = ""
    lastname: str = ""
    company: str = ""
    street: List[str] = field(default_factory=list)
    city: str = ""
    region: str = ""
    postcode: str = ""
    country_id: str = ""
    telephone: str = ""
    email: str = ""
    default_billing: bool = False
    default_shipping: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawAddress":
        street = data.get("street")
        if isinstance(street, list):
            lines = [_text(s) for s in street if _text(s)]
        else:
            lines = [s.strip() for s in _text(street).splitlines() if s.strip()]

        region = data.get("region")
        if isinstance(region, dict):
            region = region.get("region") or region.get("region_code")

        return cls(
            external_id=_optional_text(data.get("entity_id") or data.get("id")),
            firstname=_text(data.get("firstname")),
            lastname=_text(data.get("lastname")),
            company=_text(data.get("company")),
            street=lines,
            city=_text(data.get("city")),
            region=_text(region),
            postcode=_text(data.get("postcode")),
            country_id=_text(data.get("country_id")).upper(),
            telephone=_text(data.get("telephone")),
            email=_text(data.get("email")),
            default_billing=_flag(data.get("default_billing") or data.get("is_default_billing")),
            default_shipping=_flag(data.get("default_shipping") or data.get("is_default_shipping")),
        )


@dataclass
class RawCustomer:
    """A customer record as served by the connector."""
    external_id: str
    email: str
    firstname: str = ""
    lastname: str = ""
    group_id: Optional[str] = None
    created_at: Optional[str] = None
    default_billing: Optional[str] = None
    default_shipping: Optional[str] = None
    addresses: List[RawAddress] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    STAT_FIELDS = (
        "total_orders_count",
        "total_spend",
        "average_order_value",
        "first_order_date",
        "last_order_date",
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawCustomer":
        addresses = data.get("addresses") or []
        if isinstance(addresses, dict):
            addresses = list(addresses.values())
        return cls(
            external_id=_external_id(data, "entity_id", "id"),
            email=_text(data.get("email")).lower(),
            firstname=_text(data.get("firstname")),
            lastname=_text(data.get("lastname")),
            group_id=_optional_text(data.get("group_id")),
            created_at=_optional_text(data.get("created_at")),
            default_billing=_optional_text(data.get("default_billing")),
            default_shipping=_optional_text(data.get("default_shipping")),
            addresses=[RawAddress.from_dict(a) for a in addresses if isinstance(a, dict)],
            stats={k: data[k] for k in cls.STAT_FIELDS if data.get(k) not in (None, "")},
        )


@dataclass
class RawOrderItem:
    """An order line."""
    sku: str
    name: str = ""
    product_id: Optional[str] = None
    parent_item_id: Optional[str] = None
    qty_ordered: Decimal = Decimal("0")
    price: Decimal = Decimal("0")
    row_total: Decimal = Decimal("0")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawOrderItem":
        return cls(
            sku=_text(data.get("sku")),
            name=_text(data.get("name")),
            product_id=_optional_text(data.get("product_id")),
            parent_item_id=_optional_text(data.get("parent_item_id")),
            qty_ordered=_decimal(data.get("qty_ordered"), "qty_ordered"),
            price=_decimal(data.get("price"), "price"),
            row_total=_decimal(data.get("row_total"), "row_total"),
        )


@dataclass
class RawOrder:
    """An order record as served by the connector."""
    external_id: str
    increment_id: str
    state: str = ""
    status: str = ""
    customer_id: Optional[str] = None
    customer_email: str = ""
    customer_firstname: str = ""
    customer_lastname: str = ""
    grand_total: Decimal = Decimal("0")
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    shipping_amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    currency: str = "USD"
    billing_address: Optional[RawAddress] = None
    shipping_address: Optional[RawAddress] = None
    items: List[RawOrderItem] = field(default_factory=list)
    payment_method: str = ""
    payment_title: str = ""
    shipping_description: str = ""
    customer_note: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawOrder":
        external_id = _external_id(data, "entity_id", "id")

        payment = data.get("payment") or {}
        if not isinstance(payment, dict):
            payment = {"method": payment}
        info = payment.get("additional_information")
        title = payment.get("method_title")
        if not title and isinstance(info, list) and info:
            title = info[0]

        billing = data.get("billing_address")
        shipping = data.get("shipping_address")
        items = data.get("items") or []

        return cls(
            external_id=external_id,
            increment_id=_text(data.get("increment_id")) or external_id,
            state=_text(data.get("state")).lower(),
            status=_text(data.get("status")).lower(),
            customer_id=_optional_text(data.get("customer_id")),
            customer_email=_text(data.get("customer_email")).lower(),
            customer_firstname=_text(data.get("customer_firstname")),
            customer_lastname=_text(data.get("customer_lastname")),
            grand_total=_decimal(data.get("grand_total"), "grand_total"),
            subtotal=_decimal(data.get("subtotal"), "subtotal"),
            tax_amount=_decimal(data.get("tax_amount"), "tax_amount"),
            shipping_amount=_decimal(data.get("shipping_amount"), "shipping_amount"),
            discount_amount=_decimal(data.get("discount_amount"), "discount_amount"),
            currency=_text(data.get("order_currency_code")).upper() or "USD",
            billing_address=RawAddress.from_dict(billing) if isinstance(billing, dict) else None,
            shipping_address=RawAddress.from_dict(shipping) if isinstance(shipping, dict) else None,
            items=[RawOrderItem.from_dict(i) for i in items if isinstance(i, dict)],
            payment_method=_text(payment.get("method")),
            payment_title=_text(title),
            shipping_description=_text(data.get("shipping_description")),
            customer_note=_text(data.get("customer_note")),
            created_at=_optional_text(data.get("created_at")),
            updated_at=_optional_text(data.get("updated_at")),
        )
