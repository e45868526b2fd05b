"""Normalizers mapping raw connector records to target entities.

One function per entity type, all with the signature
``normalize(raw: dict, ctx: NormalizationContext) -> NormalizedEntity``.
They are pure apart from mapping lookups made through the context, and raise
``NormalizationError`` for records that cannot be migrated. Relationships
that cannot be resolved yet are dropped and reported as warnings on the
context instead.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..errors import NormalizationError
from ..models.entities import (
    AddressSnapshot,
    MediaReference,
    NormalizedCategory,
    NormalizedCustomer,
    NormalizedEntity,
    NormalizedOrder,
    NormalizedProduct,
    OrderLine,
)
from ..models.job import EntityType
from ..models.raw import (
    RawAddress,
    RawCategory,
    RawCustomer,
    RawOrder,
    RawProduct,
)
from .text import parse_datetime, slugify, split_street, username_candidates

logger = logging.getLogger(__name__)

# Magento's tree root (1) and default category (2) have no target counterpart.
ROOT_CATEGORY_MAX_ID = 2

VISIBILITY_MAP = {
    1: "hidden",
    2: "catalog",
    3: "search",
    4: "visible",
}

ORDER_STATUS_MAP = {
    "new": "pending",
    "pending_payment": "pending",
    "processing": "processing",
    "complete": "completed",
    "closed": "completed",
    "canceled": "cancelled",
    "holded": "on-hold",
    "payment_review": "on-hold",
}

SINGULAR_IMAGE_FIELDS = (
    ("image", ""),
    ("small_image", " - Small"),
    ("thumbnail", " - Thumbnail"),
)

UNKNOWN_POSITION = 999

Lookup = Callable[[EntityType, str], Optional[str]]


@dataclass
class NormalizationContext:
    """Lookups and collected warnings for one normalize call."""
    lookup: Lookup = lambda entity_type, external_id: None
    media_url: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def resolve(self, entity_type: EntityType, external_id: Optional[str]) -> Optional[str]:
        if not external_id:
            return None
        return self.lookup(entity_type, external_id)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning(message)

    def media_link(self, path: str) -> Optional[str]:
        if not self.media_url:
            return None
        return f"{self.media_url.rstrip('/')}/{path.lstrip('/')}"


def _is_image_path(path: Optional[str]) -> bool:
    return bool(path) and "." in path.rsplit("/", 1)[-1]


def merge_media(product: RawProduct, ctx: Optional[NormalizationContext] = None) -> List[MediaReference]:
    """
    Merge gallery entries and singular image fields into one list.

    Gallery entries come first in position order (disabled ones dropped),
    then ``image``, ``small_image`` and ``thumbnail`` are appended when their
    path is not already in the list. Paths compare by exact equality, so each
    file appears once.
    """
    ctx = ctx or NormalizationContext()
    merged: List[MediaReference] = []
    seen = set()

    gallery = [m for m in product.media if not m.disabled]
    gallery.sort(key=lambda m: m.position if m.position is not None else UNKNOWN_POSITION)

    for entry in gallery:
        if not _is_image_path(entry.path) or entry.path in seen:
            continue
        seen.add(entry.path)
        merged.append(MediaReference(
            path=entry.path,
            label=entry.label or product.name,
            disabled=False,
            source="gallery",
        ))

    base_label = product.name or "Image"
    for field_name, suffix in SINGULAR_IMAGE_FIELDS:
        path = getattr(product, field_name)
        if not _is_image_path(path) or path in seen:
            continue
        seen.add(path)
        merged.append(MediaReference(
            path=path,
            label=f"{base_label}{suffix}",
            source=field_name,
        ))

    for position, reference in enumerate(merged):
        reference.position = position
        reference.url = ctx.media_link(reference.path)

    return merged


def normalize_product(raw: Dict[str, Any], ctx: NormalizationContext) -> NormalizedProduct:
    product = RawProduct.from_dict(raw)
    if not product.sku:
        raise NormalizationError("Product has no SKU", item=product.external_id)

    name = product.name or product.sku
    category_local_ids = []
    missing = []
    for category_id in product.category_ids:
        local_id = ctx.resolve(EntityType.CATEGORIES, category_id)
        if local_id is None:
            missing.append(category_id)
        elif local_id not in category_local_ids:
            category_local_ids.append(local_id)
    if missing:
        ctx.warn(
            f"Product {product.sku}: categories not migrated yet, skipped: {', '.join(missing)}"
        )

    meta = {
        "title": product.meta_title,
        "description": product.meta_description,
        "keywords": product.meta_keyword,
    }

    return NormalizedProduct(
        external_id=product.external_id,
        sku=product.sku,
        name=name,
        slug=slugify(product.url_key or name),
        type=product.type_id,
        description=product.description,
        short_description=product.short_description,
        price=product.price,
        special_price=product.special_price,
        special_from=parse_datetime(product.special_from_date),
        special_to=parse_datetime(product.special_to_date),
        weight=product.weight,
        stock_quantity=product.qty,
        in_stock=product.is_in_stock,
        manage_stock=product.manage_stock,
        enabled=product.status == 1,
        visibility=VISIBILITY_MAP.get(product.visibility, "visible"),
        meta={k: v for k, v in meta.items() if v},
        category_external_ids=list(product.category_ids),
        category_local_ids=category_local_ids,
        category_names=list(product.category_names),
        media=merge_media(product, ctx),
    )


def _category_slug(category: RawCategory) -> str:
    if category.url_key:
        return slugify(category.url_key)
    if category.url_path:
        last = category.url_path.rstrip("/").rsplit("/", 1)[-1]
        if last.endswith(".html"):
            last = last[:-5]
        if slugify(last):
            return slugify(last)
    return slugify(category.name)


def _parent_external_id(category: RawCategory) -> Optional[str]:
    parent = category.parent_id
    if parent is None:
        return None
    try:
        if int(parent) <= ROOT_CATEGORY_MAX_ID:
            return None
    except ValueError:
        pass
    return parent


def normalize_category(raw: Dict[str, Any], ctx: NormalizationContext) -> NormalizedCategory:
    category = RawCategory.from_dict(raw)
    if not category.name:
        raise NormalizationError("Category has no name", item=category.external_id)

    parent_external_id = _parent_external_id(category)
    parent_local_id = ctx.resolve(EntityType.CATEGORIES, parent_external_id)
    if parent_external_id and parent_local_id is None:
        ctx.warn(
            f"Category {category.name}: parent {parent_external_id} not migrated yet, "
            f"created at top level"
        )

    meta = {"title": category.meta_title, "description": category.meta_description}

    return NormalizedCategory(
        external_id=category.external_id,
        name=category.name,
        slug=_category_slug(category) or f"category-{category.external_id}",
        description=category.description,
        parent_external_id=parent_external_id,
        parent_local_id=parent_local_id,
        is_active=category.is_active,
        include_in_menu=category.include_in_menu,
        level=category.level,
        position=category.position,
        meta={k: v for k, v in meta.items() if v},
    )


def _snapshot(address: RawAddress, email: str = "") -> AddressSnapshot:
    address_1, address_2 = split_street(address.street)
    return AddressSnapshot(
        first_name=address.firstname,
        last_name=address.lastname,
        company=address.company,
        address_1=address_1,
        address_2=address_2,
        city=address.city,
        state=address.region,
        postcode=address.postcode,
        country=address.country_id,
        phone=address.telephone,
        email=address.email or email,
        default_billing=address.default_billing,
        default_shipping=address.default_shipping,
    )


def normalize_customer(raw: Dict[str, Any], ctx: NormalizationContext) -> NormalizedCustomer:
    customer = RawCustomer.from_dict(raw)
    if not customer.email or "@" not in customer.email:
        raise NormalizationError(
            f"Customer has no valid email: {customer.email!r}", item=customer.external_id
        )

    addresses = []
    for address in customer.addresses:
        snapshot = _snapshot(address, customer.email)
        if address.external_id and address.external_id == customer.default_billing:
            snapshot.default_billing = True
        if address.external_id and address.external_id == customer.default_shipping:
            snapshot.default_shipping = True
        addresses.append(snapshot)

    billing = next((a for a in addresses if a.default_billing), None)
    if billing is None and addresses:
        billing = addresses[0]
    shipping = next((a for a in addresses if a.default_shipping), None) or billing

    username = next(username_candidates(
        customer.email, customer.firstname, customer.lastname, customer.external_id
    ))

    return NormalizedCustomer(
        external_id=customer.external_id,
        email=customer.email,
        first_name=customer.firstname,
        last_name=customer.lastname,
        username=username,
        group_id=customer.group_id,
        created_at=parse_datetime(customer.created_at),
        addresses=addresses,
        billing=billing,
        shipping=shipping,
        stats=dict(customer.stats),
    )


def map_order_status(state: str, status: str = "") -> str:
    """Map a Magento order state (or status) to a WooCommerce status."""
    return ORDER_STATUS_MAP.get(state) or ORDER_STATUS_MAP.get(status) or "pending"


def normalize_order(raw: Dict[str, Any], ctx: NormalizationContext) -> NormalizedOrder:
    order = RawOrder.from_dict(raw)

    customer_local_id = None
    if order.customer_id:
        customer_local_id = ctx.resolve(EntityType.CUSTOMERS, order.customer_id)
        if customer_local_id is None:
            ctx.warn(
                f"Order #{order.increment_id}: customer {order.customer_id} not migrated yet, "
                f"imported as guest"
            )

    lines = []
    unresolved = []
    for item in order.items:
        if item.parent_item_id:
            continue
        product_local_id = ctx.resolve(EntityType.PRODUCTS, item.product_id)
        if item.product_id and product_local_id is None:
            unresolved.append(item.sku or item.product_id)
        lines.append(OrderLine(
            sku=item.sku,
            name=item.name or item.sku,
            quantity=item.qty_ordered,
            price=item.price,
            total=item.row_total,
            product_external_id=item.product_id,
            product_local_id=product_local_id,
        ))
    if unresolved:
        ctx.warn(
            f"Order #{order.increment_id}: products not migrated yet, "
            f"lines kept by name: {', '.join(unresolved)}"
        )

    billing = _snapshot(order.billing_address, order.customer_email) if order.billing_address else None
    shipping = _snapshot(order.shipping_address) if order.shipping_address else None
    customer_name = f"{order.customer_firstname} {order.customer_lastname}".strip()

    return NormalizedOrder(
        external_id=order.external_id,
        increment_id=order.increment_id,
        status=map_order_status(order.state, order.status),
        source_state=order.state,
        source_status=order.status,
        currency=order.currency,
        grand_total=order.grand_total,
        subtotal=order.subtotal,
        tax_total=order.tax_amount,
        shipping_total=order.shipping_amount,
        discount_total=abs(order.discount_amount),
        billing=billing,
        shipping=shipping or billing,
        lines=lines,
        customer_external_id=order.customer_id,
        customer_local_id=customer_local_id,
        customer_email=order.customer_email,
        customer_name=customer_name,
        payment_method=order.payment_method,
        payment_title=order.payment_title or order.payment_method,
        shipping_description=order.shipping_description,
        customer_note=order.customer_note,
        created_at=parse_datetime(order.created_at),
        updated_at=parse_datetime(order.updated_at),
    )


Normalizer = Callable[[Dict[str, Any], NormalizationContext], NormalizedEntity]

NORMALIZERS: Dict[EntityType, Normalizer] = {
    EntityType.PRODUCTS: normalize_product,
    EntityType.CATEGORIES: normalize_category,
    EntityType.CUSTOMERS: normalize_customer,
    EntityType.ORDERS: normalize_order,
}


def describe_raw(entity_type: EntityType, raw: Dict[str, Any]) -> str:
    """Short label for a raw record, used before it has been normalized."""
    if entity_type == EntityType.PRODUCTS and raw.get("sku"):
        return str(raw["sku"])
    if entity_type == EntityType.CUSTOMERS and raw.get("email"):
        return str(raw["email"])
    if entity_type == EntityType.ORDERS and raw.get("increment_id"):
        return f"#{raw['increment_id']}"
    if entity_type == EntityType.CATEGORIES and raw.get("name"):
        return str(raw["name"])
    return str(raw.get("entity_id") or raw.get("id") or "unknown")
