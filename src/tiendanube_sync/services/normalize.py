"""
Normalization of Tiendanube payloads into store-ready field values.

Upstream fields may arrive as strings, numbers, objects or null depending on the
endpoint and the store's configuration. Each field family has one function that
maps the raw value to a single canonical type, so nothing ambiguous reaches the
database.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from tiendanube_sync.config.constants import (
    LANGUAGE_PREFERENCE,
    ORDER_DATE_FIELDS,
    ORDER_MONEY_FIELDS,
    ORDER_OPTIONAL_FIELDS,
    PROVIDER_NAME,
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_date(value: Any) -> Optional[str]:
    """
    Map a date-like value to a string or None.

    Strings pass through untouched; objects and lists are serialized as compact
    JSON with sorted keys so the same value always yields the same string.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


def normalize_money(value: Any) -> Optional[str]:
    """Map a monetary value to a canonical two-decimal string or None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return f"{amount:.2f}"


def normalize_optional_str(value: Any) -> Optional[str]:
    """Map an optional identifier/text field to a string or None."""
    if value is None or value == "":
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


def coerce_int(value: Any) -> Optional[int]:
    """Coerce a numeric id (int or numeric string) to int, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def localized(value: Any) -> Optional[str]:
    """Pick a translation from a localized field by language preference."""
    if value is None:
        return None
    if isinstance(value, dict):
        for language in LANGUAGE_PREFERENCE:
            if value.get(language):
                return str(value[language])
        for text in value.values():
            if text:
                return str(text)
        return None
    return normalize_optional_str(value)


def normalize_product(raw: Dict[str, Any], store_id: int) -> Dict[str, Any]:
    """
    Build Product column values from an upstream product.

    Price, stock, weight, sku and cost come from the first variant.

    Args:
        raw: Product JSON as returned by GET /products/{id}
        store_id: Store that owns the product

    Returns:
        Dict of Product column values (without primary key)
    """
    variants = raw.get("variants") or []
    variant = variants[0] if variants and isinstance(variants[0], dict) else {}
    now = utc_now_iso()

    return {
        "provider": PROVIDER_NAME,
        "store_id": store_id,
        "upstream_id": coerce_int(raw.get("id")),
        "name": localized(raw.get("name")),
        "description": localized(raw.get("description")),
        "handle": localized(raw.get("handle")),
        "seo_title": localized(raw.get("seo_title")),
        "seo_description": localized(raw.get("seo_description")),
        "published": bool(raw.get("published")),
        "free_shipping": bool(raw.get("free_shipping")),
        "video_url": normalize_optional_str(raw.get("video_url")),
        "tags": normalize_optional_str(raw.get("tags")),
        "brand": normalize_optional_str(raw.get("brand")),
        "price": normalize_money(variant.get("price")),
        "promotional_price": normalize_money(variant.get("promotional_price")),
        "stock": coerce_int(variant.get("stock")) or 0,
        "weight": normalize_optional_str(variant.get("weight")),
        "sku": normalize_optional_str(variant.get("sku")),
        "cost": normalize_money(variant.get("cost")),
        "created_at": normalize_date(raw.get("created_at")) or now,
        "updated_at": normalize_date(raw.get("updated_at")) or now,
    }


def normalize_image(raw: Dict[str, Any], product_id: int, store_id: int) -> Dict[str, Any]:
    """Build ProductImage column values from an upstream image."""
    return {
        "upstream_id": coerce_int(raw.get("id")),
        "product_id": coerce_int(raw.get("product_id")) or product_id,
        "store_id": store_id,
        "src": normalize_optional_str(raw.get("src")),
        "position": coerce_int(raw.get("position")) or 0,
        "alt": localized(raw.get("alt")),
        "created_at": normalize_date(raw.get("created_at")),
        "updated_at": normalize_date(raw.get("updated_at")),
    }


def derive_order_state(raw: Dict[str, Any]) -> str:
    """Collapse payment_status/status into paid, pending, cancelled or unpaid."""
    payment_status = raw.get("payment_status")
    if payment_status == "paid":
        return "paid"
    if payment_status == "pending":
        return "pending"
    if raw.get("status") == "cancelled" or raw.get("cancelled_at"):
        return "cancelled"
    return "unpaid"


def snapshot_line_items(products: Any) -> List[Dict[str, Any]]:
    """Freeze the order's line items as they were at order time."""
    if not isinstance(products, list):
        return []

    items = []
    for item in products:
        if not isinstance(item, dict):
            continue
        items.append(
            {
                "product_id": coerce_int(item.get("product_id")),
                "variant_id": coerce_int(item.get("variant_id")),
                "name": localized(item.get("name")),
                "sku": normalize_optional_str(item.get("sku")),
                "quantity": coerce_int(item.get("quantity")) or 0,
                "price": normalize_money(item.get("price")),
            }
        )
    return items


def normalize_order(raw: Dict[str, Any], store_id: int) -> Dict[str, Any]:
    """
    Build Order column values from an upstream order.

    Args:
        raw: Order JSON as returned by GET /orders/{id}
        store_id: Store the order was fetched for (used when the payload has none)

    Returns:
        Dict of Order column values (without primary key)
    """
    values: Dict[str, Any] = {
        "provider": PROVIDER_NAME,
        "store_id": coerce_int(raw.get("store_id")) or store_id,
        "upstream_id": coerce_int(raw.get("id")),
        "number": coerce_int(raw.get("number")),
        "token": normalize_optional_str(raw.get("token")),
        "contact_name": normalize_optional_str(raw.get("contact_name")),
        "contact_email": normalize_optional_str(raw.get("contact_email")),
        "billing_name": normalize_optional_str(raw.get("billing_name")),
        "billing_address": normalize_optional_str(raw.get("billing_address")),
        "billing_number": normalize_optional_str(raw.get("billing_number")),
        "billing_locality": normalize_optional_str(raw.get("billing_locality")),
        "billing_zipcode": normalize_optional_str(raw.get("billing_zipcode")),
        "billing_city": normalize_optional_str(raw.get("billing_city")),
        "billing_province": normalize_optional_str(raw.get("billing_province")),
        "billing_country": normalize_optional_str(raw.get("billing_country")),
        "currency": normalize_optional_str(raw.get("currency")),
        "gateway": normalize_optional_str(raw.get("gateway")),
        "status": normalize_optional_str(raw.get("status")),
        "payment_status": normalize_optional_str(raw.get("payment_status")),
        "shipping_status": normalize_optional_str(raw.get("shipping_status")),
        "state": derive_order_state(raw),
        "created_at": normalize_date(raw.get("created_at")),
        "updated_at": normalize_date(raw.get("updated_at")),
        "line_items": snapshot_line_items(raw.get("products")),
        "customer": raw.get("customer") if isinstance(raw.get("customer"), dict) else None,
        "shipping_address": (
            raw.get("shipping_address") if isinstance(raw.get("shipping_address"), dict) else None
        ),
    }

    for field in ORDER_OPTIONAL_FIELDS:
        values[field] = normalize_optional_str(raw.get(field))

    for field in ORDER_MONEY_FIELDS:
        values[field] = normalize_money(raw.get(field))

    for field in ORDER_DATE_FIELDS:
        values[field] = normalize_date(raw.get(field))

    return values
