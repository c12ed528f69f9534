"""SQLAlchemy models for reconciled Tiendanube data and the webhook ledger."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from tiendanube_sync.config.constants import PROVIDER_NAME
from .base import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Product(Base):
    """
    A product reconciled from Tiendanube.

    Upstream timestamps are kept as strings exactly as normalized; `added_at`
    is local bookkeeping.
    """

    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("provider", "upstream_id", name="uq_products_provider_upstream"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(50), default=PROVIDER_NAME, nullable=False)
    store_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    upstream_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)

    name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    handle: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    seo_title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    seo_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    free_shipping: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    video_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    tags: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # First-variant fields
    price: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    promotional_price: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    weight: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    cost: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class ProductImage(Base):
    """An image of a product, keyed by its Tiendanube image id."""

    __tablename__ = "product_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    upstream_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    product_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    store_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    src: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    alt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class Order(Base):
    """
    An order reconciled from Tiendanube.

    Line items are a snapshot taken at reconciliation time, not references to
    local products.
    """

    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("provider", "upstream_id", name="uq_orders_provider_upstream"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(50), default=PROVIDER_NAME, nullable=False)
    store_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    upstream_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)

    number: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Contact
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    contact_identification: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Billing
    billing_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_phone: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    billing_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    billing_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    billing_floor: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    billing_locality: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_zipcode: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    billing_city: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_province: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_country: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    billing_customer_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    billing_business_activity: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_trade_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billing_state_registration: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    billing_fiscal_regime: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    billing_invoice_use: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    billing_document_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Money (canonical decimal strings)
    subtotal: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    discount: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    discount_gateway: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    total: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    total_usd: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    total_paid_by_customer: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    discount_coupon: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Payment / gateway
    gateway: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    gateway_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_link: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    app_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Status
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    shipping_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    state: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    owner_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Upstream timestamps, normalized to string-or-null
    created_at: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    completed_at: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cancelled_at: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    closed_at: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    read_at: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    paid_at: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    line_items: Mapped[Any] = mapped_column(JSON, default=list, nullable=False)
    customer: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    shipping_address: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)


class WebhookLog(Base):
    """
    Append-only idempotency ledger and audit log of webhook deliveries.

    `idempotency_key` is indexed but not unique: always-reprocess events write
    one row per delivery.
    """

    __tablename__ = "webhook_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    store_id: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    event: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    processed_at: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )


def to_dict(record: Base) -> dict:
    """Column values of a record as a plain dict."""
    return {column.name: getattr(record, column.name) for column in record.__table__.columns}
