"""Database module."""

from .base import Base, create_tables, get_engine, get_session_factory
from .models import Order, Product, ProductImage, WebhookLog
from .store import RecordStore, SQLRecordStore

__all__ = [
    "Base",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "Order",
    "Product",
    "ProductImage",
    "WebhookLog",
    "RecordStore",
    "SQLRecordStore",
]
