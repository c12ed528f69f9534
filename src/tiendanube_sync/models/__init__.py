"""Pydantic models."""

from .sync import SyncRequest
from .webhook import (
    CustomerDataRequest,
    CustomerRedactRequest,
    WebhookNotification,
    parse_notification,
)

__all__ = [
    "SyncRequest",
    "CustomerDataRequest",
    "CustomerRedactRequest",
    "WebhookNotification",
    "parse_notification",
]
