"""Pydantic models for webhook notifications."""

import json
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from tiendanube_sync.core.exceptions import ValidationError


class WebhookNotification(BaseModel):
    """Webhook notification sent by Tiendanube."""

    store_id: int = Field(..., description="Store (user) ID")
    event: str = Field(..., description='Namespaced event, e.g. "product/updated"')
    id: Optional[int] = Field(None, description="Resource ID, absent for store-level events")

    class Config:
        extra = "allow"

    @property
    def resource_id(self) -> Optional[int]:
        return self.id

    @property
    def namespace(self) -> str:
        """Resource part of the event, with trailing slash ("product/")."""
        return self.event.split("/", 1)[0] + "/"

    @property
    def action(self) -> str:
        """Action part of the event ("created", "updated", ...)."""
        return self.event.split("/", 1)[1] if "/" in self.event else ""


class CustomerRef(BaseModel):
    """Customer block of the customers/* privacy events."""

    id: Optional[int] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    identification: Optional[str] = None

    class Config:
        extra = "allow"


class CustomerRedactRequest(BaseModel):
    """customers/redact payload."""

    store_id: int
    customer: Optional[CustomerRef] = None
    orders_to_redact: List[int] = Field(default_factory=list)

    class Config:
        extra = "allow"


class CustomerDataRequest(BaseModel):
    """customers/data_request payload."""

    store_id: int
    customer: Optional[CustomerRef] = None
    orders_requested: List[int] = Field(default_factory=list)
    data_request: Optional[Dict[str, Any]] = None

    class Config:
        extra = "allow"


def parse_notification(raw_body: bytes) -> WebhookNotification:
    """
    Parse and check a raw webhook body.

    Args:
        raw_body: Raw request body as bytes

    Returns:
        WebhookNotification

    Raises:
        ValidationError: Body is not a JSON object, or store_id/event are missing
    """
    try:
        data = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Invalid JSON body: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError("Webhook body must be a JSON object")

    if not data.get("store_id") or not data.get("event"):
        raise ValidationError("Missing required fields: store_id, event", field="store_id/event")

    try:
        return WebhookNotification(**data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid webhook payload: {e.errors()[0].get('msg')}") from e


PrivacyRequest = TypeVar("PrivacyRequest", CustomerRedactRequest, CustomerDataRequest)


def parse_privacy_request(model: Type[PrivacyRequest], notification: WebhookNotification) -> PrivacyRequest:
    """
    Build the typed payload of a customers/* privacy event.

    Raises:
        ValidationError: A payload field has the wrong shape
    """
    try:
        return model(**notification.model_dump())
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ()))
        raise ValidationError(
            f"Invalid {notification.event} payload: {field}: {error.get('msg')}", field=field or None
        ) from e
