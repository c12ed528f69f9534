"""
Webhook event handling.

A notification goes through named stages, each returning a typed result:

    verify -> parse -> classify -> dedupe -> dispatch

`WebhookPipeline.handle` runs all of them and turns every failure into a
`WebhookOutcome`, so the HTTP layer only has to serialize it.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from tiendanube_sync.config.constants import (
    ACTION_CREATED,
    ACTION_DELETED,
    ACTION_UPDATED,
    LEDGER_STATUS_PROCESSED,
    LEDGER_STATUS_UNHANDLED,
    ORDER_NAMESPACE,
    PRIVACY_EVENTS,
    PRODUCT_NAMESPACE,
)
from tiendanube_sync.core.exceptions import (
    AppException,
    AuthenticationFailure,
    CredentialsNotFound,
    ValidationError,
)
from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.core.monitoring import capture_exception, set_webhook_context
from tiendanube_sync.core.signature import VerificationResult, check_signature, extract_signature
from tiendanube_sync.db.store import RecordStore
from tiendanube_sync.models.webhook import WebhookNotification, parse_notification
from tiendanube_sync.services.credentials import CredentialProvider
from tiendanube_sync.services.idempotency import IdempotencyLedger, dedupe_key, is_always_reprocess
from tiendanube_sync.services.order_service import OrderReconciler
from tiendanube_sync.services.privacy import PrivacyHandler
from tiendanube_sync.services.product_service import ProductReconciler
from tiendanube_sync.services.reconciler import BaseReconciler, ClientFactory, ReconcileResult

logger = setup_logger(__name__)

KNOWN_ACTIONS = (ACTION_CREATED, ACTION_UPDATED, ACTION_DELETED)


class EventKind(str, Enum):
    """Result of the classify stage."""

    PRIVACY = "privacy"
    PRODUCT = "product"
    ORDER = "order"
    UNKNOWN_ACTION = "unknown_action"
    UNHANDLED = "unhandled"


@dataclass
class DedupeResult:
    """Result of the dedupe stage."""

    key: str
    duplicate: bool


@dataclass
class WebhookOutcome:
    """What the webhook endpoint answers."""

    status_code: int = 200
    success: bool = True
    duplicate: bool = False
    processed: Optional[bool] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success}
        if self.duplicate:
            body["duplicate"] = True
        if self.processed is not None:
            body["processed"] = self.processed
        if self.error:
            body["error"] = self.error
        if self.details:
            body.update(self.details)
        return body

    @classmethod
    def failure(cls, status_code: int, error: str) -> "WebhookOutcome":
        return cls(status_code=status_code, success=False, error=error)


class EventRouter:
    """Classifies a verified notification and dispatches it."""

    def __init__(
        self,
        store: RecordStore,
        credentials: CredentialProvider,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.ledger = IdempotencyLedger(store)
        self.products = ProductReconciler(store, credentials, client_factory)
        self.orders = OrderReconciler(store, credentials, client_factory)
        self.privacy = PrivacyHandler(self.products, self.orders)

    def classify(self, notification: WebhookNotification) -> EventKind:
        """Decide which handler owns the event."""
        if notification.event in PRIVACY_EVENTS:
            return EventKind.PRIVACY

        namespace = notification.namespace
        if namespace not in (PRODUCT_NAMESPACE, ORDER_NAMESPACE):
            return EventKind.UNHANDLED
        if notification.action not in KNOWN_ACTIONS:
            return EventKind.UNKNOWN_ACTION
        return EventKind.PRODUCT if namespace == PRODUCT_NAMESPACE else EventKind.ORDER

    async def dedupe(self, notification: WebhookNotification) -> DedupeResult:
        """Derive the key and check the ledger (skipped for always-reprocess events)."""
        key = dedupe_key(notification.store_id, notification.event, notification.resource_id)
        if is_always_reprocess(notification.event):
            return DedupeResult(key=key, duplicate=False)

        existing = await self.ledger.lookup(key)
        return DedupeResult(key=key, duplicate=existing is not None)

    def _reconciler_for(self, kind: EventKind) -> BaseReconciler:
        return self.products if kind == EventKind.PRODUCT else self.orders

    async def _reconcile(
        self, kind: EventKind, notification: WebhookNotification
    ) -> ReconcileResult:
        reconciler = self._reconciler_for(kind)
        if notification.action == ACTION_DELETED:
            return await reconciler.delete(notification.resource_id)
        return await reconciler.reconcile(notification.store_id, notification.resource_id)

    async def dispatch(
        self,
        kind: EventKind,
        notification: WebhookNotification,
        key: str,
        raw_body: bytes,
    ) -> WebhookOutcome:
        """
        Act on a non-duplicate notification.

        Product/order events are written to the ledger before reconciliation;
        unhandled events are written as the terminal step.
        """
        if kind == EventKind.UNHANDLED:
            logger.info(f"Unhandled webhook event: {notification.event}")
            await self.ledger.record(
                key,
                notification.store_id,
                notification.event,
                notification.resource_id,
                raw_body,
                LEDGER_STATUS_UNHANDLED,
            )
            return WebhookOutcome(processed=False)

        await self.ledger.record(
            key,
            notification.store_id,
            notification.event,
            notification.resource_id,
            raw_body,
            LEDGER_STATUS_PROCESSED,
        )

        if kind == EventKind.UNKNOWN_ACTION:
            logger.warning(f"Ignoring unknown action in event {notification.event}")
            return WebhookOutcome(processed=False)

        if notification.resource_id is None:
            logger.warning(f"Event {notification.event} without resource id, ignoring")
            return WebhookOutcome(processed=False)

        # Past the ledger write the reconciliation must finish even if the client disconnects
        result = await asyncio.shield(self._reconcile(kind, notification))
        logger.info(
            f"Reconciled {notification.event} {notification.resource_id}: {result.status}"
        )
        return WebhookOutcome(processed=True)

    async def route(self, notification: WebhookNotification, raw_body: bytes) -> WebhookOutcome:
        """
        Classify, dedupe and dispatch a notification.

        Raises:
            CredentialsNotFound, UpstreamError, PersistenceError
        """
        kind = self.classify(notification)

        if kind == EventKind.PRIVACY:
            summary = await self.privacy.handle(notification)
            return WebhookOutcome(processed=True, details=summary)

        dedupe = await self.dedupe(notification)
        if dedupe.duplicate:
            logger.info(f"Duplicate webhook {dedupe.key}, skipping")
            return WebhookOutcome(duplicate=True)

        return await self.dispatch(kind, notification, dedupe.key, raw_body)


class WebhookPipeline:
    """Runs verify -> parse -> route for one inbound request."""

    def __init__(self, router: EventRouter, secret: Optional[str]):
        self.router = router
        self.secret = secret

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> VerificationResult:
        return check_signature(raw_body, extract_signature(headers), self.secret)

    async def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
        """
        Handle a raw webhook delivery.

        Args:
            raw_body: Raw request body as bytes
            headers: Request headers

        Returns:
            WebhookOutcome (never raises)
        """
        log_extra: Dict[str, Any] = {"request_id": uuid.uuid4().hex[:12]}

        try:
            if self.verify(raw_body, headers) == VerificationResult.FAILED:
                raise AuthenticationFailure()
            notification = parse_notification(raw_body)
        except AppException as e:
            logger.warning(f"Rejected webhook: {e.message}", extra=log_extra)
            return WebhookOutcome.failure(e.status_code, e.message)

        log_extra.update(
            store_id=notification.store_id,
            event=notification.event,
            resource_id=notification.resource_id,
        )
        logger.info(
            f"Processing webhook: event={notification.event}, store_id={notification.store_id}, "
            f"id={notification.resource_id}",
            extra=log_extra,
        )
        set_webhook_context(
            notification.event,
            notification.store_id,
            notification.resource_id,
            request_id=log_extra["request_id"],
        )

        try:
            outcome = await self.router.route(notification, raw_body)
        except ValidationError as e:
            logger.warning(f"Rejected {notification.event} payload: {e.message}", extra=log_extra)
            return WebhookOutcome.failure(e.status_code, e.message)
        except CredentialsNotFound as e:
            # Acknowledged: retrying cannot succeed until the store is reinstalled
            logger.error(f"Reconciliation skipped: {e.message}", extra=log_extra)
            return WebhookOutcome(processed=False, error=e.message)
        except AppException as e:
            logger.error(f"Error processing webhook {notification.event}: {e.message}", extra=log_extra)
            capture_exception(e, context={"event": notification.event, "store_id": notification.store_id})
            return WebhookOutcome.failure(500, e.message)
        except Exception as e:
            logger.error(f"Unexpected error processing webhook: {e}", exc_info=True, extra=log_extra)
            capture_exception(e)
            return WebhookOutcome.failure(500, "Internal server error")

        logger.info(
            f"Webhook {notification.event} done: processed={outcome.processed}, duplicate={outcome.duplicate}",
            extra=log_extra,
        )
        return outcome


def capability_payload() -> Dict[str, Any]:
    """Static status payload served on GET of the webhook path."""
    return {
        "status": "active",
        "provider": "tiendanube",
        "endpoint": "/webhooks/tiendanube",
        "methods": ["GET", "POST"],
        "events": {
            "products": ["product/created", "product/updated", "product/deleted"],
            "orders": ["order/created", "order/updated", "order/deleted"],
            "privacy": sorted(PRIVACY_EVENTS),
        },
        "features": [
            "HMAC-SHA256 verification",
            "Idempotency handling",
            "LGPD webhooks support",
            "Product synchronization",
            "Order synchronization",
            "Detailed logging",
        ],
    }
