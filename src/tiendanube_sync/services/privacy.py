"""
Privacy (LGPD) webhook handling.

These events bypass the idempotency ledger: erasure is naturally idempotent and
must never be deduplicated away.
"""

import json
from typing import Any, Dict

from tiendanube_sync.config.constants import (
    CUSTOMERS_DATA_REQUEST_EVENT,
    CUSTOMERS_REDACT_EVENT,
    STORE_REDACT_EVENT,
)
from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.models.webhook import (
    CustomerDataRequest,
    CustomerRedactRequest,
    WebhookNotification,
    parse_privacy_request,
)
from tiendanube_sync.services.order_service import OrderReconciler
from tiendanube_sync.services.product_service import ProductReconciler

logger = setup_logger(__name__)


class PrivacyHandler:
    """Runs the compliance action for a privacy event."""

    def __init__(self, products: ProductReconciler, orders: OrderReconciler):
        self.products = products
        self.orders = orders

    async def handle(self, notification: WebhookNotification) -> Dict[str, Any]:
        """
        Perform the compliance action for a privacy event.

        Returns:
            Summary of what was done
        """
        if notification.event == STORE_REDACT_EVENT:
            deleted = await self.products.delete_all_for_store(notification.store_id)
            logger.info(f"store/redact: deleted {deleted} products for store {notification.store_id}")
            return {"products_deleted": deleted}

        if notification.event == CUSTOMERS_REDACT_EVENT:
            request = parse_privacy_request(CustomerRedactRequest, notification)
            redacted = await self.orders.redact_customer(request.store_id, request.orders_to_redact)
            logger.info(f"customers/redact: redacted {redacted} orders for store {request.store_id}")
            return {"orders_redacted": redacted}

        if notification.event == CUSTOMERS_DATA_REQUEST_EVENT:
            request = parse_privacy_request(CustomerDataRequest, notification)
            orders = await self.orders.export_customer_data(request.store_id, request.orders_requested)
            customer_id = request.customer.id if request.customer else None
            # Delivery to the merchant happens outside this service
            logger.info(
                f"customers/data_request: export bundle for customer {customer_id} "
                f"of store {request.store_id}: {json.dumps(orders, default=str)}"
            )
            return {"orders_exported": len(orders)}

        logger.warning(f"Unknown privacy event: {notification.event}")
        return {}
