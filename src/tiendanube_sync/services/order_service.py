"""Order reconciliation and customer-data handling for orders."""

from typing import Any, Dict, Iterable, List

from tiendanube_sync.config.constants import ORDER_PII_FIELDS
from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.db.models import Order, to_dict
from tiendanube_sync.services.normalize import normalize_order
from tiendanube_sync.services.reconciler import BaseReconciler

logger = setup_logger(__name__)


class OrderReconciler(BaseReconciler):
    """Keeps local orders in line with Tiendanube."""

    model = Order
    entity_name = "order"

    async def fetch(self, client, resource_id: int) -> Dict[str, Any]:
        return await client.get_order(resource_id)

    def normalize(self, raw: Dict[str, Any], store_id: int) -> Dict[str, Any]:
        return normalize_order(raw, store_id)

    async def _orders_of_store(self, store_id: int, order_ids: Iterable[int]) -> List[Order]:
        orders = []
        for order_id in order_ids:
            order = await self.find(order_id)
            if order is not None and order.store_id == store_id:
                orders.append(order)
        return orders

    async def redact_customer(self, store_id: int, order_ids: Iterable[int]) -> int:
        """
        Scrub customer personal data from the given orders of a store.

        Line items and totals are kept; contact, billing, shipping and customer
        data are cleared. Running it twice has the same effect as once.

        Returns:
            Number of orders redacted
        """
        orders = await self._orders_of_store(store_id, order_ids)
        scrub = {field: None for field in ORDER_PII_FIELDS}
        scrub.update({"customer": None, "shipping_address": None})

        for order in orders:
            await self.store.patch(order, scrub)

        logger.info(f"Redacted customer data from {len(orders)} orders of store {store_id}")
        return len(orders)

    async def export_customer_data(self, store_id: int, order_ids: Iterable[int]) -> List[Dict[str, Any]]:
        """Collect the stored orders a customer asked for."""
        orders = await self._orders_of_store(store_id, order_ids)
        return [to_dict(order) for order in orders]
