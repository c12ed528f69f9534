"""
Bulk synchronization of Tiendanube collections.

Each run pages through an upstream collection, reconciles every record, and for
products deletes local records missing upstream (tombstone sweep):

    PAGINATING -> RECONCILING -> SWEEPING -> REPORTING
                      (a failed page fetch ends the run in FAILED)

Runs are sequential within a store. Per-record failures are collected in the
report instead of aborting the run.
"""

import json
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import redis.asyncio as aioredis

from tiendanube_sync.config.constants import (
    ACTION_CREATED,
    SYNC_HISTORY_LENGTH,
    SYNC_HISTORY_MAX_ERRORS,
)
from tiendanube_sync.config.settings import settings
from tiendanube_sync.core.exceptions import AppException
from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.db.models import Product
from tiendanube_sync.db.store import RecordStore
from tiendanube_sync.services.credentials import CredentialProvider
from tiendanube_sync.services.normalize import coerce_int
from tiendanube_sync.services.order_service import OrderReconciler
from tiendanube_sync.services.product_service import ProductReconciler
from tiendanube_sync.services.reconciler import BaseReconciler, ClientFactory

logger = setup_logger(__name__)

RESOURCE_PRODUCTS = "products"
RESOURCE_ORDERS = "orders"

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


class SyncPhase(str, Enum):
    """Sync run state machine."""

    PAGINATING = "paginating"
    RECONCILING = "reconciling"
    SWEEPING = "sweeping"
    REPORTING = "reporting"
    FAILED = "failed"


@dataclass
class SyncReport:
    """Result of a sync run. Always returned, even when records failed."""

    store_id: int
    resource: str
    status: str = STATUS_COMPLETED
    phase: str = SyncPhase.PAGINATING.value
    total_upstream: int = 0
    added: int = 0
    updated: int = 0
    deleted_tombstones: int = 0
    errors: List[str] = field(default_factory=list)
    images_synced: int = 0
    image_errors: int = 0
    started_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SyncStateStore:
    """Per-store sync lock and history in Redis."""

    def __init__(
        self,
        redis_host: str = "redis",
        redis_port: int = 6379,
        redis_db: int = 0,
        lock_timeout: int = 1800,
        redis_client: Optional[aioredis.Redis] = None,
    ):
        self.redis_host = redis_host
        self.redis_port = redis_port
        self.redis_db = redis_db
        self.lock_timeout = lock_timeout
        self._redis = redis_client

    @staticmethod
    def _lock_key(store_id: int) -> str:
        return f"tiendanube:sync:{store_id}:in_progress"

    @staticmethod
    def _history_key(store_id: int) -> str:
        return f"tiendanube:sync:{store_id}:history"

    async def _get_redis(self) -> aioredis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = aioredis.Redis(
                host=self.redis_host,
                port=self.redis_port,
                db=self.redis_db,
                decode_responses=True,
            )
        return self._redis

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def acquire(self, store_id: int) -> bool:
        """Acquire the store's sync lock."""
        redis = await self._get_redis()
        acquired = await redis.set(
            self._lock_key(store_id), value=str(time.time()), nx=True, ex=self.lock_timeout
        )
        return bool(acquired)

    async def release(self, store_id: int) -> None:
        redis = await self._get_redis()
        await redis.delete(self._lock_key(store_id))

    async def in_progress(self, store_id: int) -> bool:
        redis = await self._get_redis()
        return await redis.exists(self._lock_key(store_id)) > 0

    async def record(self, report: SyncReport) -> None:
        """Push a report to the store's history (newest first, bounded)."""
        redis = await self._get_redis()
        entry = report.to_dict()
        entry["errors"] = entry["errors"][:SYNC_HISTORY_MAX_ERRORS]

        key = self._history_key(report.store_id)
        await redis.lpush(key, json.dumps(entry))
        await redis.ltrim(key, 0, SYNC_HISTORY_LENGTH - 1)

    async def history(self, store_id: int) -> List[Dict[str, Any]]:
        redis = await self._get_redis()
        entries = await redis.lrange(self._history_key(store_id), 0, SYNC_HISTORY_LENGTH - 1)
        return [json.loads(entry) for entry in entries]


class ReconciliationService:
    """
    Bulk synchronizer for products and orders of one store at a time.

    Callers wanting throughput run several stores concurrently; pages within a
    store are never fetched in parallel.
    """

    def __init__(
        self,
        store: RecordStore,
        credentials: CredentialProvider,
        client_factory: Optional[ClientFactory] = None,
        state: Optional[SyncStateStore] = None,
        products_page_size: Optional[int] = None,
        orders_page_size: Optional[int] = None,
    ):
        self.store = store
        self.credentials = credentials
        self.products = ProductReconciler(store, credentials, client_factory)
        self.orders = OrderReconciler(store, credentials, client_factory)
        self.client_factory = self.products.client_factory
        self.state = state
        self.products_page_size = products_page_size or settings.products_page_size
        self.orders_page_size = orders_page_size or settings.orders_page_size

    async def _paginate(self, client, resource: str) -> List[Dict[str, Any]]:
        """Fetch every page of a collection. Any page failure propagates."""
        if resource == RESOURCE_PRODUCTS:
            fetch_page, per_page = client.list_products, self.products_page_size
        else:
            fetch_page, per_page = client.list_orders, self.orders_page_size

        records: List[Dict[str, Any]] = []
        page = 1
        while True:
            result = await fetch_page(page=page, per_page=per_page)
            records.extend(result.items)
            logger.debug(f"Fetched {resource} page {page}: {len(result.items)} records")

            if not result.items:
                break
            # The provider caps per_page, so a short page only ends the
            # collection when no total count was reported.
            if result.total_count is not None:
                if len(records) >= result.total_count:
                    break
            elif len(result.items) < per_page:
                break
            page += 1

        return records

    async def _reconcile_records(
        self,
        client,
        reconciler: BaseReconciler,
        records: List[Dict[str, Any]],
        report: SyncReport,
    ) -> None:
        """Upsert every record, isolating failures per record."""
        for raw in records:
            record_id = raw.get("id")
            try:
                fields = reconciler.normalize(raw, report.store_id)
                if fields.get("upstream_id") is None:
                    raise ValueError("record has no id")
                result = await reconciler.upsert(fields)
                if result.status == ACTION_CREATED:
                    report.added += 1
                else:
                    report.updated += 1
            except Exception as e:
                message = e.message if isinstance(e, AppException) else str(e)
                logger.error(f"Error syncing {reconciler.entity_name} {record_id}: {message}")
                report.errors.append(f"{reconciler.entity_name} {record_id}: {message}")
                continue

            if reconciler is self.products:
                await self._sync_images(client, fields["upstream_id"], report)

    async def _sync_images(self, client, product_id: int, report: SyncReport) -> None:
        """Image failures are counted but never fail the product."""
        try:
            report.images_synced += await self.products.sync_images(client, product_id, report.store_id)
        except Exception as e:
            report.image_errors += 1
            logger.warning(f"Error syncing images for product {product_id}: {e}")

    async def _sweep_products(self, records: List[Dict[str, Any]], report: SyncReport) -> None:
        """Delete local products of the store that are absent upstream."""
        upstream_ids = {coerce_int(raw.get("id")) for raw in records}
        try:
            local = await self.store.collect(Product, store_id=report.store_id)
            for product in local:
                if product.upstream_id not in upstream_ids:
                    await self.products.delete(product.upstream_id)
                    report.deleted_tombstones += 1
        except Exception as e:
            logger.error(f"Tombstone sweep failed for store {report.store_id}: {e}", exc_info=True)
            report.errors.append(f"Tombstone sweep failed: {e}")

    async def _run(self, store_id: int, resource: str) -> SyncReport:
        report = SyncReport(store_id=store_id, resource=resource)
        reconciler = self.products if resource == RESOURCE_PRODUCTS else self.orders

        logger.info(f"Starting {resource} sync for store {store_id}")

        try:
            credentials = await self.credentials.get(store_id)
            async with self.client_factory(credentials) as client:
                report.phase = SyncPhase.PAGINATING.value
                records = await self._paginate(client, resource)
                report.total_upstream = len(records)

                report.phase = SyncPhase.RECONCILING.value
                await self._reconcile_records(client, reconciler, records, report)
        except Exception as e:
            expected = isinstance(e, AppException)
            message = e.message if expected else str(e)
            logger.error(f"{resource} sync failed for store {store_id}: {message}", exc_info=not expected)
            report.status = STATUS_FAILED
            report.phase = SyncPhase.FAILED.value
            report.errors.append(message)
            report.completed_at = time.time()
            return report

        if resource == RESOURCE_PRODUCTS:
            report.phase = SyncPhase.SWEEPING.value
            await self._sweep_products(records, report)

        report.phase = SyncPhase.REPORTING.value
        report.completed_at = time.time()
        logger.info(
            f"{resource} sync for store {store_id} done: added={report.added}, "
            f"updated={report.updated}, deleted={report.deleted_tombstones}, errors={len(report.errors)}"
        )
        return report

    async def sync(self, store_id: int, resource: str) -> SyncReport:
        """
        Run one sync, holding the store's lock when Redis is configured.

        Returns:
            SyncReport (status "skipped" when another sync holds the lock)
        """
        if self.state is None:
            return await self._run(store_id, resource)

        if not await self.state.acquire(store_id):
            logger.warning(f"Sync already in progress for store {store_id}, skipping")
            report = SyncReport(
                store_id=store_id,
                resource=resource,
                status=STATUS_SKIPPED,
                errors=["Sync already in progress"],
                completed_at=time.time(),
            )
            return report

        try:
            report = await self._run(store_id, resource)
            await self.state.record(report)
            return report
        finally:
            await self.state.release(store_id)

    async def sync_products(self, store_id: int) -> SyncReport:
        """Synchronize the full product collection (with images and sweep)."""
        return await self.sync(store_id, RESOURCE_PRODUCTS)

    async def sync_orders(self, store_id: int) -> SyncReport:
        """Synchronize the full order collection."""
        return await self.sync(store_id, RESOURCE_ORDERS)

    async def sync_all(self, store_id: int) -> List[SyncReport]:
        """Products then orders, sequentially."""
        return [await self.sync_products(store_id), await self.sync_orders(store_id)]

    async def get_status(self, store_id: int) -> Dict[str, Any]:
        """Sync lock state and recent history for a store."""
        if self.state is None:
            return {"store_id": store_id, "tracking": False, "sync_in_progress": False, "history": []}
        return {
            "store_id": store_id,
            "tracking": True,
            "sync_in_progress": await self.state.in_progress(store_id),
            "history": await self.state.history(store_id),
        }
