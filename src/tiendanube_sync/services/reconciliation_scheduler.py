"""
Reconciliation Scheduler using APScheduler.

Runs the daily full sync (products then orders) for every configured store at
DAILY_SYNC_HOUR. Stores run concurrently, each with its own database session.
"""

import asyncio
from typing import Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.db.store import SQLRecordStore
from tiendanube_sync.services.credentials import CredentialProvider
from tiendanube_sync.services.reconciler import ClientFactory
from tiendanube_sync.services.reconciliation_service import (
    STATUS_FAILED,
    ReconciliationService,
    SyncStateStore,
)

logger = setup_logger(__name__)


class ReconciliationScheduler:
    """Manages the scheduled sync job."""

    def __init__(
        self,
        session_factory: Callable,
        credentials: CredentialProvider,
        store_ids: List[int],
        daily_sync_hour: int = 3,
        state: Optional[SyncStateStore] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.session_factory = session_factory
        self.credentials = credentials
        self.store_ids = store_ids
        self.daily_sync_hour = daily_sync_hour
        self.state = state
        self.client_factory = client_factory
        self.scheduler = AsyncIOScheduler()
        self._started = False

    def start(self) -> None:
        """Start scheduler with the daily job."""
        if self._started:
            logger.warning("Scheduler already started")
            return

        self.scheduler.add_job(
            self.run_daily_sync,
            CronTrigger(hour=self.daily_sync_hour, minute=0),
            id="daily_full_sync",
            name="Daily Tiendanube Sync",
            replace_existing=True,
        )
        logger.info(
            f"Added daily sync job at {self.daily_sync_hour:02d}:00 for stores {self.store_ids}"
        )

        self.scheduler.start()
        self._started = True
        logger.info("Reconciliation scheduler started")

    def stop(self) -> None:
        """Stop scheduler."""
        if not self._started:
            return

        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Reconciliation scheduler stopped")

    async def _sync_store(self, store_id: int) -> None:
        async with self.session_factory() as session:
            service = ReconciliationService(
                SQLRecordStore(session),
                self.credentials,
                client_factory=self.client_factory,
                state=self.state,
            )
            for report in await service.sync_all(store_id):
                if report.status == STATUS_FAILED:
                    logger.warning(f"Daily {report.resource} sync failed for store {store_id}: {report.errors}")
                else:
                    logger.info(
                        f"Daily {report.resource} sync for store {store_id}: {report.status}, "
                        f"added={report.added}, updated={report.updated}, errors={len(report.errors)}"
                    )

    async def run_daily_sync(self) -> None:
        """Wrapper for the daily sync with error handling."""
        logger.info("Daily sync triggered")
        results = await asyncio.gather(
            *(self._sync_store(store_id) for store_id in self.store_ids),
            return_exceptions=True,
        )
        for store_id, result in zip(self.store_ids, results):
            if isinstance(result, Exception):
                logger.error(f"Daily sync crashed for store {store_id}: {result}", exc_info=result)

    def get_next_run_time(self) -> Optional[str]:
        """Next scheduled run, ISO formatted."""
        job = self.scheduler.get_job("daily_full_sync")
        if job and job.next_run_time:
            return job.next_run_time.isoformat()
        return None
