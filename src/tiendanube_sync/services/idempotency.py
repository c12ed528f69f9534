"""Idempotency ledger over the webhook_logs collection."""

import json
import time
from typing import Any, Optional

from tiendanube_sync.config.constants import ALWAYS_REPROCESS_EVENTS
from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.db.models import WebhookLog
from tiendanube_sync.db.store import RecordStore
from tiendanube_sync.services.normalize import utc_now_iso

logger = setup_logger(__name__)


def is_always_reprocess(event: str) -> bool:
    """Whether every delivery of this event must be processed again."""
    return event in ALWAYS_REPROCESS_EVENTS


def dedupe_key(store_id: int, event: str, resource_id: Optional[int]) -> str:
    """
    Derive the dedupe key for a notification.

    Always-reprocess events get a nanosecond timestamp suffix so every delivery
    has a fresh key. All other events map deterministically to
    "<store>-<event>-<resource>", so redeliveries collide.
    """
    key = f"{store_id}-{event}-{resource_id if resource_id is not None else 'none'}"
    if is_always_reprocess(event):
        key = f"{key}-{time.time_ns()}"
    return key


class IdempotencyLedger:
    """Append-only record of handled notifications."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def lookup(self, key: str) -> Optional[WebhookLog]:
        """Return the ledger entry for a key, if one exists."""
        return await self.store.get_by_index(WebhookLog, idempotency_key=key)

    async def record(
        self,
        key: str,
        store_id: int,
        event: str,
        resource_id: Optional[int],
        payload: Any,
        status: str,
    ) -> WebhookLog:
        """
        Write a ledger entry.

        Args:
            key: Dedupe key
            store_id: Store ID
            event: Event name
            resource_id: Resource ID or None
            payload: Raw payload (str/bytes kept as-is, anything else JSON-encoded)
            status: "processed" or "unhandled"
        """
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        elif not isinstance(payload, str):
            payload = json.dumps(payload, default=str)

        entry = await self.store.insert(
            WebhookLog,
            {
                "idempotency_key": key,
                "store_id": store_id,
                "event": event,
                "resource_id": resource_id,
                "payload": payload,
                "processed_at": utc_now_iso(),
                "status": status,
            },
        )
        logger.info(f"Ledger entry written: {key} ({status})")
        return entry
