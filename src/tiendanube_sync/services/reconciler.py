"""Shared reconciliation logic: fetch the upstream record, upsert it locally."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type

from tiendanube_sync.api.client import create_client
from tiendanube_sync.config.constants import (
    ACTION_CREATED,
    ACTION_DELETED,
    ACTION_UPDATED,
    PROVIDER_NAME,
)
from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.db.store import RecordStore
from tiendanube_sync.services.credentials import CredentialProvider, StoreCredentials

logger = setup_logger(__name__)

# Builds a store-scoped upstream client (an async context manager)
ClientFactory = Callable[[StoreCredentials], Any]


@dataclass
class ReconcileResult:
    """Result of one reconciliation: created, updated or deleted."""

    status: str
    entity: Optional[Any] = None


class BaseReconciler:
    """
    Upsert-by-(provider, upstream_id) against the record store.

    Subclasses set `model` and implement `fetch` + `normalize`.
    """

    model: Type[Any]
    entity_name: str = "record"

    def __init__(
        self,
        store: RecordStore,
        credentials: CredentialProvider,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.store = store
        self.credentials = credentials
        self.client_factory = client_factory or create_client

    async def fetch(self, client: Any, resource_id: int) -> Dict[str, Any]:
        raise NotImplementedError

    def normalize(self, raw: Dict[str, Any], store_id: int) -> Dict[str, Any]:
        raise NotImplementedError

    async def find(self, upstream_id: int) -> Optional[Any]:
        """Look up the local record for an upstream id."""
        return await self.store.get_by_index(self.model, provider=PROVIDER_NAME, upstream_id=upstream_id)

    async def upsert(self, fields: Dict[str, Any]) -> ReconcileResult:
        """
        Patch the record if it exists, insert it otherwise.

        Args:
            fields: Normalized column values including upstream_id

        Returns:
            ReconcileResult with status "created" or "updated"
        """
        existing = await self.find(fields["upstream_id"])
        if existing is not None:
            entity = await self.store.patch(existing, fields)
            logger.info(f"Updated {self.entity_name} {fields['upstream_id']}")
            return ReconcileResult(status=ACTION_UPDATED, entity=entity)

        entity = await self.store.insert(self.model, fields)
        logger.info(f"Created {self.entity_name} {fields['upstream_id']}")
        return ReconcileResult(status=ACTION_CREATED, entity=entity)

    async def reconcile(self, store_id: int, resource_id: int) -> ReconcileResult:
        """
        Fetch the full upstream record and upsert its normalized form.

        Raises:
            CredentialsNotFound: No token for the store
            UpstreamError: The fetch failed (nothing is written)
            PersistenceError: The write failed
        """
        credentials = await self.credentials.get(store_id)
        async with self.client_factory(credentials) as client:
            raw = await self.fetch(client, resource_id)
            fields = self.normalize(raw, store_id)
            if fields.get("upstream_id") is None:
                fields["upstream_id"] = resource_id
            return await self.upsert(fields)

    async def delete(self, upstream_id: int) -> ReconcileResult:
        """Delete the local record if present; absent is not an error."""
        existing = await self.find(upstream_id)
        if existing is None:
            logger.info(f"{self.entity_name.capitalize()} {upstream_id} not stored, nothing to delete")
            return ReconcileResult(status=ACTION_DELETED, entity=None)

        await self.store.delete(existing)
        logger.info(f"Deleted {self.entity_name} {upstream_id}")
        return ReconcileResult(status=ACTION_DELETED, entity=existing)
