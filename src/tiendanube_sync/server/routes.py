"""API routes: Tiendanube webhook endpoint and operator endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tiendanube_sync import __version__
from tiendanube_sync.api.client import create_client
from tiendanube_sync.config.settings import settings
from tiendanube_sync.core.exceptions import ValidationError
from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.db.models import WebhookLog, to_dict
from tiendanube_sync.db.store import RecordStore, SQLRecordStore
from tiendanube_sync.handlers.webhook import EventRouter, WebhookPipeline, capability_payload
from tiendanube_sync.models.sync import SyncRequest
from tiendanube_sync.services.credentials import CredentialProvider, TokenFileCredentialProvider
from tiendanube_sync.services.reconciler import ClientFactory
from tiendanube_sync.services.reconciliation_service import (
    STATUS_SKIPPED,
    ReconciliationService,
    SyncReport,
    SyncStateStore,
)

logger = setup_logger(__name__)
router = APIRouter()


# ==============================================================================
# DEPENDENCIES (overridden by create_app and by tests)
# ==============================================================================


async def get_db_session_stub() -> AsyncSession:
    """Stub replaced with the real session dependency in create_app."""
    raise RuntimeError("Database session dependency not configured")


async def get_record_store(session: AsyncSession = Depends(get_db_session_stub)) -> RecordStore:
    return SQLRecordStore(session)


def get_credential_provider(request: Request) -> CredentialProvider:
    provider = getattr(request.app.state, "credentials", None)
    return provider or TokenFileCredentialProvider()


def get_client_factory() -> ClientFactory:
    return create_client


def get_sync_state(request: Request) -> Optional[SyncStateStore]:
    return getattr(request.app.state, "sync_state", None)


def get_webhook_secret() -> Optional[str]:
    return settings.tiendanube_app_secret


def resolve_store_id(store_id: Optional[int]) -> int:
    """Explicit store id, or the configured default store."""
    resolved = store_id or settings.tiendanube_user_id
    if not resolved:
        raise ValidationError("storeId is required", field="storeId")
    return resolved


# ==============================================================================
# SERVICE INFO
# ==============================================================================


@router.get("/")
async def root() -> dict:
    """Root endpoint with basic service info."""
    return {
        "service": "Tiendanube Sync",
        "version": __version__,
        "endpoints": {
            "webhook": "POST /webhooks/tiendanube",
            "sync_products": "POST /api/sync/products",
            "sync_orders": "POST /api/sync/orders",
            "sync_status": "GET /api/sync/status",
            "webhook_logs": "GET /api/webhooks/logs",
            "health": "GET /health",
        },
    }


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint for monitoring."""
    scheduler = getattr(request.app.state, "scheduler", None)
    checks = {
        "app_secret": "ok" if settings.tiendanube_app_secret else "missing",
        "access_token": "ok" if settings.tiendanube_access_token else "not_set",
        "redis": "enabled" if settings.redis_enabled else "disabled",
        "scheduled_sync": "enabled" if settings.scheduled_sync_enabled else "disabled",
    }
    status = "healthy" if checks["app_secret"] == "ok" else "degraded"
    return {
        "status": status,
        "service": "tiendanube-sync",
        "checks": checks,
        "next_scheduled_sync": scheduler.get_next_run_time() if scheduler else None,
    }


# ==============================================================================
# WEBHOOK
# ==============================================================================


@router.get("/webhooks/tiendanube")
async def tiendanube_webhook_info() -> dict:
    """Static capability payload for health checks."""
    return capability_payload()


@router.post("/webhooks/tiendanube")
async def tiendanube_webhook(
    request: Request,
    store: RecordStore = Depends(get_record_store),
    credentials: CredentialProvider = Depends(get_credential_provider),
    client_factory: ClientFactory = Depends(get_client_factory),
    secret: Optional[str] = Depends(get_webhook_secret),
) -> JSONResponse:
    """
    Main Tiendanube webhook endpoint.

    The body is read raw (signature is computed over the exact bytes) and the
    notification is processed to completion before answering.
    """
    raw_body = await request.body()

    pipeline = WebhookPipeline(EventRouter(store, credentials, client_factory), secret)
    outcome = await pipeline.handle(raw_body, request.headers)

    return JSONResponse(status_code=outcome.status_code, content=outcome.to_response())


# ==============================================================================
# OPERATOR: SYNC
# ==============================================================================


def _report_response(report: SyncReport) -> JSONResponse:
    status_code = 409 if report.status == STATUS_SKIPPED else 200
    return JSONResponse(status_code=status_code, content=report.to_dict())


@router.post("/api/sync/products")
async def sync_products(
    payload: Optional[SyncRequest] = None,
    store: RecordStore = Depends(get_record_store),
    credentials: CredentialProvider = Depends(get_credential_provider),
    client_factory: ClientFactory = Depends(get_client_factory),
    state: Optional[SyncStateStore] = Depends(get_sync_state),
) -> JSONResponse:
    """Synchronize every product of a store (images and tombstone sweep included)."""
    store_id = resolve_store_id(payload.store_id if payload else None)
    service = ReconciliationService(store, credentials, client_factory=client_factory, state=state)
    return _report_response(await service.sync_products(store_id))


@router.post("/api/sync/orders")
async def sync_orders(
    payload: Optional[SyncRequest] = None,
    store: RecordStore = Depends(get_record_store),
    credentials: CredentialProvider = Depends(get_credential_provider),
    client_factory: ClientFactory = Depends(get_client_factory),
    state: Optional[SyncStateStore] = Depends(get_sync_state),
) -> JSONResponse:
    """Synchronize every order of a store."""
    store_id = resolve_store_id(payload.store_id if payload else None)
    service = ReconciliationService(store, credentials, client_factory=client_factory, state=state)
    return _report_response(await service.sync_orders(store_id))


@router.get("/api/sync/status")
async def sync_status(
    store_id: Optional[int] = Query(None, alias="storeId"),
    store: RecordStore = Depends(get_record_store),
    credentials: CredentialProvider = Depends(get_credential_provider),
    state: Optional[SyncStateStore] = Depends(get_sync_state),
) -> Dict[str, Any]:
    """Lock state and recent sync history of a store."""
    service = ReconciliationService(store, credentials, state=state)
    return await service.get_status(resolve_store_id(store_id))


# ==============================================================================
# OPERATOR: LEDGER AND PROVIDER PROXIES
# ==============================================================================


@router.get("/api/webhooks/logs")
async def webhook_logs(
    limit: int = Query(50, ge=1, le=500),
    skip: int = Query(0, ge=0),
    store: RecordStore = Depends(get_record_store),
) -> Dict[str, Any]:
    """Page through the webhook ledger, newest first."""
    logs = await store.collect(WebhookLog, order_by=WebhookLog.id.desc(), limit=limit, offset=skip)
    return {
        "logs": [to_dict(log) for log in logs],
        "count": len(logs),
        "limit": limit,
        "skip": skip,
    }


@router.get("/api/tiendanube/store")
async def tiendanube_store(
    store_id: Optional[int] = Query(None, alias="storeId"),
    credentials: CredentialProvider = Depends(get_credential_provider),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    """Store information as reported by Tiendanube."""
    store_credentials = await credentials.get(resolve_store_id(store_id))
    async with client_factory(store_credentials) as client:
        return await client.get_store()


@router.get("/api/tiendanube/webhooks")
async def tiendanube_webhooks(
    store_id: Optional[int] = Query(None, alias="storeId"),
    credentials: CredentialProvider = Depends(get_credential_provider),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    """Webhook subscriptions registered with Tiendanube for a store."""
    resolved = resolve_store_id(store_id)
    store_credentials = await credentials.get(resolved)
    async with client_factory(store_credentials) as client:
        webhooks = await client.list_webhooks()
    return {"store_id": resolved, "webhooks": webhooks, "count": len(webhooks)}
