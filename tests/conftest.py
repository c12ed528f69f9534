"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- A fake Tiendanube API client (no network)
- The FastAPI app with dependencies overridden
"""
import hashlib
import hmac
import json
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tiendanube_sync.api.client import UpstreamPage
from tiendanube_sync.core.exceptions import CredentialsNotFound, UpstreamError
from tiendanube_sync.db.base import Base
from tiendanube_sync.db.store import SQLRecordStore
from tiendanube_sync.services.credentials import CredentialProvider, StoreCredentials

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_SECRET = "test-app-secret"
STORE_ID = 42


# ============================================================================
# Fakes
# ============================================================================


class FakeTiendanubeClient:
    """In-memory stand-in for TiendanubeAPIClient."""

    def __init__(
        self,
        products: Optional[List[Dict[str, Any]]] = None,
        orders: Optional[List[Dict[str, Any]]] = None,
        images: Optional[Dict[int, List[Dict[str, Any]]]] = None,
    ):
        self.products: Dict[int, Dict[str, Any]] = {p["id"]: p for p in (products or [])}
        self.orders: Dict[int, Dict[str, Any]] = {o["id"]: o for o in (orders or [])}
        self.images = images or {}
        self.failing_ids: set = set()
        self.failing_pages: set = set()
        self.failing_images: set = set()
        self.max_per_page: Optional[int] = None
        self.calls: Dict[str, int] = {}

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    def set_products(self, products: List[Dict[str, Any]]) -> None:
        self.products = {p["id"]: p for p in products}

    async def __aenter__(self) -> "FakeTiendanubeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def get_product(self, product_id: int) -> Dict[str, Any]:
        self._count("get_product")
        if product_id in self.failing_ids or product_id not in self.products:
            raise UpstreamError("Tiendanube server error 500", status_code=500, operation="get_product")
        return self.products[product_id]

    async def get_order(self, order_id: int) -> Dict[str, Any]:
        self._count("get_order")
        if order_id in self.failing_ids or order_id not in self.orders:
            raise UpstreamError("Tiendanube server error 500", status_code=500, operation="get_order")
        return self.orders[order_id]

    async def get_product_images(self, product_id: int) -> List[Dict[str, Any]]:
        self._count("get_product_images")
        if product_id in self.failing_images:
            raise UpstreamError("Tiendanube rate limit exceeded", status_code=429)
        return self.images.get(product_id, [])

    def _page(self, records: List[Dict[str, Any]], page: int, per_page: int) -> UpstreamPage:
        if page in self.failing_pages:
            raise UpstreamError("Tiendanube server error 502", status_code=502)
        if self.max_per_page is not None:
            per_page = min(per_page, self.max_per_page)
        start = (page - 1) * per_page
        return UpstreamPage(items=records[start:start + per_page], total_count=len(records))

    async def list_products(self, page: int = 1, per_page: int = 50) -> UpstreamPage:
        self._count("list_products")
        return self._page(list(self.products.values()), page, per_page)

    async def list_orders(self, page: int = 1, per_page: int = 100) -> UpstreamPage:
        self._count("list_orders")
        return self._page(list(self.orders.values()), page, per_page)

    async def get_store(self) -> Dict[str, Any]:
        return {"id": STORE_ID, "name": {"es": "Tienda de prueba"}}

    async def list_webhooks(self) -> List[Dict[str, Any]]:
        return [{"id": 1, "event": "product/updated", "url": "https://example.com/webhooks/tiendanube"}]


class StaticCredentialProvider(CredentialProvider):
    """Credentials for a fixed set of stores."""

    def __init__(self, store_ids=(STORE_ID,)):
        self.store_ids = set(store_ids)

    async def get(self, store_id: int) -> StoreCredentials:
        if store_id not in self.store_ids:
            raise CredentialsNotFound(store_id)
        return StoreCredentials(store_id=store_id, access_token="test-token", user_agent="tests")


def make_product(product_id: int, **overrides) -> Dict[str, Any]:
    product = {
        "id": product_id,
        "name": {"es": f"Reloj {product_id}", "pt": f"Relógio {product_id}"},
        "description": {"es": "<p>Descripción</p>"},
        "handle": {"es": f"reloj-{product_id}"},
        "published": True,
        "free_shipping": False,
        "brand": "TimeFlies",
        "tags": "reloj,acero",
        "variants": [
            {"price": "1500.00", "promotional_price": None, "stock": 3, "weight": "0.2", "sku": f"SKU-{product_id}", "cost": "700"}
        ],
        "created_at": "2025-01-10T12:00:00+0000",
        "updated_at": "2025-01-11T12:00:00+0000",
    }
    product.update(overrides)
    return product


def make_order(order_id: int, **overrides) -> Dict[str, Any]:
    order = {
        "id": order_id,
        "store_id": str(STORE_ID),
        "number": 100 + order_id,
        "token": f"tok-{order_id}",
        "contact_name": "Ana Pérez",
        "contact_email": "ana@example.com",
        "contact_phone": "+5491100000000",
        "billing_name": "Ana Pérez",
        "billing_address": "Calle Falsa",
        "billing_number": "123",
        "billing_city": "Buenos Aires",
        "subtotal": "3000.00",
        "discount": "0.00",
        "total": 3100,
        "currency": "ARS",
        "gateway": "mercadopago",
        "status": "open",
        "payment_status": "paid",
        "shipping_status": "unpacked",
        "created_at": "2025-02-01T10:00:00+0000",
        "updated_at": "2025-02-01T10:05:00+0000",
        "paid_at": {"date": "2025-02-01 10:04:00.000000", "timezone_type": 3, "timezone": "UTC"},
        "customer": {"id": 9, "name": "Ana Pérez", "email": "ana@example.com"},
        "shipping_address": {"address": "Calle Falsa", "number": "123"},
        "products": [
            {"product_id": 7, "variant_id": 70, "name": "Reloj 7", "sku": "SKU-7", "quantity": "2", "price": "1500.00"}
        ],
    }
    order.update(overrides)
    return order


def sign(body: bytes, secret: str = TEST_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def webhook_body(**payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


# ============================================================================
# Database
# ============================================================================


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    session_maker = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def record_store(db_session) -> SQLRecordStore:
    return SQLRecordStore(db_session)


# ============================================================================
# Upstream
# ============================================================================


@pytest.fixture
def fake_client() -> FakeTiendanubeClient:
    return FakeTiendanubeClient(
        products=[make_product(7), make_product(8)],
        orders=[make_order(501)],
        images={7: [{"id": 7001, "product_id": 7, "src": "https://cdn.example.com/7.jpg", "position": 1}]},
    )


@pytest.fixture
def client_factory(fake_client):
    return lambda credentials: fake_client


@pytest.fixture
def credentials() -> StaticCredentialProvider:
    return StaticCredentialProvider()


# ============================================================================
# HTTP
# ============================================================================


@pytest.fixture(scope="function")
async def test_client(db_session, credentials, client_factory):
    """Create test client with database, credential and upstream overrides"""
    from tiendanube_sync.server import routes
    from tiendanube_sync.server.app import create_app

    app = create_app(database_url=TEST_DATABASE_URL)

    async def override_get_db():
        yield db_session

    app.dependency_overrides[routes.get_db_session_stub] = override_get_db
    app.dependency_overrides[routes.get_credential_provider] = lambda: credentials
    app.dependency_overrides[routes.get_client_factory] = lambda: client_factory
    app.dependency_overrides[routes.get_webhook_secret] = lambda: TEST_SECRET

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    await app.state.engine.dispose()
