"""Tiendanube REST API client."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from tiendanube_sync.config.settings import settings
from tiendanube_sync.core.exceptions import UpstreamError
from tiendanube_sync.core.logger import setup_logger
from .endpoints import (
    GET_ORDER,
    GET_PRODUCT,
    GET_STORE,
    LIST_ORDERS,
    LIST_PRODUCT_IMAGES,
    LIST_PRODUCTS,
    LIST_WEBHOOKS,
    TOTAL_COUNT_HEADER,
)

logger = setup_logger(__name__)


@dataclass
class UpstreamPage:
    """One page of a collection endpoint."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    total_count: Optional[int] = None


class TiendanubeAPIClient:
    """
    Async HTTP client for the Tiendanube API, scoped to a single store.

    One instance is built per store-scoped operation; use it as an async
    context manager so the connection pool is closed afterwards.
    """

    def __init__(
        self,
        store_id: int,
        access_token: str,
        user_agent: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client with store credentials."""
        self.store_id = store_id
        self.access_token = access_token
        self.user_agent = user_agent or settings.tiendanube_user_agent
        self.base_url = f"{(base_url or settings.tiendanube_api_base).rstrip('/')}/{store_id}"
        self.client = httpx.AsyncClient(
            timeout=timeout or settings.upstream_timeout_seconds,
            headers={
                "Authentication": f"bearer {access_token}",
                "User-Agent": self.user_agent,
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def __aenter__(self) -> "TiendanubeAPIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _make_request(
        self,
        path: str,
        params: Optional[dict] = None,
    ) -> httpx.Response:
        """
        Make authenticated GET request to the Tiendanube API.

        Args:
            path: Endpoint path relative to the store (e.g. "/products/7")
            params: Query parameters

        Returns:
            The successful httpx response

        Raises:
            UpstreamError: On non-2xx status, timeout or transport failure
        """
        url = f"{self.base_url}{path}"

        try:
            logger.info(f"Making API request to {path} (store {self.store_id})")
            response = await self.client.get(url, params=params)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling {path}: {e}")
            raise UpstreamError(
                message=f"Tiendanube request timed out ({path})",
                status_code=504,
                operation=path,
                timed_out=True,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling {path}: {e}")
            raise UpstreamError(
                message=f"Tiendanube request failed ({path}): {e}",
                operation=path,
            ) from e

        if response.status_code >= 400:
            error = UpstreamError.from_response(path, response)
            logger.error(f"API error calling {path}: {error.message}")
            raise error

        return response

    def _decode(self, path: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Invalid JSON from {path}: {e}")
            raise UpstreamError(
                message=f"Invalid JSON from Tiendanube ({path})",
                status_code=response.status_code,
                operation=path,
                response_text=response.text,
            ) from e

    async def _get_json(self, path: str, params: Optional[dict] = None) -> Any:
        response = await self._make_request(path, params)
        return self._decode(path, response)

    async def _get_page(self, path: str, page: int, per_page: int) -> UpstreamPage:
        try:
            response = await self._make_request(path, {"page": page, "per_page": per_page})
        except UpstreamError as e:
            # Tiendanube answers 404 past the last page
            if e.upstream_status == 404 and page > 1:
                return UpstreamPage(items=[], total_count=None)
            raise

        total = response.headers.get(TOTAL_COUNT_HEADER)
        data = self._decode(path, response)
        return UpstreamPage(
            items=data if isinstance(data, list) else [],
            total_count=int(total) if total and total.isdigit() else None,
        )

    async def get_store(self) -> Dict[str, Any]:
        """Fetch store information."""
        return await self._get_json(GET_STORE)

    async def list_products(self, page: int = 1, per_page: int = 50) -> UpstreamPage:
        """Fetch one page of products."""
        return await self._get_page(LIST_PRODUCTS, page, per_page)

    async def get_product(self, product_id: int) -> Dict[str, Any]:
        """Fetch a single product by id."""
        return await self._get_json(GET_PRODUCT.format(product_id=product_id))

    async def get_product_images(self, product_id: int) -> List[Dict[str, Any]]:
        """Fetch all images of a product."""
        data = await self._get_json(LIST_PRODUCT_IMAGES.format(product_id=product_id))
        return data if isinstance(data, list) else []

    async def list_orders(self, page: int = 1, per_page: int = 100) -> UpstreamPage:
        """Fetch one page of orders."""
        return await self._get_page(LIST_ORDERS, page, per_page)

    async def get_order(self, order_id: int) -> Dict[str, Any]:
        """Fetch a single order by id."""
        return await self._get_json(GET_ORDER.format(order_id=order_id))

    async def list_webhooks(self) -> List[Dict[str, Any]]:
        """Fetch the webhook subscriptions registered for the store."""
        data = await self._get_json(LIST_WEBHOOKS)
        return data if isinstance(data, list) else []

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()


def create_client(credentials) -> TiendanubeAPIClient:
    """Default client factory: one client per store-scoped operation."""
    return TiendanubeAPIClient(
        store_id=credentials.store_id,
        access_token=credentials.access_token,
        user_agent=credentials.user_agent,
    )
