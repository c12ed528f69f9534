"""Product reconciliation: products and their images."""

from typing import Any, Dict, List

from tiendanube_sync.core.logger import setup_logger
from tiendanube_sync.db.models import Product, ProductImage
from tiendanube_sync.services.normalize import normalize_image, normalize_product
from tiendanube_sync.services.reconciler import BaseReconciler, ReconcileResult

logger = setup_logger(__name__)


class ProductReconciler(BaseReconciler):
    """Keeps local products in line with Tiendanube."""

    model = Product
    entity_name = "product"

    async def fetch(self, client, resource_id: int) -> Dict[str, Any]:
        return await client.get_product(resource_id)

    def normalize(self, raw: Dict[str, Any], store_id: int) -> Dict[str, Any]:
        return normalize_product(raw, store_id)

    async def delete_images(self, product_id: int) -> int:
        """Delete every stored image of a product. Returns count."""
        images = await self.store.collect(ProductImage, product_id=product_id)
        for image in images:
            await self.store.delete(image)
        return len(images)

    async def delete(self, upstream_id: int) -> ReconcileResult:
        """Delete a product and its images."""
        await self.delete_images(upstream_id)
        return await super().delete(upstream_id)

    async def upsert_images(self, product_id: int, store_id: int, images: List[Dict[str, Any]]) -> int:
        """
        Upsert a product's images by upstream image id.

        Returns:
            Number of images written
        """
        written = 0
        for raw in images:
            fields = normalize_image(raw, product_id, store_id)
            if fields["upstream_id"] is None:
                continue
            existing = await self.store.get_by_index(ProductImage, upstream_id=fields["upstream_id"])
            if existing is not None:
                await self.store.patch(existing, fields)
            else:
                await self.store.insert(ProductImage, fields)
            written += 1
        return written

    async def sync_images(self, client, product_id: int, store_id: int) -> int:
        """Fetch and upsert the images of one product."""
        images = await client.get_product_images(product_id)
        count = await self.upsert_images(product_id, store_id, images)
        logger.debug(f"Synced {count} images for product {product_id}")
        return count

    async def delete_all_for_store(self, store_id: int) -> int:
        """
        Delete every product (and image) of a store.

        Returns:
            Number of products deleted
        """
        products = await self.store.collect(Product, store_id=store_id)
        for product in products:
            await self.delete_images(product.upstream_id)
            await self.store.delete(product)

        # Images whose product row is already gone
        for image in await self.store.collect(ProductImage, store_id=store_id):
            await self.store.delete(image)

        logger.info(f"Deleted {len(products)} products for store {store_id}")
        return len(products)
