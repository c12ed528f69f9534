"""Tiendanube REST API endpoint paths (relative to /{store_id})."""

GET_STORE = "/store"
LIST_PRODUCTS = "/products"
GET_PRODUCT = "/products/{product_id}"
LIST_PRODUCT_IMAGES = "/products/{product_id}/images"
LIST_ORDERS = "/orders"
GET_ORDER = "/orders/{order_id}"
LIST_WEBHOOKS = "/webhooks"

# Pagination total, sent on every collection response
TOTAL_COUNT_HEADER = "x-total-count"
