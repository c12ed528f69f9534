"""
Centralized application constants.

Single point of truth for the business rules shared by the webhook pipeline,
the reconcilers and the bulk synchronizer.
"""

# ==============================================================================
# PROVIDER
# ==============================================================================

PROVIDER_NAME = "tiendanube"

# Accepted signature headers, first non-empty wins
SIGNATURE_HEADERS = ["x-linkedstore-hmac-sha256", "http_x_linkedstore_hmac_sha256"]

# ==============================================================================
# WEBHOOK EVENTS
# ==============================================================================

# Every delivery of these events gets a fresh dedupe key
ALWAYS_REPROCESS_EVENTS = frozenset({"product/updated", "order/updated"})

# Privacy / compliance events, never deduplicated
STORE_REDACT_EVENT = "store/redact"
CUSTOMERS_REDACT_EVENT = "customers/redact"
CUSTOMERS_DATA_REQUEST_EVENT = "customers/data_request"
PRIVACY_EVENTS = frozenset(
    {STORE_REDACT_EVENT, CUSTOMERS_REDACT_EVENT, CUSTOMERS_DATA_REQUEST_EVENT}
)

PRODUCT_NAMESPACE = "product/"
ORDER_NAMESPACE = "order/"

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_DELETED = "deleted"

LEDGER_STATUS_PROCESSED = "processed"
LEDGER_STATUS_UNHANDLED = "unhandled"

# ==============================================================================
# NORMALIZATION
# ==============================================================================

# Language preference for localized upstream fields
LANGUAGE_PREFERENCE = ("es", "en", "pt")

ORDER_DATE_FIELDS = ("completed_at", "cancelled_at", "closed_at", "read_at", "paid_at")

ORDER_OPTIONAL_FIELDS = (
    "discount_coupon",
    "contact_phone",
    "contact_identification",
    "billing_phone",
    "billing_floor",
    "billing_customer_type",
    "billing_business_activity",
    "billing_business_name",
    "billing_trade_name",
    "billing_state_registration",
    "billing_fiscal_regime",
    "billing_invoice_use",
    "billing_document_type",
    "gateway_id",
    "cancel_reason",
    "owner_note",
    "gateway_link",
    "app_id",
)

ORDER_MONEY_FIELDS = (
    "subtotal",
    "discount",
    "discount_gateway",
    "total",
    "total_usd",
    "total_paid_by_customer",
)

# Personal data wiped by customers/redact
ORDER_PII_FIELDS = (
    "contact_name",
    "contact_email",
    "contact_phone",
    "contact_identification",
    "billing_name",
    "billing_phone",
    "billing_address",
    "billing_number",
    "billing_floor",
    "billing_locality",
    "billing_zipcode",
    "billing_city",
    "billing_province",
    "billing_country",
)

# ==============================================================================
# SYNC
# ==============================================================================

# Sync history entries kept per store
SYNC_HISTORY_LENGTH = 10

# Errors kept per history entry
SYNC_HISTORY_MAX_ERRORS = 5
