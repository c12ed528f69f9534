"""
Tests for dedupe keys and the idempotency ledger.
"""
from tiendanube_sync.db.models import WebhookLog
from tiendanube_sync.services.idempotency import IdempotencyLedger, dedupe_key, is_always_reprocess


class TestDedupeKey:
    """Key derivation."""

    def test_pure_key_for_regular_events(self):
        assert dedupe_key(42, "product/created", 7) == "42-product/created-7"
        assert dedupe_key(42, "product/created", 7) == dedupe_key(42, "product/created", 7)

    def test_key_without_resource(self):
        assert dedupe_key(42, "app/uninstalled", None) == "42-app/uninstalled-none"

    def test_always_reprocess_keys_are_fresh(self):
        first = dedupe_key(42, "product/updated", 7)
        second = dedupe_key(42, "product/updated", 7)
        assert first != second
        assert first.startswith("42-product/updated-7-")

    def test_order_updated_is_always_reprocess(self):
        assert is_always_reprocess("order/updated")
        assert is_always_reprocess("product/updated")
        assert not is_always_reprocess("order/created")
        assert not is_always_reprocess("product/deleted")


class TestIdempotencyLedger:
    """Ledger lookup and record."""

    async def test_lookup_absent(self, record_store):
        ledger = IdempotencyLedger(record_store)
        assert await ledger.lookup("42-product/created-7") is None

    async def test_record_then_lookup(self, record_store):
        ledger = IdempotencyLedger(record_store)
        await ledger.record(
            "42-product/created-7", 42, "product/created", 7, b'{"id": 7}', "processed"
        )

        entry = await ledger.lookup("42-product/created-7")
        assert entry is not None
        assert entry.store_id == 42
        assert entry.event == "product/created"
        assert entry.resource_id == 7
        assert entry.payload == '{"id": 7}'
        assert entry.status == "processed"
        assert entry.processed_at.endswith("Z")

    async def test_null_resource_and_dict_payload(self, record_store):
        ledger = IdempotencyLedger(record_store)
        await ledger.record("42-app/x-none", 42, "app/x", None, {"store_id": 42}, "unhandled")

        entry = await ledger.lookup("42-app/x-none")
        assert entry.resource_id is None
        assert entry.payload == '{"store_id": 42}'

    async def test_entries_are_appended(self, record_store):
        ledger = IdempotencyLedger(record_store)
        for _ in range(2):
            await ledger.record(dedupe_key(42, "order/updated", 5), 42, "order/updated", 5, "{}", "processed")

        assert len(await record_store.collect(WebhookLog, store_id=42)) == 2
