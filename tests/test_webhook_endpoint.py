"""
Tests for the Tiendanube webhook endpoint.

Covers the full pipeline: signature, parsing, privacy short-circuit,
deduplication, dispatch and error mapping.
"""
import json
import logging

from tiendanube_sync.core.logger import JSONFormatter
from tiendanube_sync.db.models import Order, Product, WebhookLog

from conftest import STORE_ID, sign, webhook_body

WEBHOOK_URL = "/webhooks/tiendanube"


async def post_webhook(client, body: bytes, signed: bool = True, header: str = "x-linkedstore-hmac-sha256"):
    headers = {"content-type": "application/json"}
    if signed:
        headers[header] = sign(body)
    return await client.post(WEBHOOK_URL, content=body, headers=headers)


class TestSignatureStage:
    """401 on mismatch, skipped when absent."""

    async def test_invalid_signature_rejected(self, test_client, record_store, fake_client):
        body = webhook_body(store_id=STORE_ID, event="product/created", id=7)

        response = await test_client.post(
            WEBHOOK_URL, content=body, headers={"x-linkedstore-hmac-sha256": "0" * 64}
        )

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid webhook signature"}
        assert await record_store.collect(WebhookLog) == []
        assert fake_client.calls.get("get_product", 0) == 0

    async def test_missing_signature_is_processed(self, test_client, record_store):
        body = webhook_body(store_id=STORE_ID, event="product/created", id=7)

        response = await post_webhook(test_client, body, signed=False)

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": True}
        assert len(await record_store.collect(Product, upstream_id=7)) == 1

    async def test_fallback_header_name(self, test_client):
        body = webhook_body(store_id=STORE_ID, event="product/created", id=7)

        response = await post_webhook(test_client, body, header="HTTP_X_LINKEDSTORE_HMAC_SHA256")

        assert response.status_code == 200


class TestParseStage:
    """400 on malformed bodies, no ledger entry."""

    async def test_invalid_json(self, test_client, record_store):
        response = await post_webhook(test_client, b"{not json")

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert await record_store.collect(WebhookLog) == []

    async def test_missing_event(self, test_client, record_store):
        response = await post_webhook(test_client, webhook_body(store_id=STORE_ID, id=7))

        assert response.status_code == 400
        assert await record_store.collect(WebhookLog) == []

    async def test_missing_store_id(self, test_client):
        response = await post_webhook(test_client, webhook_body(event="product/created", id=7))
        assert response.status_code == 400

    async def test_non_object_body(self, test_client):
        response = await post_webhook(test_client, b"[1, 2, 3]")
        assert response.status_code == 400


class TestDeduplication:
    """Exactly-once for regular events, always for *updated."""

    async def test_duplicate_created_runs_once(self, test_client, fake_client, record_store):
        body = webhook_body(store_id=STORE_ID, event="product/created", id=7)

        first = await post_webhook(test_client, body)
        second = await post_webhook(test_client, body)

        assert first.json() == {"success": True, "processed": True}
        assert second.status_code == 200
        assert second.json() == {"success": True, "duplicate": True}
        assert fake_client.calls["get_product"] == 1
        assert len(await record_store.collect(WebhookLog)) == 1

    async def test_updated_is_reprocessed(self, test_client, fake_client, record_store):
        body = webhook_body(store_id=STORE_ID, event="product/updated", id=7)

        first = await post_webhook(test_client, body)
        second = await post_webhook(test_client, body)

        assert first.json()["processed"] is True
        assert second.json()["processed"] is True
        assert "duplicate" not in second.json()
        assert fake_client.calls["get_product"] == 2
        assert len(await record_store.collect(WebhookLog)) == 2

    async def test_order_updated_is_reprocessed(self, test_client, fake_client):
        body = webhook_body(store_id=STORE_ID, event="order/updated", id=501)

        await post_webhook(test_client, body)
        await post_webhook(test_client, body)

        assert fake_client.calls["get_order"] == 2


class TestDispatch:
    """Routing by namespace and action."""

    async def test_product_deleted_example(self, test_client, record_store, credentials, client_factory):
        from tiendanube_sync.services.product_service import ProductReconciler

        await ProductReconciler(record_store, credentials, client_factory).reconcile(STORE_ID, 7)
        body = webhook_body(store_id=STORE_ID, event="product/deleted", id=7)

        response = await post_webhook(test_client, body)

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": True}
        assert await record_store.collect(Product, provider="tiendanube", upstream_id=7) == []
        logs = await record_store.collect(WebhookLog)
        assert len(logs) == 1
        assert logs[0].status == "processed"
        assert logs[0].event == "product/deleted"
        assert logs[0].resource_id == 7

    async def test_order_created(self, test_client, record_store):
        body = webhook_body(store_id=STORE_ID, event="order/created", id=501)

        response = await post_webhook(test_client, body)

        assert response.json() == {"success": True, "processed": True}
        orders = await record_store.collect(Order, upstream_id=501)
        assert len(orders) == 1
        assert orders[0].state == "paid"

    async def test_unhandled_namespace_acknowledged(self, test_client, record_store, fake_client):
        body = webhook_body(store_id=STORE_ID, event="category/created", id=3)

        response = await post_webhook(test_client, body)

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": False}
        logs = await record_store.collect(WebhookLog)
        assert len(logs) == 1
        assert logs[0].status == "unhandled"
        assert fake_client.calls == {}

    async def test_unknown_action_ignored(self, test_client, fake_client):
        body = webhook_body(store_id=STORE_ID, event="order/packed", id=501)

        response = await post_webhook(test_client, body)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert fake_client.calls.get("get_order", 0) == 0


class TestPrivacyEvents:
    """LGPD events bypass the ledger."""

    async def test_store_redact_example(self, test_client, record_store, credentials, client_factory):
        from tiendanube_sync.services.product_service import ProductReconciler

        products = ProductReconciler(record_store, credentials, client_factory)
        await products.reconcile(STORE_ID, 7)
        await products.reconcile(STORE_ID, 8)
        body = webhook_body(store_id=STORE_ID, event="store/redact")

        response = await post_webhook(test_client, body)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert await record_store.collect(Product, store_id=STORE_ID) == []
        assert await record_store.collect(WebhookLog) == []

    async def test_privacy_events_are_never_deduplicated(self, test_client, record_store):
        body = webhook_body(store_id=STORE_ID, event="store/redact")

        first = await post_webhook(test_client, body)
        second = await post_webhook(test_client, body)

        assert "duplicate" not in first.json()
        assert "duplicate" not in second.json()

    async def test_customers_redact(self, test_client, record_store):
        await post_webhook(test_client, webhook_body(store_id=STORE_ID, event="order/created", id=501))
        body = webhook_body(
            store_id=STORE_ID,
            event="customers/redact",
            customer={"id": 9, "email": "ana@example.com"},
            orders_to_redact=[501],
        )

        response = await post_webhook(test_client, body)

        assert response.json()["orders_redacted"] == 1
        order = (await record_store.collect(Order, upstream_id=501))[0]
        assert order.contact_email is None

    async def test_customers_data_request(self, test_client):
        await post_webhook(test_client, webhook_body(store_id=STORE_ID, event="order/created", id=501))
        body = webhook_body(
            store_id=STORE_ID,
            event="customers/data_request",
            customer={"id": 9},
            orders_requested=[501],
        )

        response = await post_webhook(test_client, body)

        assert response.status_code == 200
        assert response.json()["orders_exported"] == 1


    async def test_malformed_redact_payload_is_rejected(self, test_client, record_store):
        body = webhook_body(store_id=STORE_ID, event="customers/redact", orders_to_redact=None)

        response = await post_webhook(test_client, body)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "orders_to_redact" in response.json()["error"]
        assert await record_store.collect(WebhookLog) == []

    async def test_malformed_data_request_payload_is_rejected(self, test_client):
        body = webhook_body(store_id=STORE_ID, event="customers/data_request", orders_requested=["abc"])

        response = await post_webhook(test_client, body)

        assert response.status_code == 400
        assert "orders_requested" in response.json()["error"]


class TestErrorMapping:
    """Failures become JSON with the right status."""

    async def test_upstream_error_returns_500(self, test_client, fake_client, record_store):
        fake_client.failing_ids.add(7)
        body = webhook_body(store_id=STORE_ID, event="product/created", id=7)

        response = await post_webhook(test_client, body)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "error" in response.json()
        assert await record_store.collect(Product) == []

    async def test_missing_credentials_acknowledged(self, test_client):
        body = webhook_body(store_id=999, event="product/created", id=7)

        response = await post_webhook(test_client, body)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["processed"] is False
        assert "999" in data["error"]


class TestCapabilityAndLogs:
    """GET endpoints."""

    async def test_capability_payload(self, test_client):
        response = await test_client.get(WEBHOOK_URL)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "active"
        assert "HMAC-SHA256 verification" in data["features"]
        assert "store/redact" in data["events"]["privacy"]

    async def test_webhook_logs_newest_first(self, test_client):
        await post_webhook(test_client, webhook_body(store_id=STORE_ID, event="category/created", id=1))
        await post_webhook(test_client, webhook_body(store_id=STORE_ID, event="category/created", id=2))

        response = await test_client.get("/api/webhooks/logs", params={"limit": 1})

        data = response.json()
        assert data["count"] == 1
        assert data["logs"][0]["resource_id"] == 2


class TestRequestLogging:
    """Every pipeline log line of a delivery carries the same request id."""

    async def test_log_records_share_request_id(self, test_client, caplog):
        caplog.set_level(logging.INFO)
        body = webhook_body(store_id=STORE_ID, event="product/created", id=7)

        await post_webhook(test_client, body)

        records = [r for r in caplog.records if hasattr(r, "request_id")]
        assert [r.getMessage().split(":")[0] for r in records] == [
            "Processing webhook",
            "Webhook product/created done",
        ]
        assert len({r.request_id for r in records}) == 1
        assert records[-1].store_id == STORE_ID
        assert records[-1].event == "product/created"
        assert records[-1].resource_id == 7

    async def test_rejected_delivery_is_logged_with_request_id(self, test_client, caplog):
        caplog.set_level(logging.INFO)

        await post_webhook(test_client, b"{not json")

        rejected = [r for r in caplog.records if r.getMessage().startswith("Rejected webhook")]
        assert rejected and rejected[0].request_id

    def test_json_formatter_includes_extra_fields(self):
        record = logging.LogRecord("tiendanube_sync.test", logging.INFO, __file__, 1, "hello", None, None)
        record.request_id = "abc123"
        record.store_id = STORE_ID

        line = json.loads(JSONFormatter().format(record))

        assert line["message"] == "hello"
        assert line["request_id"] == "abc123"
        assert line["store_id"] == STORE_ID
        assert "event" not in line
