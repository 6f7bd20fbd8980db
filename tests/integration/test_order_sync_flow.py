"""Flujo completo: webhook -> cola -> despachador -> Shopify -> mapping."""

import pytest


async def post_event(client, event, data):
    response = await client.post("/webhook/appmax", json={"event": event, "data": data})
    assert response.status_code == 200
    return response.json()


class TestOrderSyncFlow:
    """Tests de extremo a extremo con base SQLite y Shopify en memoria."""

    @pytest.mark.asyncio
    async def test_paid_order_is_created_once(self, client, app, shopify, appmax_order):
        """Un OrderPaid produce una fila, un pedido pagado en Shopify y el mapping."""
        ack = await post_event(client, "OrderPaid", appmax_order)
        assert ack["status"] == "queued"

        result = await app.state.dispatcher.process_pending()

        assert result["succeeded"] == 1
        assert len(shopify.orders) == 1
        sink_id, order = next(iter(shopify.orders.items()))
        assert order["financial_status"] == "paid"

        mapping = await app.state.mapping_repository.get_mapping("3173109")
        assert mapping.sink_order_id == sink_id
        assert mapping.last_sync_state == "paid"

        row = await app.state.queue_repository.get(ack["request_id"])
        assert row.status == "succeeded"

    @pytest.mark.asyncio
    async def test_duplicate_webhook_does_not_duplicate_order(self, client, app, shopify, order_factory):
        """El mismo OrderApproved dos veces deja un solo pedido y dos filas exitosas."""
        data = order_factory(555)
        await post_event(client, "OrderApproved", data)
        await post_event(client, "OrderApproved", data)

        await app.state.dispatcher.process_pending()

        assert len(shopify.orders) == 1
        assert len(shopify.calls_named("create_order")) == 1
        counts = await app.state.queue_repository.count_by_status()
        assert counts == {"pending": 0, "succeeded": 2, "failed": 0}

    @pytest.mark.asyncio
    async def test_cancel_without_order_is_skipped(self, client, app, shopify, appmax_order):
        """Un pago rechazado de un pedido nunca sincronizado no crea nada."""
        await post_event(client, "PaymentNotAuthorized", appmax_order)

        result = await app.state.dispatcher.process_pending()

        assert result["succeeded"] == 1
        assert shopify.orders == {}
        assert shopify.calls_named("cancel_order") == []
        assert await app.state.mapping_repository.get("3173109") is None

    @pytest.mark.asyncio
    async def test_pending_then_paid_then_refunded(self, client, app, shopify, appmax_order):
        await post_event(client, "OrderPixGenerated", appmax_order)
        await app.state.dispatcher.process_pending()
        sink_id = await app.state.mapping_repository.get("3173109")
        assert shopify.orders[sink_id]["financial_status"] == "pending"

        await post_event(client, "OrderPaid", appmax_order)
        await app.state.dispatcher.process_pending()
        assert shopify.orders[sink_id]["financial_status"] == "paid"

        # Sin transacción de venta en Shopify el reembolso se omite
        await post_event(client, "OrderRefund", appmax_order)
        await app.state.dispatcher.process_pending()

        assert len(shopify.orders) == 1
        assert shopify.calls_named("create_refund") == []
        mapping = await app.state.mapping_repository.get_mapping("3173109")
        assert mapping.last_sync_state == "refunded"

    @pytest.mark.asyncio
    async def test_paid_order_refund_creates_shopify_refund(self, client, app, shopify, appmax_order):
        await post_event(client, "OrderPaid", appmax_order)
        await post_event(client, "OrderRefunded", appmax_order)

        await app.state.dispatcher.process_pending()

        sink_id = await app.state.mapping_repository.get("3173109")
        assert len(shopify.refunds[sink_id]) == 1
        assert shopify.orders[sink_id]["financial_status"] == "refunded"

    @pytest.mark.asyncio
    async def test_late_paid_event_does_not_regress_cancelled_order(self, client, app, shopify, appmax_order):
        """Un OrderPaid posterior a la cancelación no revierte el pedido."""
        await post_event(client, "OrderPixGenerated", appmax_order)
        await post_event(client, "PixExpired", appmax_order)
        await post_event(client, "OrderPaid", appmax_order)

        await app.state.dispatcher.process_pending()

        sink_id = await app.state.mapping_repository.get("3173109")
        assert shopify.orders[sink_id]["cancelled_at"] is not None
        assert shopify.orders[sink_id]["financial_status"] == "voided"
        assert len(shopify.calls_named("cancel_order")) == 1

    @pytest.mark.asyncio
    async def test_failed_row_is_retried_on_next_pass(self, client, app, shopify, appmax_order, make_transient_error):
        ack = await post_event(client, "OrderPaid", appmax_order)
        shopify.fail_with = make_transient_error(503)

        first = await app.state.dispatcher.process_pending()
        row = await app.state.queue_repository.get(ack["request_id"])
        assert first["failed"] == 1
        assert row.attempts == 1
        assert row.status == "pending"

        shopify.fail_with = None
        second = await app.state.dispatcher.process_pending()

        assert second["succeeded"] == 1
        assert len(shopify.orders) == 1
