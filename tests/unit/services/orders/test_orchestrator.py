"""Tests unitarios para OrderSyncOrchestrator con un Shopify en memoria."""

import asyncio

import pytest

from appmax_sync.utils.error_handler import LockTimeoutException, ShopifyAPIException, ValidationException


class TestCreation:
    """Tests para la creación idempotente."""

    @pytest.mark.asyncio
    async def test_first_paid_creates_order(self, orchestrator, shopify, mapping_store, appmax_order):
        result = await orchestrator.synchronize(appmax_order, "paid", "paid")

        assert result.action == "created"
        assert len(shopify.orders) == 1
        created = shopify.orders[result.sink_order_id]
        assert created["financial_status"] == "paid"
        assert await mapping_store.get("3173109") == result.sink_order_id

    @pytest.mark.asyncio
    async def test_second_paid_updates_same_order(self, orchestrator, shopify, appmax_order):
        """Sincronizar dos veces nunca crea dos pedidos."""
        first = await orchestrator.synchronize(appmax_order, "paid", "paid")
        second = await orchestrator.synchronize(appmax_order, "paid", "paid")

        assert second.action == "updated"
        assert second.sink_order_id == first.sink_order_id
        assert len(shopify.orders) == 1
        assert len(shopify.calls_named("create_order")) == 1
        # La segunda resolución usa el mapping, no la búsqueda remota
        assert len(shopify.calls_named("find_orders_by_source_id")) == 1

    @pytest.mark.asyncio
    async def test_lost_mapping_is_recovered_by_remote_search(
        self, orchestrator, shopify, mapping_store, appmax_order
    ):
        """Sin mapping, el pedido se encuentra por el tag appmax_id y se actualiza."""
        first = await orchestrator.synchronize(appmax_order, "paid", "paid")
        mapping_store.rows.clear()

        second = await orchestrator.synchronize(appmax_order, "paid", "paid")

        assert second.action == "updated"
        assert second.sink_order_id == first.sink_order_id
        assert len(shopify.orders) == 1
        assert await mapping_store.get("3173109") == first.sink_order_id

    @pytest.mark.asyncio
    async def test_invalid_payload_raises_before_lock(self, orchestrator, shopify, lock_table):
        with pytest.raises(ValidationException):
            await orchestrator.synchronize({"customer": {}}, "paid", "paid")

        assert shopify.calls == []
        assert len(lock_table) == 0


class TestNoRegression:
    """Tests para la regla de no regresión."""

    @pytest.mark.asyncio
    async def test_pending_after_paid_is_skipped(self, orchestrator, shopify, mapping_store, appmax_order):
        first = await orchestrator.synchronize(appmax_order, "paid", "paid")

        result = await orchestrator.synchronize(appmax_order, "pending", "pending")

        assert result.action == "skipped"
        assert shopify.orders[first.sink_order_id]["financial_status"] == "paid"
        assert shopify.calls_named("update_order") == []
        assert (await mapping_store.get_mapping("3173109")).last_sync_state == "paid"

    @pytest.mark.asyncio
    async def test_remote_state_blocks_regression_without_mapping(
        self, orchestrator, shopify, mapping_store, appmax_order
    ):
        """El estado se deduce del pedido de Shopify cuando no hay mapping."""
        await orchestrator.synchronize(appmax_order, "paid", "paid")
        mapping_store.rows.clear()

        result = await orchestrator.synchronize(appmax_order, "pending", "pending")

        assert result.action == "skipped"
        assert (await mapping_store.get_mapping("3173109")).last_sync_state == "paid"


class TestCancelAndRefund:
    """Tests para cancelación y reembolso."""

    @pytest.mark.asyncio
    async def test_cancel_without_order_is_noop(self, orchestrator, shopify, mapping_store, order_factory):
        """Cancelar algo que nunca se creó termina en un skip registrado."""
        result = await orchestrator.synchronize(order_factory(order_id=777), "cancelled", "cancelled")

        assert result.action == "skipped"
        assert result.reason == "shopify order not found"
        assert shopify.calls_named("find_orders_by_source_id") == [("find_orders_by_source_id", "777")]
        assert shopify.calls_named("create_order") == []
        assert shopify.calls_named("cancel_order") == []
        assert mapping_store.rows == {}

    @pytest.mark.asyncio
    async def test_cancel_existing_order(self, orchestrator, shopify, mapping_store, order_factory):
        payload = order_factory(order_id=888)
        created = await orchestrator.synchronize(payload, "pending", "pending")

        result = await orchestrator.synchronize(payload, "cancelled", "cancelled")

        assert result.action == "cancelled"
        assert shopify.calls_named("cancel_order") == [("cancel_order", created.sink_order_id)]
        assert shopify.orders[created.sink_order_id]["cancelled_at"] is not None
        assert (await mapping_store.get_mapping("888")).last_sync_state == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_twice_cancels_once(self, orchestrator, shopify, order_factory):
        payload = order_factory(order_id=888)
        await orchestrator.synchronize(payload, "pending", "pending")

        await orchestrator.synchronize(payload, "cancelled", "cancelled")
        await orchestrator.synchronize(payload, "cancelled", "cancelled")

        assert len(shopify.calls_named("cancel_order")) == 1

    @pytest.mark.asyncio
    async def test_refund_paid_order(self, orchestrator, shopify, appmax_order):
        created = await orchestrator.synchronize(appmax_order, "paid", "paid")

        result = await orchestrator.synchronize(appmax_order, "refunded", "refunded")

        assert result.action == "refunded"
        refund = shopify.refunds[created.sink_order_id][0]
        assert refund["transactions"][0]["kind"] == "refund"
        assert refund["transactions"][0]["amount"] == "199.90"
        assert shopify.orders[created.sink_order_id]["financial_status"] == "refunded"

    @pytest.mark.asyncio
    async def test_refund_without_payment_transaction_is_skipped(self, orchestrator, shopify, appmax_order):
        """Un pedido pendiente no tiene transacción que reembolsar."""
        created = await orchestrator.synchronize(appmax_order, "pending", "pending")

        result = await orchestrator.synchronize(appmax_order, "refunded", "refunded")

        assert result.action == "refunded"
        assert shopify.calls_named("create_refund") == []
        assert shopify.orders[created.sink_order_id]["financial_status"] == "refunded"


class TestDuplicateIdentity:
    """Tests para la recuperación ante cliente duplicado."""

    @pytest.mark.asyncio
    async def test_recreates_without_customer_identity(self, orchestrator, shopify, appmax_order):
        """Si el pedido no existe, se crea vinculando al cliente existente por email."""
        shopify.duplicate_identity_on_create = 1

        result = await orchestrator.synchronize(appmax_order, "paid", "paid")

        assert result.action == "created"
        creates = shopify.calls_named("create_order")
        assert len(creates) == 2
        assert creates[1][1]["customer"] == {"email": "maria.silva@example.com"}
        assert len(shopify.orders) == 1

    @pytest.mark.asyncio
    async def test_falls_through_to_update_when_order_exists(
        self, orchestrator, shopify, mapping_store, appmax_order
    ):
        """Si otro proceso ya creó el pedido, se resuelve y se actualiza."""
        created = await orchestrator.synchronize(appmax_order, "pending", "pending")
        mapping_store.rows.clear()
        # Simula que la búsqueda inicial no lo vio (carrera) y el create choca
        original_find = shopify.find_orders_by_source_id
        misses = {"left": 1}

        async def racy_find(source_order_id):
            if misses["left"]:
                misses["left"] -= 1
                return []
            return await original_find(source_order_id)

        shopify.find_orders_by_source_id = racy_find
        shopify.duplicate_identity_on_create = 1

        result = await orchestrator.synchronize(appmax_order, "paid", "paid")

        assert result.action == "updated"
        assert result.sink_order_id == created.sink_order_id
        assert len(shopify.orders) == 1

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, orchestrator, shopify, appmax_order, make_transient_error):
        shopify.fail_with = make_transient_error(503)

        with pytest.raises(ShopifyAPIException):
            await orchestrator.synchronize(appmax_order, "paid", "paid")


class TestMutualExclusion:
    """Tests para el lock por pedido."""

    @pytest.mark.asyncio
    async def test_concurrent_syncs_create_once(self, orchestrator, shopify, appmax_order):
        """Dos sincronizaciones simultáneas: una crea, la otra ve el mapping y actualiza."""
        shopify.call_delay = 0.05

        results = await asyncio.gather(
            orchestrator.synchronize(appmax_order, "paid", "paid"),
            orchestrator.synchronize(appmax_order, "paid", "paid"),
        )

        assert sorted(r.action for r in results) == ["created", "updated"]
        assert len(shopify.orders) == 1
        assert shopify.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_lock_timeout(self, orchestrator, lock_table, appmax_order):
        orchestrator.lock_timeout = 0.05
        await lock_table.acquire("3173109")

        with pytest.raises(LockTimeoutException):
            await orchestrator.synchronize(appmax_order, "paid", "paid")

    @pytest.mark.asyncio
    async def test_lock_released_after_error(self, orchestrator, shopify, lock_table, appmax_order):
        shopify.fail_with = ShopifyAPIException("Not Found", api_response_code=404)

        with pytest.raises(ShopifyAPIException):
            await orchestrator.synchronize(appmax_order, "paid", "paid")

        assert not lock_table.is_locked("3173109")
