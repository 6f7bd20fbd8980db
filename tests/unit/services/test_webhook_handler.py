"""Tests para WebhookProcessor."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from appmax_sync.services.orders.validators import OrderPayloadNormalizer
from appmax_sync.services.webhook_handler import WebhookProcessor
from appmax_sync.utils.error_handler import ValidationException


@pytest.fixture
def queue():
    mock = MagicMock()
    mock.enqueue = AsyncMock(return_value=42)
    return mock


@pytest.fixture
def dispatcher():
    return MagicMock()


@pytest.fixture
def processor(queue, dispatcher):
    return WebhookProcessor(queue=queue, normalizer=OrderPayloadNormalizer(field_aliases={}), dispatcher=dispatcher)


class TestWebhookProcessor:
    """Tests de clasificación y encolado de eventos."""

    @pytest.mark.asyncio
    async def test_mapped_event_is_queued_and_dispatcher_notified(self, processor, queue, dispatcher, appmax_order):
        result = await processor.process("OrderApproved", appmax_order)

        assert result == {
            "status": "queued",
            "event": "OrderApproved",
            "request_id": 42,
            "source_order_id": "3173109",
            "sync_state": "paid",
            "financial_state": "paid",
        }
        queue.enqueue.assert_awaited_once()
        assert queue.enqueue.await_args.kwargs["payload"] is appmax_order
        dispatcher.notify.assert_called_once()

    @pytest.mark.asyncio
    async def test_chargeback_dispute_maps_to_pending_financial_state(self, processor, appmax_order):
        result = await processor.process("ChargebackInDispute", appmax_order)

        assert result["sync_state"] == "under_review"
        assert result["financial_state"] == "pending"

    @pytest.mark.asyncio
    async def test_ignored_event_is_not_queued(self, processor, queue, dispatcher, appmax_order):
        result = await processor.process("CustomerCreated", appmax_order)

        assert result["status"] == "ignored"
        queue.enqueue.assert_not_awaited()
        dispatcher.notify.assert_not_called()
        assert processor.get_metrics()["ignored"] == 1

    @pytest.mark.asyncio
    async def test_unknown_event_is_unhandled(self, processor, queue, appmax_order):
        result = await processor.process("SomethingElse", appmax_order)

        assert result["status"] == "unhandled"
        queue.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event, data", [(None, {"id": 1}), (123, {"id": 1}), ("OrderPaid", None), ("OrderPaid", [])])
    async def test_missing_event_or_data_is_rejected(self, processor, queue, event, data):
        with pytest.raises(ValidationException) as exc_info:
            await processor.process(event, data)

        assert exc_info.value.status_code == 400
        queue.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_payload_is_rejected_with_400(self, processor, queue):
        """Un pedido sin cliente se rechaza antes de encolar."""
        with pytest.raises(ValidationException) as exc_info:
            await processor.process("OrderPaid", {"id": 10})

        assert exc_info.value.status_code == 400
        assert exc_info.value.field == "customer"
        assert processor.get_metrics()["rejected"] == 1
        queue.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", ["OrderPaid", "OrderPixGenerated", "ChargebackInDispute"])
    async def test_order_without_products_is_rejected(self, processor, queue, dispatcher, order_factory, event):
        """Un evento que puede crear el pedido exige al menos un producto."""
        with pytest.raises(ValidationException) as exc_info:
            await processor.process(event, order_factory(order_id=42, bundles=[]))

        assert exc_info.value.status_code == 400
        assert exc_info.value.field == "bundles"
        queue.enqueue.assert_not_awaited()
        dispatcher.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_without_products_is_queued(self, processor, queue, order_factory):
        """Cancelar o reembolsar nunca crea el pedido, así que no requiere productos."""
        result = await processor.process("OrderRefund", order_factory(order_id=42, bundles=[]))

        assert result["status"] == "queued"
        queue.enqueue.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_works_without_dispatcher(self, queue, appmax_order):
        processor = WebhookProcessor(queue=queue, normalizer=OrderPayloadNormalizer(field_aliases={}))

        result = await processor.process("OrderPaid", appmax_order)

        assert result["status"] == "queued"
