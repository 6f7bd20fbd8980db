"""Tests de los repositorios sobre una base SQLite temporal."""

from datetime import datetime, timedelta, timezone

import pytest

from appmax_sync.db.repositories.mapping_repository import MappingRepository
from appmax_sync.db.repositories.queue_repository import SyncQueueRepository
from appmax_sync.services.status_mapper import FinancialState, SyncState


@pytest.fixture
def queue(conn_db):
    return SyncQueueRepository(conn_db, max_attempts=3)


@pytest.fixture
def mappings(conn_db):
    return MappingRepository(conn_db)


class TestMappingRepository:
    """Tests para MappingRepository."""

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, mappings):
        assert await mappings.get("3173109") is None

    @pytest.mark.asyncio
    async def test_put_and_get(self, mappings):
        await mappings.put("3173109", "5000000001", "paid")

        assert await mappings.get("3173109") == "5000000001"
        mapping = await mappings.get_mapping("3173109")
        assert mapping.last_sync_state == "paid"

    @pytest.mark.asyncio
    async def test_put_is_upsert(self, mappings):
        """Un segundo put actualiza la misma fila."""
        await mappings.put("555", "5000000001", "pending")
        await mappings.put("555", "5000000001", "paid")

        mapping = await mappings.get_mapping("555")
        assert mapping.last_sync_state == "paid"
        assert len(await mappings.list_updated_between(
            datetime.now(timezone.utc) - timedelta(minutes=5), datetime.now(timezone.utc) + timedelta(minutes=5)
        )) == 1

    @pytest.mark.asyncio
    async def test_none_values_do_not_clear(self, mappings):
        await mappings.put("555", "5000000001", "paid")
        await mappings.put("555", None, None)

        mapping = await mappings.get_mapping("555")
        assert mapping.sink_order_id == "5000000001"
        assert mapping.last_sync_state == "paid"

    @pytest.mark.asyncio
    async def test_find_by_sink_id(self, mappings):
        await mappings.put("555", "5000000001", "paid")

        mapping = await mappings.find_by_sink_id("5000000001")

        assert mapping.source_order_id == "555"
        assert await mappings.find_by_sink_id("999") is None

    @pytest.mark.asyncio
    async def test_list_updated_between_excludes_outside_range(self, mappings):
        await mappings.put("555", "5000000001", "paid")

        past = datetime.now(timezone.utc) - timedelta(days=10)
        rows = await mappings.list_updated_between(past - timedelta(days=1), past)

        assert rows == []


class TestSyncQueueRepository:
    """Tests para SyncQueueRepository."""

    @pytest.mark.asyncio
    async def test_enqueue_returns_id_and_snapshot(self, queue, appmax_order):
        """La fila guarda una copia del payload; cambios posteriores no la afectan."""
        request_id = await queue.enqueue("3173109", "OrderPaid", SyncState.PAID, FinancialState.PAID, appmax_order)
        appmax_order["status"] = "mutated"

        row = await queue.get(request_id)

        assert row.sync_state == "paid"
        assert row.financial_state == "paid"
        assert row.attempts == 0
        assert row.processed_at is None
        assert row.payload["status"] == "aprovado"
        assert row.status == "pending"

    @pytest.mark.asyncio
    async def test_fetch_pending_oldest_first(self, queue, appmax_order):
        first = await queue.enqueue("1", "OrderPaid", "paid", "paid", appmax_order)
        second = await queue.enqueue("2", "OrderPaid", "paid", "paid", appmax_order)

        rows = await queue.fetch_pending()

        assert [row.id for row in rows] == [first, second]

    @pytest.mark.asyncio
    async def test_success_marks_processed(self, queue, appmax_order):
        request_id = await queue.enqueue("1", "OrderPaid", "paid", "paid", appmax_order)

        await queue.mark_processed(request_id)

        row = await queue.get(request_id)
        assert row.processed_at is not None
        assert row.last_error is None
        assert row.status == "succeeded"
        assert await queue.fetch_pending() == []

    @pytest.mark.asyncio
    async def test_failure_increments_attempts_in_place(self, queue, appmax_order):
        """Un fallo incrementa attempts sobre la misma fila y la deja pendiente."""
        request_id = await queue.enqueue("1", "OrderPaid", "paid", "paid", appmax_order)

        await queue.mark_processed(request_id, error="SHOPIFY_API_ERROR: boom")

        row = await queue.get(request_id)
        assert row.attempts == 1
        assert row.last_error == "SHOPIFY_API_ERROR: boom"
        assert row.processed_at is None
        assert [r.id for r in await queue.fetch_pending()] == [request_id]

    @pytest.mark.asyncio
    async def test_ceiling_leaves_row_permanently_failed(self, queue, appmax_order):
        request_id = await queue.enqueue("1", "OrderPaid", "paid", "paid", appmax_order)

        for _ in range(3):
            await queue.mark_processed(request_id, error="boom")

        row = await queue.get(request_id)
        assert row.attempts == 3
        assert row.processed_at is not None
        assert row.status == "failed"
        assert await queue.fetch_pending() == []
        assert [r.id for r in await queue.list_failed()] == [request_id]

    @pytest.mark.asyncio
    async def test_final_failure_closes_row_on_first_attempt(self, queue, appmax_order):
        request_id = await queue.enqueue("1", "OrderPaid", "paid", "paid", appmax_order)

        await queue.mark_processed(request_id, error="VALIDATION_ERROR: no products", final=True)

        row = await queue.get(request_id)
        assert row.attempts == 1
        assert row.processed_at is not None
        assert row.status == "failed"
        assert await queue.fetch_pending() == []

    @pytest.mark.asyncio
    async def test_success_after_failure_clears_error(self, queue, appmax_order):
        request_id = await queue.enqueue("1", "OrderPaid", "paid", "paid", appmax_order)

        await queue.mark_processed(request_id, error="boom")
        await queue.mark_processed(request_id)

        row = await queue.get(request_id)
        assert row.attempts == 2
        assert row.last_error is None
        assert row.status == "succeeded"

    @pytest.mark.asyncio
    async def test_count_by_status(self, queue, appmax_order):
        ok = await queue.enqueue("1", "OrderPaid", "paid", "paid", appmax_order)
        await queue.enqueue("2", "OrderPaid", "paid", "paid", appmax_order)
        await queue.mark_processed(ok)

        assert await queue.count_by_status() == {"pending": 1, "succeeded": 1, "failed": 0}

    @pytest.mark.asyncio
    async def test_list_by_order(self, queue, appmax_order):
        await queue.enqueue("555", "OrderApproved", "paid", "paid", appmax_order)
        await queue.enqueue("555", "OrderApproved", "paid", "paid", appmax_order)
        await queue.enqueue("1", "OrderPaid", "paid", "paid", appmax_order)

        assert len(await queue.list_by_order("555")) == 2
