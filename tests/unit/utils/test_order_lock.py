"""Tests unitarios para la tabla de locks por pedido."""

import asyncio

import pytest

from appmax_sync.utils.error_handler import LockTimeoutException
from appmax_sync.utils.order_lock import OrderLockTable


class TestOrderLockTable:
    """Tests para acquire/release y el context manager."""

    @pytest.mark.asyncio
    async def test_acquire_and_release(self):
        """Un lock libre se toma de inmediato y se libera con release."""
        table = OrderLockTable(default_timeout=1.0, poll_interval=0.01)

        await table.acquire("3173109")
        assert table.is_locked("3173109")
        assert table.held_for("3173109") is not None

        table.release("3173109")
        assert not table.is_locked("3173109")
        assert len(table) == 0

    @pytest.mark.asyncio
    async def test_timeout_when_held(self):
        """Si el pedido sigue bloqueado al vencer el timeout se lanza LockTimeoutException."""
        table = OrderLockTable(poll_interval=0.01)
        await table.acquire("555")

        with pytest.raises(LockTimeoutException) as exc_info:
            await table.acquire("555", timeout=0.05)

        assert exc_info.value.is_retryable
        assert exc_info.value.details["source_order_id"] == "555"
        assert table.is_locked("555")

    @pytest.mark.asyncio
    async def test_waiter_gets_lock_after_release(self):
        """Quien espera obtiene el lock cuando el dueño lo libera."""
        table = OrderLockTable(default_timeout=1.0, poll_interval=0.01)
        await table.acquire("555")

        waiter = asyncio.create_task(table.acquire("555"))
        await asyncio.sleep(0.03)
        assert not waiter.done()

        table.release("555")
        await asyncio.wait_for(waiter, timeout=1.0)
        assert table.is_locked("555")

    @pytest.mark.asyncio
    async def test_different_orders_do_not_block(self):
        """Los locks son por pedido."""
        table = OrderLockTable(default_timeout=0.05, poll_interval=0.01)

        await table.acquire("1")
        await table.acquire("2")

        assert len(table) == 2

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self):
        """El lock se libera también cuando el bloque lanza una excepción."""
        table = OrderLockTable(default_timeout=1.0, poll_interval=0.01)

        with pytest.raises(RuntimeError):
            async with table.lock("3173109"):
                assert table.is_locked("3173109")
                raise RuntimeError("boom")

        assert not table.is_locked("3173109")

    def test_release_free_key_is_noop(self):
        """Liberar un pedido sin lock no falla."""
        table = OrderLockTable()
        table.release("never-locked")
        assert len(table) == 0
