"""
OrderLockTable - in-process mutual exclusion per Appmax order.

Prevents two synchronizations of the same source order from overlapping
their create/update windows inside one dispatcher process.

This is NOT a distributed lock. Running several dispatcher processes against
the same queue requires replacing it with a lease stored in the database.

Usage:
    locks = OrderLockTable()

    async with locks.lock("3173109"):
        await synchronize(order)
"""

import asyncio
import logging
import time
from typing import Dict, Optional

from appmax_sync.core.config import get_settings
from appmax_sync.utils.error_handler import LockTimeoutException

settings = get_settings()
logger = logging.getLogger(__name__)

__all__ = ["OrderLockTable", "OrderLock", "LockTimeoutException"]


class OrderLockTable:
    """
    Registry of held order locks keyed by source order id.

    ``acquire`` polls every ``poll_interval`` seconds until the key is free or
    the timeout elapses. There is no fairness or priority between waiters.
    """

    def __init__(self, default_timeout: Optional[float] = None, poll_interval: Optional[float] = None):
        self.default_timeout = settings.ORDER_LOCK_TIMEOUT if default_timeout is None else default_timeout
        self.poll_interval = settings.ORDER_LOCK_POLL_INTERVAL if poll_interval is None else poll_interval
        # source_order_id -> monotonic acquisition time
        self._held: Dict[str, float] = {}

    async def acquire(self, order_id: str, timeout: Optional[float] = None) -> None:
        """
        Claim the lock for ``order_id``.

        Args:
            order_id: Source order id
            timeout: Maximum wait in seconds (defaults to ``default_timeout``)

        Raises:
            LockTimeoutException: If the key is still held when the timeout elapses
        """
        key = str(order_id)
        timeout = self.default_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        # Check and claim happen without an await in between, so they are atomic
        # with respect to other tasks on the event loop.
        while key in self._held:
            if time.monotonic() >= deadline:
                logger.warning(f"Timed out after {timeout}s waiting for lock on order {key}")
                raise LockTimeoutException(source_order_id=key, timeout=timeout)
            await asyncio.sleep(self.poll_interval)

        self._held[key] = time.monotonic()
        logger.debug(f"Lock acquired for order {key}")

    def release(self, order_id: str) -> None:
        """Free the lock for ``order_id``. Releasing a free key is a no-op."""
        key = str(order_id)
        if self._held.pop(key, None) is not None:
            logger.debug(f"Lock released for order {key}")

    def is_locked(self, order_id: str) -> bool:
        return str(order_id) in self._held

    def held_for(self, order_id: str) -> Optional[float]:
        """Seconds the lock for ``order_id`` has been held, or None if free."""
        acquired_at = self._held.get(str(order_id))
        if acquired_at is None:
            return None
        return time.monotonic() - acquired_at

    def lock(self, order_id: str, timeout: Optional[float] = None) -> "OrderLock":
        """Return an async context manager that holds the lock for its block."""
        return OrderLock(self, order_id, timeout)

    def __len__(self) -> int:
        return len(self._held)


class OrderLock:
    """
    Async context manager over one key of an OrderLockTable.

    The lock is released on every exit path, including exceptions.
    """

    def __init__(self, table: OrderLockTable, order_id: str, timeout: Optional[float] = None):
        self.table = table
        self.order_id = str(order_id)
        self.timeout = timeout

    async def __aenter__(self) -> "OrderLock":
        await self.table.acquire(self.order_id, self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.table.release(self.order_id)
        if exc_type:
            logger.debug(f"Lock released for order {self.order_id} (exception occurred: {exc_type.__name__})")
        return False
