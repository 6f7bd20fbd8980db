"""
Rate-limited client for every outbound Shopify call.

A single instance is built at startup and shared by the orchestrator, so
the spacing timestamp lives on the instance instead of module state.

Rules:
- calls are serialized and spaced at least ``min_interval`` seconds apart,
  measured from the completion of the previous call
- the first rate-limit (429) response of a call sleeps one spacing interval
  and repeats the call without consuming an attempt
- transient errors (timeout, 5xx, 429) are retried with exponential backoff
  up to the policy's attempt ceiling
- permanent errors (other 4xx, including duplicate identity) propagate at once
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from appmax_sync.core.config import get_settings
from appmax_sync.utils.retry_handler import RetryPolicy, create_shopify_retry_policy

settings = get_settings()
logger = logging.getLogger(__name__)


class RateLimitedClient:
    """Serializes, spaces and retries async calls against a rate-limited API."""

    def __init__(
        self,
        name: str = "shopify",
        min_interval: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.min_interval = settings.RATE_LIMIT_MIN_INTERVAL if min_interval is None else min_interval
        self.retry_policy = retry_policy or create_shopify_retry_policy()
        self._sleep = sleep
        self._clock = clock
        self._last_call_time: Optional[float] = None
        self._call_lock = asyncio.Lock()

        self.metrics = {
            "total_calls": 0,
            "total_successes": 0,
            "total_failures": 0,
            "total_retries": 0,
            "rate_limit_waits": 0,
        }

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, operation: Optional[str] = None, **kwargs) -> Any:
        """
        Execute ``func(*args, **kwargs)`` under the spacing and retry rules.

        Args:
            func: Async callable performing exactly one remote request
            operation: Name used in logs (defaults to the callable's name)

        Returns:
            Any: Result of the call

        Raises:
            Exception: The last error once it is permanent or attempts are exhausted
        """
        operation = operation or getattr(func, "__name__", "call")
        rate_limit_waited = False
        attempt = 0

        while True:
            attempt += 1
            try:
                result = await self._call(func, *args, **kwargs)
                self.metrics["total_successes"] += 1
                return result

            except Exception as e:
                self.metrics["total_failures"] += 1

                if getattr(e, "rate_limited", False) and not rate_limit_waited:
                    rate_limit_waited = True
                    attempt -= 1
                    self.metrics["rate_limit_waits"] += 1
                    logger.warning(f"Rate limit hit on {self.name}.{operation}, waiting {self.min_interval}s")
                    await self._sleep(self.min_interval)
                    continue

                if not self.retry_policy.should_retry(e, attempt):
                    if attempt >= self.retry_policy.max_attempts:
                        logger.error(
                            f"All {attempt} attempts failed for {self.name}.{operation}: {e}",
                            extra={"operation": operation, "attempts": attempt},
                        )
                    raise

                delay = self.retry_policy.calculate_delay(attempt, e)
                self.metrics["total_retries"] += 1
                logger.info(
                    f"Retrying {self.name}.{operation} in {delay:.2f}s - "
                    f"Attempt {attempt + 1}/{self.retry_policy.max_attempts}",
                    extra={"exception": str(e), "delay": delay},
                )
                await self._sleep(delay)

    async def _call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        async with self._call_lock:
            await self._wait_for_slot()
            self.metrics["total_calls"] += 1
            try:
                return await func(*args, **kwargs)
            finally:
                self._last_call_time = self._clock()

    async def _wait_for_slot(self) -> None:
        if self._last_call_time is None:
            return
        elapsed = self._clock() - self._last_call_time
        remaining = self.min_interval - elapsed
        if remaining > 0:
            await self._sleep(remaining)

    def get_metrics(self) -> Dict[str, Any]:
        """Return call counters for monitoring."""
        return {**self.metrics, "client_name": self.name, "min_interval": self.min_interval}
