"""
Interfaces/Protocols for order sync services (Dependency Inversion Principle).

These protocols define the contracts the orchestrator depends on, so the
Shopify client and the stores can be replaced by fakes in tests.
"""

from typing import Any, Protocol

from appmax_sync.db.models import OrderMapping
from appmax_sync.domain.models import OrderDomain
from appmax_sync.utils.order_lock import OrderLock


class IPayloadNormalizer(Protocol):
    """Protocol for payload validation and normalization."""

    def peek_source_id(self, payload: Any) -> str | None:
        """Return the Appmax order id if present, without validating."""
        ...

    def normalize(self, payload: dict[str, Any]) -> OrderDomain:
        """Validate an Appmax payload and return the normalized order."""
        ...


class IShopifyOrderGateway(Protocol):
    """Protocol for the remote Shopify order operations."""

    async def create_order(self, order: dict[str, Any]) -> dict[str, Any]: ...

    async def update_order(self, order_id: str, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def get_order(self, order_id: str, fields: str | None = None) -> dict[str, Any] | None: ...

    async def find_orders_by_source_id(self, source_order_id: str) -> list[dict[str, Any]]: ...

    async def cancel_order(self, order_id: str, reason: str = "other") -> dict[str, Any]: ...

    async def list_transactions(self, order_id: str) -> list[dict[str, Any]]: ...

    async def create_refund(self, order_id: str, refund: dict[str, Any]) -> dict[str, Any]: ...


class IMappingStore(Protocol):
    """Protocol for the Appmax id -> Shopify id mapping store."""

    async def get(self, source_order_id: str) -> str | None: ...

    async def get_mapping(self, source_order_id: str) -> OrderMapping | None: ...

    async def put(self, source_order_id: str, sink_order_id: str | None, sync_state: str | None = None) -> Any: ...


class ILockTable(Protocol):
    """Protocol for per-order mutual exclusion."""

    def lock(self, order_id: str, timeout: float | None = None) -> OrderLock: ...
