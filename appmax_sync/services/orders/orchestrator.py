"""
OrderSyncOrchestrator - applies one canonical transition of an Appmax order to Shopify.

Flow for synchronize(payload, sync_state, financial_state):
1. Validate and normalize the payload
2. Acquire the per-order lock (bounded wait, LockTimeoutException otherwise)
3. Resolve the Shopify order: mapping store first, bounded remote search second
4. Create it when missing, recovering from duplicate-customer conflicts
5. Otherwise apply the transition without regressing a more terminal state
6. Record the Shopify id and applied state in the mapping store
7. Release the lock on every exit path
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Literal

from appmax_sync.core.config import get_settings
from appmax_sync.core.logging_config import log_sync_operation
from appmax_sync.domain.models import OrderDomain
from appmax_sync.services.orders.converters import ShopifyOrderBuilder
from appmax_sync.services.orders.interfaces import (
    ILockTable,
    IMappingStore,
    IPayloadNormalizer,
    IShopifyOrderGateway,
)
from appmax_sync.services.orders.validators import OrderPayloadNormalizer
from appmax_sync.services.status_mapper import SyncState, creates_order, from_shopify_order, is_regression
from appmax_sync.utils.error_handler import DuplicateIdentityException, SyncException
from appmax_sync.utils.order_lock import OrderLockTable

settings = get_settings()
logger = logging.getLogger(__name__)

PAYMENT_TRANSACTION_KINDS = ("sale", "capture")

FoundIn = Literal["mapping", "remote"]
SyncAction = Literal["created", "updated", "cancelled", "refunded", "skipped"]


@dataclass
class ResolvedOrder:
    """A Shopify order known to mirror an Appmax order."""

    sink_order_id: str
    current_state: str | None
    found_in: FoundIn


@dataclass
class SyncResult:
    action: SyncAction
    source_order_id: str
    sink_order_id: str | None = None
    sync_state: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class OrderSyncOrchestrator:
    """
    Orchestrates the synchronization of Appmax orders into Shopify.

    One instance is built at startup; the lock table, the Shopify client (and
    its rate limiter) and the mapping store are injected and shared.
    """

    def __init__(
        self,
        normalizer: IPayloadNormalizer,
        builder: ShopifyOrderBuilder,
        shopify: IShopifyOrderGateway,
        lock_table: ILockTable,
        mapping_store: IMappingStore,
        lock_timeout: float | None = None,
    ):
        """
        Initialize orchestrator with service dependencies (DIP).

        Args:
            normalizer: Payload validation and normalization
            builder: Shopify payload builder
            shopify: Shopify order gateway (rate limited)
            lock_table: Per-order lock table
            mapping_store: Appmax id -> Shopify id store
            lock_timeout: Seconds to wait for the order lock
        """
        self.normalizer = normalizer
        self.builder = builder
        self.shopify = shopify
        self.lock_table = lock_table
        self.mapping_store = mapping_store
        self.lock_timeout = settings.ORDER_LOCK_TIMEOUT if lock_timeout is None else lock_timeout

    async def synchronize(self, payload: dict[str, Any], sync_state: str, financial_state: str) -> SyncResult:
        """
        Apply a canonical transition for the order in ``payload``.

        Args:
            payload: Appmax order payload (snapshot stored in the queue)
            sync_state: Canonical sync state
            financial_state: Canonical financial state

        Returns:
            SyncResult: What was done

        Raises:
            ValidationException: Payload without id, customer or products
            LockTimeoutException: The order is being synchronized elsewhere
            ShopifyAPIException: Remote failure after the client's retries
        """
        sync_state = _state_value(sync_state)
        financial_state = _state_value(financial_state)

        order = self.normalizer.normalize(payload)
        source_id = order.source_order_id

        async with self.lock_table.lock(source_id, timeout=self.lock_timeout):
            result = await self._synchronize_locked(order, sync_state, financial_state)

        log_sync_operation(
            result.action,
            source_id,
            result.sink_order_id,
            sync_state=sync_state,
            financial_state=financial_state,
            reason=result.reason,
        )
        return result

    async def resolve_existing(self, source_order_id: str, skip_mapping: bool = False) -> ResolvedOrder | None:
        """
        Find the Shopify order mirroring ``source_order_id``.

        The mapping store is the fast path; the bounded remote search by
        idempotency tag only runs when the mapping has no Shopify id.
        """
        if not skip_mapping:
            mapping = await self.mapping_store.get_mapping(source_order_id)
            if mapping is not None and mapping.sink_order_id:
                return ResolvedOrder(
                    sink_order_id=mapping.sink_order_id,
                    current_state=mapping.last_sync_state,
                    found_in="mapping",
                )

        matches = await self.shopify.find_orders_by_source_id(source_order_id)
        if not matches:
            return None

        if len(matches) > 1:
            logger.warning(
                f"Appmax #{source_order_id} has {len(matches)} Shopify orders: "
                f"{[m.get('id') for m in matches]}. Using the oldest"
            )
        remote = min(matches, key=lambda o: int(o["id"]))
        logger.info(f"Appmax #{source_order_id} found in Shopify by idempotency tag: {remote['id']}")

        return ResolvedOrder(
            sink_order_id=str(remote["id"]),
            current_state=from_shopify_order(remote),
            found_in="remote",
        )

    async def _synchronize_locked(self, order: OrderDomain, sync_state: str, financial_state: str) -> SyncResult:
        source_id = order.source_order_id
        existing = await self.resolve_existing(source_id)

        if existing is not None:
            return await self._apply_transition(order, existing, sync_state, financial_state)

        if not creates_order(sync_state):
            logger.info(f"Appmax #{source_id} not found in Shopify, nothing to mark as {sync_state}")
            return SyncResult(
                action="skipped",
                source_order_id=source_id,
                sync_state=sync_state,
                reason="shopify order not found",
            )

        return await self._create(order, sync_state, financial_state)

    async def _create(self, order: OrderDomain, sync_state: str, financial_state: str) -> SyncResult:
        source_id = order.source_order_id
        payload = self.builder.build_create_payload(order, sync_state, financial_state)

        try:
            created = await self.shopify.create_order(payload)

        except DuplicateIdentityException as e:
            logger.warning(f"Duplicate customer {e.field} creating Appmax #{source_id}, re-resolving order")
            existing = await self.resolve_existing(source_id, skip_mapping=True)
            if existing is not None:
                return await self._apply_transition(order, existing, sync_state, financial_state)

            # No order yet: the conflict is the customer only, link it by email
            if not order.customer.email:
                raise SyncException(
                    message=f"Duplicate customer {e.field} for Appmax #{source_id} and no email to link it",
                    service="shopify",
                    operation="create_order",
                    retry_suggested=False,
                ) from e
            payload = self.builder.build_create_payload(
                order, sync_state, financial_state, include_customer_identity=False
            )
            created = await self.shopify.create_order(payload)

        sink_id = str(created["id"])
        await self.mapping_store.put(source_id, sink_id, sync_state)
        logger.info(f"Appmax #{source_id} created in Shopify as {sink_id}")

        return SyncResult(action="created", source_order_id=source_id, sink_order_id=sink_id, sync_state=sync_state)

    async def _apply_transition(
        self,
        order: OrderDomain,
        existing: ResolvedOrder,
        sync_state: str,
        financial_state: str,
    ) -> SyncResult:
        source_id = order.source_order_id
        sink_id = existing.sink_order_id

        if is_regression(existing.current_state, sync_state):
            logger.info(
                f"Skipping transition of Appmax #{source_id}: Shopify {sink_id} is already "
                f"{existing.current_state}, not going back to {sync_state}"
            )
            if existing.found_in == "remote":
                await self.mapping_store.put(source_id, sink_id, existing.current_state)
            return SyncResult(
                action="skipped",
                source_order_id=source_id,
                sink_order_id=sink_id,
                sync_state=existing.current_state,
                reason=f"would regress {existing.current_state} -> {sync_state}",
            )

        await self.shopify.update_order(sink_id, self.builder.build_update_payload(order, sync_state, financial_state))
        action: SyncAction = "updated"

        if sync_state != existing.current_state:
            if sync_state == SyncState.CANCELLED.value:
                await self.shopify.cancel_order(sink_id)
                action = "cancelled"
            elif sync_state == SyncState.REFUNDED.value:
                await self._refund(order, sink_id)
                action = "refunded"

        await self.mapping_store.put(source_id, sink_id, sync_state)

        return SyncResult(action=action, source_order_id=source_id, sink_order_id=sink_id, sync_state=sync_state)

    async def _refund(self, order: OrderDomain, sink_id: str) -> dict[str, Any] | None:
        sink_order = await self.shopify.get_order(sink_id, fields="id,total_price,currency") or {}
        transactions = await self.shopify.list_transactions(sink_id)

        parent = next(
            (
                t
                for t in transactions
                if t.get("kind") in PAYMENT_TRANSACTION_KINDS and t.get("status", "success") == "success"
            ),
            None,
        )
        if parent is None:
            logger.warning(f"Shopify {sink_id} has no payment transaction, refund of Appmax #{order.source_order_id} skipped")
            return None

        refund = self.builder.build_refund_payload(order, sink_order, parent)
        return await self.shopify.create_refund(sink_id, refund)


def _state_value(state: Any) -> str:
    return str(getattr(state, "value", state))


# Factory function to create orchestrator with all dependencies
def create_orchestrator(
    shopify_client: IShopifyOrderGateway,
    mapping_store: IMappingStore,
    lock_table: OrderLockTable | None = None,
) -> OrderSyncOrchestrator:
    """
    Factory function to create a fully wired orchestrator.

    Args:
        shopify_client: Shopify order gateway
        mapping_store: Mapping repository
        lock_table: Shared lock table (a new one when omitted)

    Returns:
        OrderSyncOrchestrator: Configured orchestrator
    """
    return OrderSyncOrchestrator(
        normalizer=OrderPayloadNormalizer(),
        builder=ShopifyOrderBuilder(),
        shopify=shopify_client,
        lock_table=lock_table or OrderLockTable(),
        mapping_store=mapping_store,
    )
