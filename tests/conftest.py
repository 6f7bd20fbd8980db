"""Fixtures compartidos: payloads de Appmax y un Shopify en memoria."""

import asyncio
import copy
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from appmax_sync.db.connection import ConnDB
from appmax_sync.db.models import OrderMapping
from appmax_sync.db.shopify_clients.order_client import order_matches_source_id
from appmax_sync.services.orders.converters import ShopifyOrderBuilder
from appmax_sync.services.orders.orchestrator import OrderSyncOrchestrator
from appmax_sync.services.orders.validators import OrderPayloadNormalizer
from appmax_sync.utils.error_handler import DuplicateIdentityException, ShopifyAPIException
from appmax_sync.utils.order_lock import OrderLockTable


def make_appmax_order(order_id: Any = 3173109, **overrides) -> Dict[str, Any]:
    """Pedido Appmax con un producto, como llega en el campo "data" del webhook."""
    order = {
        "id": order_id,
        "status": "aprovado",
        "total": "199.90",
        "total_products": "189.90",
        "discount": "0",
        "freight_value": "10.00",
        "freight_type": "PAC",
        "payment_type": "CreditCard",
        "customer": {
            "firstname": "Maria",
            "lastname": "Silva",
            "email": "maria.silva@example.com",
            "telephone": "11987654321",
            "document_number": "12345678909",
            "address_street": "Rua das Flores",
            "address_street_number": "100",
            "address_street_complement": "Apto 12",
            "address_street_district": "Centro",
            "address_city": "São Paulo",
            "address_state": "SP",
            "postcode": "01001-000",
        },
        "bundles": [
            {
                "name": "Kit",
                "products": [{"sku": "SKU-1", "name": "Camiseta Azul", "price": "189.90", "quantity": 1}],
            }
        ],
    }
    order.update(overrides)
    return order


class FakeShopifyGateway:
    """
    Shopify en memoria con la misma interfaz que ShopifyOrderClient.

    Registra cada llamada y la cantidad máxima de mutaciones simultáneas.
    """

    def __init__(self, call_delay: float = 0.0):
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.transactions: Dict[str, List[Dict[str, Any]]] = {}
        self.refunds: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.call_delay = call_delay
        self.fail_with: Optional[Exception] = None
        self.duplicate_identity_on_create = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_id = 5000000000

    def _record(self, name: str, *args):
        self.calls.append((name, *args))
        if self.fail_with is not None:
            raise self.fail_with

    async def _mutation(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.call_delay)
        finally:
            self.in_flight -= 1

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def create_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        self._record("create_order", order)
        await self._mutation()

        if self.duplicate_identity_on_create > 0:
            self.duplicate_identity_on_create -= 1
            raise DuplicateIdentityException("customer email has already been taken", field="email")

        self._next_id += 1
        order_id = str(self._next_id)
        stored = {"id": int(order_id), "cancelled_at": None, **copy.deepcopy(order)}
        self.orders[order_id] = stored
        self.transactions[order_id] = [
            {"id": int(order_id) * 10 + i, "gateway": "appmax", **t} for i, t in enumerate(order.get("transactions", []))
        ]
        return copy.deepcopy(stored)

    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        self._record("update_order", order_id, fields)
        await self._mutation()
        self.orders[str(order_id)].update(copy.deepcopy(fields))
        return copy.deepcopy(self.orders[str(order_id)])

    async def get_order(self, order_id: str, fields: Optional[str] = None) -> Optional[Dict[str, Any]]:
        self._record("get_order", order_id)
        order = self.orders.get(str(order_id))
        return copy.deepcopy(order) if order else None

    async def find_orders_by_source_id(self, source_order_id: str) -> List[Dict[str, Any]]:
        self._record("find_orders_by_source_id", source_order_id)
        return [copy.deepcopy(o) for o in self.orders.values() if order_matches_source_id(o, source_order_id)]

    async def cancel_order(self, order_id: str, reason: str = "other") -> Dict[str, Any]:
        self._record("cancel_order", order_id)
        await self._mutation()
        order = self.orders[str(order_id)]
        order["cancelled_at"] = "2025-01-15T12:00:00Z"
        order["financial_status"] = "voided"
        return copy.deepcopy(order)

    async def list_transactions(self, order_id: str) -> List[Dict[str, Any]]:
        self._record("list_transactions", order_id)
        return copy.deepcopy(self.transactions.get(str(order_id), []))

    async def create_refund(self, order_id: str, refund: Dict[str, Any]) -> Dict[str, Any]:
        self._record("create_refund", order_id, refund)
        await self._mutation()
        self.refunds.setdefault(str(order_id), []).append(copy.deepcopy(refund))
        self.orders[str(order_id)]["financial_status"] = "refunded"
        return {"id": 1, "order_id": int(order_id), **refund}


class InMemoryMappingStore:
    """Mapping store en memoria con la interfaz de MappingRepository."""

    def __init__(self):
        self.rows: Dict[str, OrderMapping] = {}

    async def get(self, source_order_id: str) -> Optional[str]:
        row = self.rows.get(str(source_order_id))
        return row.sink_order_id if row else None

    async def get_mapping(self, source_order_id: str) -> Optional[OrderMapping]:
        return self.rows.get(str(source_order_id))

    async def put(self, source_order_id: str, sink_order_id: Optional[str], sync_state: Optional[str] = None):
        row = self.rows.get(str(source_order_id))
        if row is None:
            row = OrderMapping(source_order_id=str(source_order_id), sink_order_id=sink_order_id, last_sync_state=sync_state)
            self.rows[str(source_order_id)] = row
        else:
            row.sink_order_id = sink_order_id or row.sink_order_id
            row.last_sync_state = sync_state or row.last_sync_state
        return row


@pytest.fixture
def appmax_order() -> Dict[str, Any]:
    return make_appmax_order()


@pytest.fixture
def shopify() -> FakeShopifyGateway:
    return FakeShopifyGateway()


@pytest.fixture
def mapping_store() -> InMemoryMappingStore:
    return InMemoryMappingStore()


@pytest.fixture
def lock_table() -> OrderLockTable:
    return OrderLockTable(default_timeout=2.0, poll_interval=0.01)


@pytest.fixture
def orchestrator(shopify, mapping_store, lock_table) -> OrderSyncOrchestrator:
    return OrderSyncOrchestrator(
        normalizer=OrderPayloadNormalizer(field_aliases={}),
        builder=ShopifyOrderBuilder(currency="BRL"),
        shopify=shopify,
        lock_table=lock_table,
        mapping_store=mapping_store,
        lock_timeout=2.0,
    )


def transient_error(status: int = 503) -> ShopifyAPIException:
    return ShopifyAPIException.from_response(status, {"errors": "Service Unavailable"}, endpoint="/orders.json")


@pytest.fixture
def order_factory():
    return make_appmax_order


@pytest.fixture
def make_transient_error():
    return transient_error


@pytest_asyncio.fixture
async def conn_db(tmp_path):
    """Base SQLite temporal, con tablas creadas."""
    db = ConnDB(database_url=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", echo=False)
    await db.initialize()
    yield db
    await db.close()
