"""App FastAPI con base SQLite temporal y Shopify en memoria."""

import httpx
import pytest
import pytest_asyncio

from appmax_sync.db.repositories.mapping_repository import MappingRepository
from appmax_sync.db.repositories.queue_repository import SyncQueueRepository
from appmax_sync.main import create_application
from appmax_sync.services.orders.converters import ShopifyOrderBuilder
from appmax_sync.services.orders.orchestrator import OrderSyncOrchestrator
from appmax_sync.services.orders.validators import OrderPayloadNormalizer
from appmax_sync.services.queue_dispatcher import SyncQueueDispatcher
from appmax_sync.services.webhook_handler import WebhookProcessor
from appmax_sync.utils.rate_limiter import RateLimitedClient


@pytest.fixture
def app(conn_db, shopify, lock_table):
    """Aplicación con los mismos componentes que arma el lifespan, sin arrancar el loop."""
    application = create_application()
    normalizer = OrderPayloadNormalizer(field_aliases={})

    mapping_repository = MappingRepository(conn_db)
    queue_repository = SyncQueueRepository(conn_db, max_attempts=3)
    orchestrator = OrderSyncOrchestrator(
        normalizer=normalizer,
        builder=ShopifyOrderBuilder(currency="BRL"),
        shopify=shopify,
        lock_table=lock_table,
        mapping_store=mapping_repository,
        lock_timeout=2.0,
    )
    dispatcher = SyncQueueDispatcher(queue=queue_repository, orchestrator=orchestrator, row_delay=0)

    application.state.conn_db = conn_db
    application.state.shopify_client = shopify
    application.state.rate_limiter = RateLimitedClient(name="shopify", min_interval=0)
    application.state.lock_table = lock_table
    application.state.mapping_repository = mapping_repository
    application.state.queue_repository = queue_repository
    application.state.orchestrator = orchestrator
    application.state.dispatcher = dispatcher
    application.state.webhook_processor = WebhookProcessor(
        queue=queue_repository, normalizer=normalizer, dispatcher=dispatcher
    )
    return application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
