"""
Gestión del ciclo de vida de la aplicación FastAPI.

Crea una única instancia de cada componente (base local, cliente Shopify con
su rate limiter, tabla de locks, orquestador, despachador), las publica en
``app.state`` y las cierra en orden inverso.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from appmax_sync.core.config import get_settings
from appmax_sync.core.logging_config import setup_logging
from appmax_sync.db.connection import ConnDB
from appmax_sync.db.repositories.mapping_repository import MappingRepository
from appmax_sync.db.repositories.queue_repository import SyncQueueRepository
from appmax_sync.db.shopify_clients.order_client import ShopifyOrderClient
from appmax_sync.services.orders.orchestrator import create_orchestrator
from appmax_sync.services.orders.validators import OrderPayloadNormalizer
from appmax_sync.services.queue_dispatcher import SyncQueueDispatcher
from appmax_sync.services.webhook_handler import WebhookProcessor
from appmax_sync.utils.order_lock import OrderLockTable
from appmax_sync.utils.rate_limiter import RateLimitedClient

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestión del ciclo de vida de la aplicación.
    Maneja eventos de startup y shutdown de manera ordenada.

    Args:
        app: Instancia de FastAPI
    """
    # === STARTUP ===
    setup_logging()
    logger.info(f"🚀 Iniciando {settings.APP_NAME} v{settings.APP_VERSION}...")

    try:
        await startup_initialize_components(app)
        await startup_verify_connections(app)

        if settings.QUEUE_ENABLED:
            await app.state.dispatcher.start()
        else:
            logger.warning("⚠️ QUEUE_ENABLED=False: los webhooks se encolan pero no se procesan")

        logger.info("🎉 Aplicación iniciada correctamente")

    except Exception as e:
        logger.error(f"❌ Error durante el startup: {e}")
        await shutdown_components(app)
        raise

    # === YIELD (aplicación corriendo) ===
    yield

    # === SHUTDOWN ===
    logger.info(f"🛑 Cerrando {settings.APP_NAME}...")
    await shutdown_components(app)
    logger.info("👋 Aplicación cerrada correctamente")


async def startup_initialize_components(app: FastAPI) -> None:
    """Construye los componentes y los publica en app.state."""
    conn_db = ConnDB()
    await conn_db.initialize()
    app.state.conn_db = conn_db

    rate_limiter = RateLimitedClient(name="shopify")
    shopify_client = ShopifyOrderClient(rate_limiter=rate_limiter)
    await shopify_client.initialize()
    app.state.rate_limiter = rate_limiter
    app.state.shopify_client = shopify_client

    mapping_repository = MappingRepository(conn_db)
    queue_repository = SyncQueueRepository(conn_db)
    app.state.mapping_repository = mapping_repository
    app.state.queue_repository = queue_repository

    app.state.lock_table = OrderLockTable()
    app.state.orchestrator = create_orchestrator(
        shopify_client=shopify_client,
        mapping_store=mapping_repository,
        lock_table=app.state.lock_table,
    )
    app.state.dispatcher = SyncQueueDispatcher(queue=queue_repository, orchestrator=app.state.orchestrator)
    app.state.webhook_processor = WebhookProcessor(
        queue=queue_repository,
        normalizer=OrderPayloadNormalizer(),
        dispatcher=app.state.dispatcher,
    )
    logger.info("✅ Componentes inicializados")


async def startup_verify_connections(app: FastAPI) -> None:
    """Verifica la base local (crítica) y Shopify (no crítica: la cola reintenta)."""
    if not await app.state.conn_db.test_connection():
        raise ConnectionError("Base de datos local no disponible")
    logger.info("✅ Conexión a base de datos verificada")

    if not settings.SHOPIFY_ACCESS_TOKEN or not settings.SHOPIFY_SHOP_URL:
        logger.warning("⚠️ Shopify no configurado (SHOPIFY_SHOP_URL / SHOPIFY_ACCESS_TOKEN)")
        return

    if await app.state.shopify_client.test_connection():
        logger.info("✅ Conexión a Shopify verificada")
    else:
        logger.warning("⚠️ Conexión a Shopify falló, los pedidos quedarán en cola")


async def shutdown_components(app: FastAPI) -> None:
    """Detiene el despachador y libera conexiones, en orden inverso al startup."""
    dispatcher = getattr(app.state, "dispatcher", None)
    if dispatcher is not None:
        await dispatcher.stop()

    shopify_client = getattr(app.state, "shopify_client", None)
    if shopify_client is not None:
        await shopify_client.close()

    conn_db = getattr(app.state, "conn_db", None)
    if conn_db is not None:
        await conn_db.close()
