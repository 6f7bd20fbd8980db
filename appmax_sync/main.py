"""
Appmax-Shopify Sync - FastAPI Application Entry Point

Recibe los webhooks de pedidos de Appmax, los encola en una base local y los
replica en Shopify (creación, pago, cancelación y reembolso).
"""

import logging

import uvicorn
from fastapi import FastAPI

from appmax_sync.core.config import get_settings
from appmax_sync.core.exception_handlers import configure_exception_handlers
from appmax_sync.core.lifespan import lifespan
from appmax_sync.core.routers import configure_all_routers

settings = get_settings()
logger = logging.getLogger(__name__)


def create_application() -> FastAPI:
    """
    Factory para crear y configurar la aplicación FastAPI.

    Returns:
        FastAPI: Instancia configurada de la aplicación
    """
    logger.info("🏗️ Creando aplicación FastAPI...")

    docs_enabled = settings.DEBUG or settings.ENABLE_DOCS
    app = FastAPI(
        title=settings.APP_NAME,
        description="Sincronización de pedidos Appmax hacia Shopify",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    # 1. Manejadores de excepciones
    configure_exception_handlers(app)

    # 2. Routers y endpoints
    configure_all_routers(app)

    logger.info("✅ Aplicación FastAPI creada y configurada")
    return app


app = create_application()


def run() -> None:
    """Ejecuta el servidor (entry point ``appmax-sync``)."""
    uvicorn.run(
        "appmax_sync.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    run()
