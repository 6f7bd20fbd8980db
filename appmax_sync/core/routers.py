"""
Configuración centralizada de routers para la aplicación FastAPI.

Este módulo registra los routers de la API y los endpoints base
(raíz y health check).
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from appmax_sync.api.v1.endpoints.orders import router as orders_router
from appmax_sync.api.v1.endpoints.sync import router as sync_router
from appmax_sync.api.v1.endpoints.webhooks import router as webhooks_router
from appmax_sync.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def create_root_endpoints(app: FastAPI) -> None:
    """
    Crea endpoints raíz de la aplicación.

    Args:
        app: Instancia de FastAPI
    """

    @app.get("/", tags=["Root"], summary="API Info")
    async def root():
        return {
            "message": settings.APP_NAME,
            "description": "Sincronización de pedidos Appmax hacia Shopify",
            "version": settings.APP_VERSION,
            "status": "running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": {
                "health": "/health",
                "webhook": "/webhook/appmax",
                "orders": "/api/v1/orders",
                "sync": "/api/v1/sync",
            },
        }


def create_health_endpoints(app: FastAPI) -> None:
    """
    Crea el endpoint de health check.

    Args:
        app: Instancia de FastAPI
    """

    @app.get("/health", tags=["Health"], summary="Health Check")
    async def health_check(request: Request):
        """
        Liveness más verificación de la base local.

        Returns:
            200 si la base responde, 503 en caso contrario
        """
        conn_db = getattr(request.app.state, "conn_db", None)
        dispatcher = getattr(request.app.state, "dispatcher", None)

        try:
            database_ok = conn_db is not None and await conn_db.test_connection()
        except Exception as e:
            logger.error(f"Error en health check: {e}")
            database_ok = False

        return JSONResponse(
            status_code=200 if database_ok else 503,
            content={
                "status": "healthy" if database_ok else "unhealthy",
                "version": settings.APP_VERSION,
                "environment": settings.ENVIRONMENT,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "services": {
                    "database": "healthy" if database_ok else "unhealthy",
                    "queue_dispatcher": "running" if dispatcher is not None and dispatcher.is_running else "stopped",
                },
            },
        )


def configure_api_v1_routers(app: FastAPI) -> None:
    """
    Registra los routers de la API v1 y el webhook.

    Args:
        app: Instancia de FastAPI
    """
    app.include_router(
        webhooks_router,
        prefix="/webhook",
        tags=["Webhooks"],
    )

    app.include_router(
        orders_router,
        prefix="/api/v1/orders",
        tags=["Orders"],
    )

    app.include_router(
        sync_router,
        prefix="/api/v1/sync",
        tags=["Sync"],
    )


def configure_all_routers(app: FastAPI) -> None:
    """
    Configura todos los routers y endpoints de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando routers...")

    create_root_endpoints(app)
    create_health_endpoints(app)
    configure_api_v1_routers(app)

    logger.info("✅ Routers configurados correctamente")
