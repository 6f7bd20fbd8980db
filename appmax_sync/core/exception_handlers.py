"""
Manejadores de excepciones centralizados para la aplicación FastAPI.

Todas las respuestas de error comparten el formato
{error, error_type, error_code, message, path, timestamp}.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from appmax_sync.core.config import get_settings
from appmax_sync.utils.error_handler import (
    AppException,
    LockTimeoutException,
    ShopifyAPIException,
    SyncException,
    ValidationException,
)

settings = get_settings()
logger = logging.getLogger(__name__)


def _error_content(
    request: Request,
    error_type: str,
    message: str,
    error_code: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    return {
        "error": True,
        "error_type": error_type,
        "error_code": error_code,
        "message": message,
        **extra,
        "path": str(request.url.path),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("X-Request-ID"),
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Manejador para excepciones personalizadas de la aplicación.

    Args:
        request: Request de FastAPI
        exc: Excepción personalizada de la app

    Returns:
        JSONResponse: Respuesta JSON con error formateado
    """
    logger.error(f"App Exception: {exc.message} - Code: {exc.error_code.value} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(
            request,
            "application_error",
            exc.message,
            exc.error_code.value,
            details=exc.details if settings.DEBUG else None,
        ),
    )


async def validation_exception_handler(request: Request, exc: ValidationException) -> JSONResponse:
    """
    Manejador para errores de validación de datos.

    Args:
        request: Request de FastAPI
        exc: Excepción de validación

    Returns:
        JSONResponse: Respuesta JSON con detalles de validación
    """
    logger.warning(f"Validation Exception: {exc.message} - Field: {exc.field} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(
            request,
            "validation_error",
            exc.message,
            exc.error_code.value,
            field=exc.field,
            invalid_value=str(exc.invalid_value) if settings.DEBUG and exc.invalid_value is not None else None,
            expected_format=exc.expected_format,
        ),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Errores de parseo del cuerpo o de los parámetros (JSON inválido, tipos)."""
    logger.warning(f"Request validation error: {exc.errors()} - URL: {request.url}")

    return JSONResponse(
        status_code=400,
        content=_error_content(
            request,
            "validation_error",
            "Invalid request",
            "VALIDATION_ERROR",
            errors=[{"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in exc.errors()],
        ),
    )


async def lock_timeout_exception_handler(request: Request, exc: LockTimeoutException) -> JSONResponse:
    logger.warning(f"Lock timeout: {exc.message} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(request, "lock_timeout", exc.message, exc.error_code.value),
        headers={"Retry-After": str(int(settings.ORDER_LOCK_TIMEOUT) or 1)},
    )


async def sync_exception_handler(request: Request, exc: SyncException) -> JSONResponse:
    """
    Manejador específico para errores de sincronización.

    Args:
        request: Request de FastAPI
        exc: Excepción de sincronización

    Returns:
        JSONResponse: Respuesta JSON con información de error de sync
    """
    logger.error(
        f"Sync Exception: {exc.message} - Service: {exc.service} - Operation: {exc.operation} - URL: {request.url}"
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(
            request,
            "synchronization_error",
            exc.message,
            exc.error_code.value,
            service=exc.service,
            operation=exc.operation,
            retry_suggested=exc.is_retryable,
        ),
    )


async def shopify_api_exception_handler(request: Request, exc: ShopifyAPIException) -> JSONResponse:
    """
    Manejador específico para errores de la API de Shopify.

    Args:
        request: Request de FastAPI
        exc: Excepción de Shopify API

    Returns:
        JSONResponse: Respuesta JSON con información del error de Shopify
    """
    logger.error(
        f"Shopify API Exception: {exc.message} - API Code: {exc.api_response_code} - "
        f"Rate Limited: {exc.rate_limited} - URL: {request.url}"
    )

    headers = {}
    if exc.rate_limited and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)

    # Los errores de Shopify no son errores del cliente de esta API
    return JSONResponse(
        status_code=502 if exc.api_response_code and exc.api_response_code < 500 else 503,
        content=_error_content(
            request,
            "shopify_api_error",
            exc.message,
            exc.error_code.value,
            shopify_response_code=exc.api_response_code,
            rate_limited=exc.rate_limited,
            endpoint=exc.endpoint,
        ),
        headers=headers,
    )


async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Manejador para HTTPException de Starlette (404 de rutas, 405, etc).

    Args:
        request: Request de FastAPI
        exc: StarletteHTTPException

    Returns:
        JSONResponse: Respuesta JSON estandarizada
    """
    logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail} - URL: {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(request, "http_error", str(exc.detail), status_code=exc.status_code),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Manejador global para excepciones no capturadas.

    Args:
        request: Request de FastAPI
        exc: Excepción no manejada

    Returns:
        JSONResponse: Respuesta JSON de error interno
    """
    logger.error(
        f"Unhandled Exception: {str(exc)} - Type: {type(exc).__name__} - URL: {request.url} - "
        f"Traceback: {traceback.format_exc()}"
    )

    error_message = "Internal server error occurred"
    if settings.DEBUG:
        error_message = f"{type(exc).__name__}: {str(exc)}"

    return JSONResponse(
        status_code=500,
        content=_error_content(request, "internal_server_error", error_message, "UNKNOWN_ERROR"),
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configura todos los manejadores de excepciones de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando manejadores de excepciones...")

    # Manejadores específicos (orden de especificidad)
    app.add_exception_handler(ValidationException, validation_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(LockTimeoutException, lock_timeout_exception_handler)
    app.add_exception_handler(SyncException, sync_exception_handler)
    app.add_exception_handler(ShopifyAPIException, shopify_api_exception_handler)
    app.add_exception_handler(AppException, app_exception_handler)

    app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)

    # Manejador global (debe ser el último)
    app.add_exception_handler(Exception, global_exception_handler)

    logger.info("✅ Manejadores de excepciones configurados correctamente")
