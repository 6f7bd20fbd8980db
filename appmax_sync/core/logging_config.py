"""
Configuración del sistema de logging.

Este módulo configura el logging de la aplicación con:
- Handlers de consola y archivo con rotación
- Formateo con colores en desarrollo y JSON en producción
- Filtro que marca los registros de sincronización de pedidos
- Helpers para registrar operaciones de sync y llamadas a Shopify
"""

import json
import logging
import logging.config
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from appmax_sync.core.config import get_settings

settings = get_settings()

# Atributos estándar de LogRecord que no se exportan como "extra"
_RESERVED_RECORD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "taskName",
}


class ColoredFormatter(logging.Formatter):
    """
    Formatter personalizado que agrega colores a los logs en consola.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Verde
        "WARNING": "\033[33m",  # Amarillo
        "ERROR": "\033[31m",  # Rojo
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record):
        formatted = super().format(record)

        # Solo colorear si la salida es una terminal
        if hasattr(sys.stdout, "isatty") and sys.stdout.isatty():
            color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
            reset = self.COLORS["RESET"]
            formatted = formatted.replace(record.levelname, f"{color}{record.levelname}{reset}", 1)

        return formatted


class StructuredFormatter(logging.Formatter):
    """
    Formatter para logging estructurado en JSON.
    Útil para sistemas de monitoreo como ELK Stack.
    """

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "app_name": settings.APP_NAME,
            "app_version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields = {key: value for key, value in record.__dict__.items() if key not in _RESERVED_RECORD_ATTRS}
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class SyncOperationFilter(logging.Filter):
    """
    Filtro que marca los registros emitidos por los módulos de sincronización.
    """

    SYNC_MODULES = ("sync", "shopify", "webhook", "queue", "orders")

    def filter(self, record):
        if any(module in record.name.lower() for module in self.SYNC_MODULES):
            record.operation_type = "sync"

        return True


def setup_logging() -> None:
    """
    Configura el sistema de logging completo de la aplicación.
    """
    if settings.LOG_FILE_PATH:
        Path(settings.LOG_FILE_PATH).parent.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(get_logging_configuration())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL))

    sync_filter = SyncOperationFilter()
    for handler in root_logger.handlers:
        handler.addFilter(sync_filter)

    configure_specific_loggers()

    logger = logging.getLogger(__name__)
    logger.info(f"Sistema de logging configurado - Nivel: {settings.LOG_LEVEL}")
    if settings.LOG_FILE_PATH:
        logger.info(f"Logs guardándose en: {settings.LOG_FILE_PATH}")


def get_logging_configuration() -> Dict[str, Any]:
    """
    Genera configuración completa de logging.

    Returns:
        Dict: Configuración para logging.config.dictConfig
    """
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": settings.LOG_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": ("%(asctime)s - %(name)s - %(levelname)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s"),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "colored": {
                "()": ColoredFormatter,
                "format": settings.LOG_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {"()": StructuredFormatter},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": settings.LOG_LEVEL,
                "formatter": "json" if settings.is_production else "colored",
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn.error": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {"level": settings.LOG_LEVEL, "handlers": ["console"]},
    }

    if settings.LOG_FILE_PATH:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": settings.LOG_LEVEL,
            "formatter": "detailed",
            "filename": settings.LOG_FILE_PATH,
            "maxBytes": settings.LOG_MAX_SIZE_MB * 1024 * 1024,
            "backupCount": settings.LOG_BACKUP_COUNT,
            "encoding": "utf-8",
        }

        # Errores en archivo separado
        error_log_path = settings.LOG_FILE_PATH.replace(".log", "_errors.log")
        config["handlers"]["error_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "detailed",
            "filename": error_log_path,
            "maxBytes": settings.LOG_MAX_SIZE_MB * 1024 * 1024,
            "backupCount": settings.LOG_BACKUP_COUNT,
            "encoding": "utf-8",
        }
        config["root"]["handlers"].extend(["file", "error_file"])

    return config


def configure_specific_loggers() -> None:
    """
    Configura niveles de loggers específicos y reduce la verbosidad de librerías externas.
    """
    logging.getLogger("appmax_sync.services").setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    logging.getLogger("appmax_sync.db").setLevel(logging.INFO)

    sqlalchemy_level = logging.INFO if settings.DATABASE_ECHO else logging.WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(sqlalchemy_level)

    for logger_name in ["aiohttp.access", "aiohttp.client", "httpx", "aiosqlite"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def log_sync_operation(operation: str, source_order_id: str, sink_order_id: Optional[str] = None, **kwargs):
    """
    Registra el resultado de una operación de sincronización de pedido.

    Args:
        operation: Acción aplicada (created, updated, cancelled, refunded, skipped)
        source_order_id: ID del pedido en Appmax
        sink_order_id: ID del pedido en Shopify, si existe
        **kwargs: Datos adicionales
    """
    logger = logging.getLogger("appmax_sync.sync.operation")

    extra_data = {
        "sync_operation": operation,
        "source_order_id": source_order_id,
        "sink_order_id": sink_order_id,
        **kwargs,
    }

    logger.info(
        f"Sync operation: {operation} - Appmax #{source_order_id} -> Shopify {sink_order_id or '-'}",
        extra=extra_data,
    )


def log_api_call(method: str, url: str, status_code: int, duration: float, **kwargs):
    """
    Registra una llamada a la API de Shopify.

    Args:
        method: Método HTTP
        url: URL de la API
        status_code: Código de respuesta (0 si no hubo respuesta)
        duration: Duración en segundos
        **kwargs: Datos adicionales
    """
    logger = logging.getLogger("appmax_sync.shopify.call")

    extra_data = {
        "method": method,
        "url": url,
        "status_code": status_code,
        "duration_ms": round(duration * 1000, 2),
        **kwargs,
    }

    if 200 <= status_code < 300:
        level = logging.DEBUG
    elif 400 <= status_code < 500:
        level = logging.WARNING
    else:
        level = logging.ERROR

    logger.log(
        level,
        f"API call: {method} {url} -> {status_code} ({duration * 1000:.1f}ms)",
        extra=extra_data,
    )


def log_webhook_received(event: str, source_order_id: Optional[str], **kwargs):
    """
    Registra un webhook recibido de Appmax.

    Args:
        event: Nombre del evento
        source_order_id: ID del pedido en Appmax, si viene en el payload
        **kwargs: Datos adicionales
    """
    logger = logging.getLogger("appmax_sync.webhook.received")

    extra_data = {
        "webhook_event": event,
        "source_order_id": source_order_id,
        **kwargs,
    }

    logger.info(f"Webhook received: {event} - Appmax #{source_order_id}", extra=extra_data)
