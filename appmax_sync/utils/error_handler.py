"""
Sistema de manejo de errores personalizado.

Este módulo define todas las excepciones personalizadas de la aplicación
y proporciona utilidades para manejo consistente de errores.
"""

import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """
    Códigos de error estandardizados para la aplicación.
    """

    # Errores generales
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"

    # Errores de base de datos
    DATABASE_CONNECTION_FAILED = "DATABASE_CONNECTION_FAILED"

    # Errores de Shopify
    SHOPIFY_CONNECTION_FAILED = "SHOPIFY_CONNECTION_FAILED"
    SHOPIFY_API_ERROR = "SHOPIFY_API_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    DUPLICATE_IDENTITY = "DUPLICATE_IDENTITY"

    # Errores de sincronización
    SYNC_FAILED = "SYNC_FAILED"
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    SYNC_RETRIES_EXHAUSTED = "SYNC_RETRIES_EXHAUSTED"

    # Errores de datos
    INVALID_ORDER_DATA = "INVALID_ORDER_DATA"


class ErrorSeverity(Enum):
    """
    Niveles de severidad para errores.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppException(Exception):
    """
    Excepción base para todas las excepciones personalizadas de la aplicación.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        is_retryable: bool = False,
    ):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error
            error_code: Código de error estandardizado
            details: Información adicional del error
            status_code: Código HTTP asociado
            severity: Severidad del error
            is_retryable: Si la operación puede reintentarse
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.severity = severity
        self.is_retryable = is_retryable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convierte la excepción a diccionario.

        Returns:
            Dict: Representación de la excepción
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "details": self.details,
            "status_code": self.status_code,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        return f"{self.error_code.value}: {self.message}"


class ValidationException(AppException):
    """
    Excepción para errores de validación de datos de entrada.
    Nunca se reintenta.
    """

    def __init__(
        self,
        message: str,
        field: str,
        invalid_value: Any = None,
        expected_format: Optional[str] = None,
        **kwargs,
    ):
        """
        Inicializa la excepción de validación.

        Args:
            message: Mensaje de error
            field: Campo que falló la validación
            invalid_value: Valor que causó el error
            expected_format: Formato esperado
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=kwargs.pop("status_code", 422),
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.field = field
        self.invalid_value = invalid_value
        self.expected_format = expected_format

        self.details.update(
            {
                "field": field,
                "invalid_value": str(invalid_value) if invalid_value is not None else None,
                "expected_format": expected_format,
            }
        )


class NotFoundException(AppException):
    """
    Excepción para recursos inexistentes en las consultas de la API.
    """

    def __init__(self, message: str, resource: str, resource_id: Any, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            status_code=404,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.resource = resource
        self.resource_id = resource_id
        self.details.update({"resource": resource, "resource_id": str(resource_id)})


class DatabaseConnectionException(AppException):
    """
    Excepción para errores de conexión con la base de datos local de la cola.
    """

    def __init__(self, message: str, operation: str = "connection", **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.DATABASE_CONNECTION_FAILED,
            status_code=503,
            severity=ErrorSeverity.CRITICAL,
            is_retryable=True,
            **kwargs,
        )
        self.operation = operation
        self.details["operation"] = operation


class LockTimeoutException(AppException):
    """
    Excepción cuando no se obtiene el lock de un pedido dentro del tiempo límite.

    La fila de la cola queda pendiente y se reintenta en la siguiente pasada
    del dispatcher.
    """

    def __init__(self, source_order_id: str, timeout: float, **kwargs):
        super().__init__(
            message=f"Could not acquire lock for order {source_order_id} within {timeout}s",
            error_code=ErrorCode.LOCK_TIMEOUT,
            status_code=409,
            severity=ErrorSeverity.LOW,
            is_retryable=True,
            **kwargs,
        )
        self.source_order_id = source_order_id
        self.timeout = timeout
        self.details.update({"source_order_id": source_order_id, "timeout": timeout})


class ShopifyAPIException(AppException):
    """
    Excepción para errores de la API de Shopify.

    Es reintentable (error transitorio) cuando no hubo respuesta (timeout o
    conexión), cuando Shopify responde 429 o 408, o ante cualquier 5xx. El
    resto de respuestas 4xx son errores permanentes.
    """

    TRANSIENT_STATUS_CODES = {408, 429}

    def __init__(
        self,
        message: str,
        api_response_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        rate_limited: bool = False,
        retry_after: Optional[float] = None,
        error_code: Optional[ErrorCode] = None,
        **kwargs,
    ):
        """
        Inicializa la excepción de Shopify API.

        Args:
            message: Mensaje de error
            api_response_code: Código de respuesta de Shopify (None si no hubo respuesta)
            endpoint: Endpoint que falló
            rate_limited: Si es por rate limiting
            retry_after: Segundos sugeridos por Shopify para reintentar
            error_code: Código de error explícito
            **kwargs: Argumentos adicionales para AppException
        """
        rate_limited = rate_limited or api_response_code == 429
        is_retryable = kwargs.pop("is_retryable", None)
        if is_retryable is None:
            is_retryable = self.is_transient_status(api_response_code)

        severity = ErrorSeverity.MEDIUM
        if error_code is None:
            error_code = ErrorCode.SHOPIFY_API_ERROR
            if rate_limited:
                error_code = ErrorCode.RATE_LIMIT_EXCEEDED
                severity = ErrorSeverity.LOW
            elif api_response_code is None:
                error_code = ErrorCode.SHOPIFY_CONNECTION_FAILED
            elif api_response_code >= 500:
                severity = ErrorSeverity.HIGH

        super().__init__(
            message=message,
            error_code=error_code,
            status_code=api_response_code or 503,
            severity=severity,
            is_retryable=is_retryable,
            **kwargs,
        )

        self.api_response_code = api_response_code
        self.endpoint = endpoint
        self.rate_limited = rate_limited
        self.retry_after = retry_after

        self.details.update(
            {
                "api_response_code": api_response_code,
                "endpoint": endpoint,
                "rate_limited": rate_limited,
                "retry_after": retry_after,
            }
        )

    @classmethod
    def is_transient_status(cls, status: Optional[int]) -> bool:
        """Indica si un código de respuesta corresponde a un error transitorio."""
        if status is None:
            return True
        return status in cls.TRANSIENT_STATUS_CODES or status >= 500

    @classmethod
    def from_response(
        cls,
        status: int,
        body: Any,
        endpoint: str,
        retry_after: Optional[float] = None,
    ) -> "ShopifyAPIException":
        """
        Clasifica una respuesta de error de Shopify en la excepción adecuada.

        Args:
            status: Código HTTP
            body: Cuerpo de la respuesta ya decodificado (dict o texto)
            endpoint: Endpoint invocado
            retry_after: Valor del header Retry-After, si existe

        Returns:
            ShopifyAPIException: DuplicateIdentityException para 422 por cliente
            duplicado, ShopifyAPIException en otro caso
        """
        errors = body.get("errors", body) if isinstance(body, dict) else body
        message = format_shopify_errors(errors) or f"HTTP {status}"

        if status == 422:
            duplicated_field = find_duplicate_identity_field(errors)
            if duplicated_field:
                return DuplicateIdentityException(
                    message=f"Shopify rejected duplicate customer {duplicated_field}: {message}",
                    field=duplicated_field,
                    endpoint=endpoint,
                )

        return cls(
            message=f"Shopify API error ({status}) on {endpoint}: {message}",
            api_response_code=status,
            endpoint=endpoint,
            retry_after=retry_after,
        )


class DuplicateIdentityException(ShopifyAPIException):
    """
    Conflicto 422 causado por un cliente ya existente en Shopify (email o teléfono).

    El orquestador lo trata de forma especial: vuelve a resolver el pedido y
    continúa con una actualización.
    """

    def __init__(self, message: str, field: str, endpoint: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            api_response_code=422,
            endpoint=endpoint,
            error_code=ErrorCode.DUPLICATE_IDENTITY,
            is_retryable=False,
            **kwargs,
        )
        self.field = field
        self.details["field"] = field


class SyncException(AppException):
    """
    Excepción para errores de sincronización que no provienen de la API.
    """

    def __init__(
        self,
        message: str,
        service: str,
        operation: str,
        retry_suggested: bool = True,
        **kwargs,
    ):
        """
        Inicializa la excepción de sincronización.

        Args:
            message: Mensaje de error
            service: Servicio involucrado (appmax, shopify)
            operation: Operación que falló
            retry_suggested: Si se sugiere reintentar
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.SYNC_FAILED,
            status_code=500,
            severity=ErrorSeverity.HIGH,
            is_retryable=retry_suggested,
            **kwargs,
        )

        self.service = service
        self.operation = operation
        self.details.update({"service": service, "operation": operation})


class ExhaustedRetriesException(AppException):
    """
    Una fila de la cola alcanzó el máximo de intentos y queda como fallo permanente.
    """

    def __init__(self, request_id: int, attempts: int, last_error: Optional[str], **kwargs):
        super().__init__(
            message=f"Sync request {request_id} abandoned after {attempts} attempts: {last_error}",
            error_code=ErrorCode.SYNC_RETRIES_EXHAUSTED,
            status_code=500,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )
        self.request_id = request_id
        self.attempts = attempts
        self.last_error = last_error
        self.details.update({"request_id": request_id, "attempts": attempts, "last_error": last_error})


DUPLICATE_IDENTITY_FIELDS = ("customer", "email", "phone", "customer.email", "customer.phone")
DUPLICATE_IDENTITY_MARKERS = ("already been taken", "already exists", "has already", "já está em uso")


def format_shopify_errors(errors: Any) -> str:
    """
    Aplana el campo ``errors`` de Shopify (texto, lista o dict de listas) en un texto legible.

    Args:
        errors: Valor del campo errors

    Returns:
        str: Mensaje plano
    """
    if errors is None:
        return ""
    if isinstance(errors, str):
        return errors
    if isinstance(errors, list):
        return ", ".join(str(item) for item in errors)
    if isinstance(errors, dict):
        parts = []
        for key, value in errors.items():
            values = value if isinstance(value, list) else [value]
            parts.append(f"{key}: {', '.join(str(v) for v in values)}")
        return "; ".join(parts)
    return str(errors)


def find_duplicate_identity_field(errors: Any) -> Optional[str]:
    """
    Busca en los errores de un 422 el campo de identidad de cliente duplicado.

    Args:
        errors: Valor del campo errors

    Returns:
        Optional[str]: "email" o "phone" si el conflicto es de identidad, None si no
    """
    if not isinstance(errors, dict):
        return None

    for key, value in errors.items():
        if key not in DUPLICATE_IDENTITY_FIELDS:
            continue
        messages = [str(v).lower() for v in (value if isinstance(value, list) else [value])]
        for text in messages:
            if not any(marker in text for marker in DUPLICATE_IDENTITY_MARKERS):
                continue
            if "phone" in key or "phone" in text:
                return "phone"
            return "email"

    return None


def log_error(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR,
) -> None:
    """
    Loggea un error de manera consistente.

    Args:
        exception: Excepción a loggear
        context: Contexto adicional
        level: Nivel de logging
    """
    context = context or {}

    log_data = {
        "exception_type": type(exception).__name__,
        "exception_message": str(exception),
        **context,
    }

    if isinstance(exception, AppException):
        message = f"{exception.error_code.value}: {exception.message}"
        log_data.update(
            {
                "error_code": exception.error_code.value,
                "severity": exception.severity.value,
                "is_retryable": exception.is_retryable,
            }
        )
    else:
        message = f"Unhandled exception: {type(exception).__name__}: {str(exception)}"
        log_data["traceback"] = "".join(
            traceback.format_exception(type(exception), exception, exception.__traceback__)
        )

    logger.log(level, message, extra=log_data)
