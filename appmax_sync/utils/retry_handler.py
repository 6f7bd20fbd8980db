"""
Política de reintentos con backoff exponencial.

Decide qué errores se reintentan y cuánto esperar entre intentos. La usa el
cliente con rate limit que envuelve todas las llamadas a Shopify.
"""

import asyncio
import logging
import random
from typing import List, Optional, Type

from appmax_sync.core.config import get_settings
from appmax_sync.utils.error_handler import AppException, ShopifyAPIException

settings = get_settings()
logger = logging.getLogger(__name__)


class RetryPolicy:
    """
    Política de reintentos configurable.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = False,
        retry_on: Optional[List[Type[Exception]]] = None,
        stop_on: Optional[List[Type[Exception]]] = None,
    ):
        """
        Inicializa la política de reintentos.

        Args:
            max_attempts: Número máximo de intentos (incluye el primero)
            base_delay: Delay base en segundos
            max_delay: Delay máximo en segundos
            exponential_base: Base para backoff exponencial
            jitter: Si agregar jitter aleatorio (±10%)
            retry_on: Excepciones no-AppException en las que reintentar
            stop_on: Excepciones que detienen inmediatamente
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on or [asyncio.TimeoutError, ConnectionError]
        self.stop_on = stop_on or []

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """
        Determina si debe reintentar la operación.

        Args:
            exception: Excepción que ocurrió
            attempt: Número de intentos ya realizados (empieza en 1)

        Returns:
            bool: True si debe reintentar
        """
        if attempt >= self.max_attempts:
            return False

        for stop_exc in self.stop_on:
            if isinstance(exception, stop_exc):
                return False

        # Las excepciones propias saben si son transitorias
        if isinstance(exception, AppException):
            return exception.is_retryable

        return any(isinstance(exception, retry_exc) for retry_exc in self.retry_on)

    def calculate_delay(self, attempt: int, exception: Optional[Exception] = None) -> float:
        """
        Calcula el delay antes del siguiente intento.

        El intento n (empezando en 1) espera ``base_delay * exponential_base ** (n - 1)``,
        es decir 1s, 2s, 4s, 8s con los valores por defecto.

        Args:
            attempt: Número de intento que acaba de fallar
            exception: Excepción que causó el retry (opcional)

        Returns:
            float: Segundos a esperar
        """
        if isinstance(exception, ShopifyAPIException) and exception.retry_after:
            return min(exception.retry_after, self.max_delay)

        delay = self.base_delay * (self.exponential_base ** (attempt - 1))

        if self.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        delay = min(delay, self.max_delay)

        return max(delay, 0)


def create_shopify_retry_policy() -> RetryPolicy:
    """
    Crea la política de reintentos para llamadas a Shopify a partir de la configuración.

    Returns:
        RetryPolicy: Política configurada
    """
    return RetryPolicy(
        max_attempts=settings.RATE_LIMIT_MAX_ATTEMPTS,
        base_delay=settings.RATE_LIMIT_BASE_DELAY,
        max_delay=30.0,
        exponential_base=2.0,
    )
