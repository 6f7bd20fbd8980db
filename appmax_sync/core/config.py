"""
Configuración centralizada de la aplicación.

Este módulo maneja todas las variables de entorno y configuraciones
de la aplicación usando Pydantic Settings para validación automática.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Configuración de la aplicación usando Pydantic Settings.

    Todas las configuraciones se cargan desde variables de entorno
    con valores por defecto apropiados para desarrollo.
    """

    # === CONFIGURACIÓN BÁSICA DE LA APP ===
    APP_NAME: str = "Appmax-Shopify Sync"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = Field(default="development", env="ENVIRONMENT")
    DEBUG: bool = Field(default=False, env="DEBUG")

    # === CONFIGURACIÓN DEL SERVIDOR ===
    HOST: str = Field(default="0.0.0.0", env="HOST")
    PORT: int = Field(default=3000, env="PORT")
    LOG_LEVEL: str = Field(default="INFO", env="LOG_LEVEL")

    # === CONFIGURACIÓN DE BASE DE DATOS ===
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./data/orders.db", env="DATABASE_URL")
    DATABASE_ECHO: bool = Field(default=False, env="DATABASE_ECHO")

    # === CONFIGURACIÓN DE SHOPIFY ===
    SHOPIFY_SHOP_URL: str = Field(default="your-shop.myshopify.com", env="SHOPIFY_SHOP_URL")
    SHOPIFY_ACCESS_TOKEN: str = Field(default="your-access-token", env="SHOPIFY_ACCESS_TOKEN")
    SHOPIFY_API_VERSION: str = Field(default="2024-01", env="SHOPIFY_API_VERSION")
    SHOPIFY_REQUEST_TIMEOUT: int = Field(default=30, env="SHOPIFY_REQUEST_TIMEOUT")
    SHOPIFY_CURRENCY: str = Field(default="BRL", env="SHOPIFY_CURRENCY")
    # Búsqueda remota acotada por idempotency tag
    SHOPIFY_SEARCH_DAYS: int = Field(default=30, env="SHOPIFY_SEARCH_DAYS")
    SHOPIFY_SEARCH_MAX_PAGES: int = Field(default=4, env="SHOPIFY_SEARCH_MAX_PAGES")

    # === CONFIGURACIÓN DE RATE LIMITING ===
    RATE_LIMIT_MIN_INTERVAL: float = Field(default=0.5, env="RATE_LIMIT_MIN_INTERVAL")
    RATE_LIMIT_MAX_ATTEMPTS: int = Field(default=5, env="RATE_LIMIT_MAX_ATTEMPTS")
    RATE_LIMIT_BASE_DELAY: float = Field(default=1.0, env="RATE_LIMIT_BASE_DELAY")

    # === CONFIGURACIÓN DE LOCKS POR PEDIDO ===
    ORDER_LOCK_TIMEOUT: float = Field(default=5.0, env="ORDER_LOCK_TIMEOUT")
    ORDER_LOCK_POLL_INTERVAL: float = Field(default=0.1, env="ORDER_LOCK_POLL_INTERVAL")

    # === CONFIGURACIÓN DE LA COLA DE REINTENTOS ===
    QUEUE_ENABLED: bool = Field(default=True, env="QUEUE_ENABLED")
    QUEUE_POLL_INTERVAL: float = Field(default=5.0, env="QUEUE_POLL_INTERVAL")
    QUEUE_MAX_ATTEMPTS: int = Field(default=3, env="QUEUE_MAX_ATTEMPTS")
    # Pausa mínima entre filas para respetar el rate limit de Shopify
    QUEUE_ROW_DELAY: float = Field(default=0.5, env="QUEUE_ROW_DELAY")
    QUEUE_BATCH_SIZE: int = Field(default=50, env="QUEUE_BATCH_SIZE")

    # === CONFIGURACIÓN DE NORMALIZACIÓN DE PAYLOADS ===
    # JSON: {"first_name": ["firstname", "firstName"], ...}
    CUSTOMER_FIELD_ALIASES: Optional[Dict[str, List[str]]] = Field(default=None, env="CUSTOMER_FIELD_ALIASES")
    DEFAULT_CUSTOMER_FIRST_NAME: str = Field(default="Cliente", env="DEFAULT_CUSTOMER_FIRST_NAME")
    DEFAULT_CUSTOMER_LAST_NAME: str = Field(default="Appmax", env="DEFAULT_CUSTOMER_LAST_NAME")

    # === CONFIGURACIÓN DE LOGGING ===
    LOG_FILE_PATH: Optional[str] = Field(default="logs/app.log", env="LOG_FILE_PATH")
    LOG_MAX_SIZE_MB: int = Field(default=10, env="LOG_MAX_SIZE_MB")
    LOG_BACKUP_COUNT: int = Field(default=5, env="LOG_BACKUP_COUNT")
    LOG_FORMAT: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s", env="LOG_FORMAT")

    # === CONFIGURACIÓN DE DOCUMENTACIÓN ===
    ENABLE_DOCS: bool = Field(default=True, env="ENABLE_DOCS")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "allow",
    }

    @field_validator("SHOPIFY_SHOP_URL")
    @classmethod
    def validate_shopify_url(cls, v):
        """Valida que la URL de Shopify tenga el formato correcto."""
        if v in ["your-shop.myshopify.com"]:
            return v
        host = v.replace("https://", "").replace("http://", "").rstrip("/")
        if not host.endswith(".myshopify.com"):
            raise ValueError("SHOPIFY_SHOP_URL debe terminar en .myshopify.com")
        return host

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Valida que el nivel de log sea válido."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {valid_levels}")
        return v.upper()

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Valida que el entorno sea válido."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT debe ser uno de: {valid_envs}")
        return v.lower()

    @field_validator(
        "RATE_LIMIT_MIN_INTERVAL",
        "RATE_LIMIT_BASE_DELAY",
        "ORDER_LOCK_TIMEOUT",
        "ORDER_LOCK_POLL_INTERVAL",
        "QUEUE_POLL_INTERVAL",
        "QUEUE_ROW_DELAY",
    )
    @classmethod
    def validate_non_negative_interval(cls, v):
        """Los intervalos no pueden ser negativos."""
        if v < 0:
            raise ValueError("Los intervalos de tiempo deben ser >= 0")
        return v

    @field_validator("RATE_LIMIT_MAX_ATTEMPTS", "QUEUE_MAX_ATTEMPTS", "QUEUE_BATCH_SIZE", "SHOPIFY_SEARCH_MAX_PAGES")
    @classmethod
    def validate_positive_count(cls, v):
        """Los contadores de intentos y lotes deben ser positivos."""
        if v < 1:
            raise ValueError("El valor debe ser >= 1")
        return v

    @property
    def is_production(self) -> bool:
        """Verifica si está en entorno de producción."""
        return self.ENVIRONMENT == "production"

    @property
    def shopify_api_base_url(self) -> str:
        """Genera URL base de la API REST de Shopify."""
        return f"https://{self.SHOPIFY_SHOP_URL}/admin/api/{self.SHOPIFY_API_VERSION}"

    def get_shopify_headers(self) -> dict:
        """
        Obtiene headers para requests a Shopify.

        Returns:
            dict: Headers de autenticación
        """
        return {
            "X-Shopify-Access-Token": self.SHOPIFY_ACCESS_TOKEN,
            "Content-Type": "application/json",
            "User-Agent": f"{self.APP_NAME}/{self.APP_VERSION}",
        }


@lru_cache()
def get_settings() -> Settings:
    """
    Obtiene instancia singleton de configuración.

    Usa LRU cache para evitar recrear la configuración
    múltiples veces durante la ejecución.

    Returns:
        Settings: Instancia de configuración
    """
    return Settings()


# Instancia global para uso directo
settings = get_settings()

