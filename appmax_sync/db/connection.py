# appmax_sync/db/connection.py
"""
Clase ConnDB para gestión de la conexión a la base de datos local.

La base guarda la cola de reintentos y el mapeo de pedidos Appmax -> Shopify.
Por defecto es SQLite (aiosqlite); cualquier URL async de SQLAlchemy sirve.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from appmax_sync.core.config import get_settings
from appmax_sync.db.models import Base
from appmax_sync.utils.error_handler import DatabaseConnectionException

settings = get_settings()
logger = logging.getLogger(__name__)


class ConnDB:
    """
    Gestiona el engine async, la factory de sesiones y el ciclo de vida de la conexión.

    Se crea una única instancia en el arranque de la aplicación y se pasa a
    los repositorios.
    """

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        self.database_url = database_url or settings.DATABASE_URL
        self.echo = settings.DATABASE_ECHO if echo is None else echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    async def initialize(self) -> None:
        """
        Crea el engine, la factory de sesiones y las tablas si no existen.

        Raises:
            DatabaseConnectionException: Si falla la inicialización
        """
        if self.engine is not None:
            logger.info("Database connection already initialized")
            return

        try:
            logger.info("Initializing database connection...")
            self._ensure_sqlite_directory()

            self.engine = create_async_engine(self.database_url, echo=self.echo, pool_pre_ping=True)
            self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            logger.info("Database connection initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            await self.close()
            raise DatabaseConnectionException(
                message=f"Failed to initialize database connection: {str(e)}",
                operation="initialization",
            ) from e

    def _ensure_sqlite_directory(self) -> None:
        url = make_url(self.database_url)
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    def is_initialized(self) -> bool:
        return self.engine is not None and self.session_factory is not None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Abre una sesión transaccional: commit al salir, rollback ante error.

        Raises:
            DatabaseConnectionException: Si la conexión no está inicializada
        """
        if not self.is_initialized():
            raise DatabaseConnectionException(
                message="Database connection not initialized. Call initialize() first.",
                operation="session_creation",
            )

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def test_connection(self) -> bool:
        """
        Prueba la conexión de forma no destructiva.

        Returns:
            bool: True si la conexión funciona correctamente
        """
        if not self.is_initialized():
            return False
        try:
            async with self.session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    async def close(self) -> None:
        """Libera el engine y su pool de conexiones."""
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database connection closed")
        self.engine = None
        self.session_factory = None
