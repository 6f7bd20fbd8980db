"""
Base repository for the local queue database.

Provides the shared ConnDB handle and an operation-logging decorator for the
concrete repositories.
"""

import functools
import logging
from typing import Callable, Optional

from appmax_sync.db.connection import ConnDB

logger = logging.getLogger(__name__)


def log_operation(operation_name: Optional[str] = None) -> Callable:
    """
    Decorator for logging database operations.

    Args:
        operation_name: Optional custom name for the operation

    Returns:
        Decorated function with logging
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            op_name = operation_name or f"{self.__class__.__name__}.{func.__name__}"
            logger.debug(f"Starting operation: {op_name}")

            try:
                result = await func(self, *args, **kwargs)
                logger.debug(f"Operation successful: {op_name}")
                return result
            except Exception as e:
                logger.error(f"Operation failed: {op_name} - {e}")
                raise

        return wrapper

    return decorator


class BaseRepository:
    """
    Base class for repositories over the local database.

    Every write is a single statement or a single short transaction keyed by id.
    """

    def __init__(self, conn_db: ConnDB):
        self.conn_db = conn_db
        self._repository_name = self.__class__.__name__
        logger.debug(f"{self._repository_name} instantiated")
