"""
Base repository for the operations database.

Provides connection/session handling plus the retry and logging
decorators shared by every repository.
"""

import asyncio
import functools
import logging
from typing import Any, AsyncContextManager, Callable, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from bulk_editor.db.connection import ConnDB, get_db_connection
from bulk_editor.utils.error_handler import DatabaseException

logger = logging.getLogger(__name__)


def with_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (DatabaseException,),
) -> Callable:
    """
    Decorator for retrying database operations with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between retries in seconds
        backoff: Multiplier for exponential backoff
        exceptions: Tuple of exceptions to catch and retry

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts - 1:
                        logger.error(f"All {max_attempts} attempts failed for {func.__name__}")
                        raise
                    logger.warning(
                        f"Attempt {attempt + 1}/{max_attempts} failed for {func.__name__}: {e}. "
                        f"Retrying in {current_delay:.1f}s..."
                    )
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff

        return wrapper

    return decorator


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
    Base repository for the operations database.

    Derived repositories implement their queries with raw ``text()`` SQL
    and obtain sessions through ``get_session()``.
    """

    def __init__(self, conn_db: Optional[ConnDB] = None):
        """
        Initialize the base repository.

        Args:
            conn_db: Optional database connection. If not provided, uses global connection.
        """
        self.conn_db: ConnDB = conn_db or get_db_connection()
        self._repository_name: str = self.__class__.__name__

    async def initialize(self) -> None:
        """
        Ensure the connection and schema are available.

        Raises:
            DatabaseException: If initialization fails
        """
        if not self.conn_db.is_initialized():
            await self.conn_db.initialize()
        await self.conn_db.create_schema()
        logger.info(f"{self._repository_name} initialized successfully")

    def is_initialized(self) -> bool:
        return self.conn_db.is_initialized()

    def get_session(self) -> AsyncContextManager[AsyncSession]:
        """
        Get a database session.

        Returns:
            AsyncContextManager[AsyncSession]: Database session context manager

        Raises:
            DatabaseException: If the connection is not initialized
        """
        return self.conn_db.get_session()

    @log_operation()
    async def execute_query_with_commit(self, query: str, params: Optional[Dict[str, Any]] = None) -> int:
        """
        Execute a statement with automatic commit.

        Returns:
            int: Number of affected rows

        Raises:
            DatabaseException: If execution fails
        """
        try:
            async with self.get_session() as session:
                result = await session.execute(text(query), params or {})
                await session.commit()
                return result.rowcount or 0
        except DatabaseException:
            raise
        except Exception as e:
            logger.error(f"Query execution with commit failed: {e}")
            raise DatabaseException(f"Query execution with commit failed: {str(e)}") from e

    def __repr__(self) -> str:
        return f"<{self._repository_name}(initialized={self.is_initialized()})>"
