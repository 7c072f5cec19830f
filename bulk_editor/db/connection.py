"""
Clase ConnDB para gestión de la conexión a la base de datos de operaciones.

Esta clase maneja la conexión, la creación del esquema y el ciclo de
vida del engine asíncrono donde se guardan los registros de operaciones bulk.
"""

import logging
import time
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bulk_editor.core.config import get_settings
from bulk_editor.utils.error_handler import DatabaseException

logger = logging.getLogger(__name__)

# Sentencias DDL ejecutadas una a una (aiosqlite no admite scripts)
SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS operations (
        id TEXT PRIMARY KEY,
        shop TEXT NOT NULL,
        type TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'CREATED',
        payload TEXT NOT NULL,
        inverse_payload TEXT,
        bulk_operation_id TEXT UNIQUE,
        result_url TEXT,
        results TEXT,
        error_message TEXT,
        undone INTEGER NOT NULL DEFAULT 0,
        undone_at TEXT,
        undone_by_operation_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        completed_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_operations_shop_status ON operations (shop, status)",
    # Una sola operación activa por tienda
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_operations_active_shop
    ON operations (shop) WHERE status IN ('CREATED', 'RUNNING')
    """,
]


def to_async_url(database_url: str) -> str:
    """
    Convierte una URL síncrona de SQLite al driver asíncrono.

    Args:
        database_url: URL configurada

    Returns:
        str: URL con driver aiosqlite cuando aplica
    """
    if database_url.startswith("sqlite:///"):
        return database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return database_url


class ConnDB:
    """
    Gestión de la conexión a la base de datos de operaciones.

    Mantiene un engine asíncrono y la factory de sesiones; los repositorios
    obtienen sesiones a través de ``get_session()``.
    """

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        """
        Inicializa la clase ConnDB.

        Args:
            database_url: URL de conexión (usa DATABASE_URL si no se pasa)
            echo: Log de queries SQL (usa DATABASE_ECHO si no se pasa)
        """
        settings = get_settings()
        self.connection_string = to_async_url(database_url or settings.DATABASE_URL)
        self.echo = settings.DATABASE_ECHO if echo is None else echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._connection_tested = False

    async def initialize(self):
        """
        Inicializa el engine de base de datos.

        Raises:
            DatabaseException: Si falla la inicialización
        """
        try:
            if self.engine is not None:
                logger.info("Database connection already initialized")
                return

            logger.info("Initializing database connection...")

            engine_kwargs = {"echo": self.echo, "future": True}
            if ":memory:" in self.connection_string:
                # Una base en memoria solo existe dentro de una conexión
                engine_kwargs["poolclass"] = StaticPool
            else:
                engine_kwargs["pool_pre_ping"] = True

            self.engine = create_async_engine(self.connection_string, **engine_kwargs)
            self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

            await self._test_connection()

            logger.info("Database connection initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            await self._cleanup_failed_initialization()
            raise DatabaseException(f"Failed to initialize database connection: {str(e)}") from e

    async def _test_connection(self):
        async with self.session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            if result.scalar() != 1:
                raise DatabaseException("Connection test returned unexpected value")
        self._connection_tested = True

    async def _cleanup_failed_initialization(self):
        """Limpia recursos en caso de fallo de inicialización."""
        try:
            if self.engine:
                await self.engine.dispose()
        except Exception as e:
            logger.error(f"Error during cleanup of failed initialization: {e}")
        finally:
            self.engine = None
            self.session_factory = None
            self._connection_tested = False

    async def create_schema(self):
        """
        Crea la tabla de operaciones y sus índices si no existen.

        Raises:
            DatabaseException: Si falla la creación
        """
        if not self.is_initialized():
            await self.initialize()

        try:
            async with self.engine.begin() as conn:
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(text(statement))
            logger.info("Operations schema ready")
        except Exception as e:
            logger.error(f"Failed to create operations schema: {e}")
            raise DatabaseException(f"Failed to create operations schema: {str(e)}") from e

    def get_session(self) -> AsyncSession:
        """
        Obtiene una nueva sesión de base de datos.

        Returns:
            AsyncSession: Sesión asíncrona de SQLAlchemy

        Raises:
            DatabaseException: Si no hay conexión inicializada
        """
        if not self.is_initialized():
            raise DatabaseException("Database connection not initialized. Call initialize() first.")

        return self.session_factory()

    def is_initialized(self) -> bool:
        """
        Verifica si la conexión está inicializada.

        Returns:
            bool: True si está inicializada y probada
        """
        return self.engine is not None and self.session_factory is not None and self._connection_tested

    async def health_check(self) -> dict:
        """
        Realiza un health check de la conexión.

        Returns:
            dict: Estado de salud de la conexión
        """
        health_info = {
            "connection_initialized": self.is_initialized(),
            "test_passed": False,
            "response_time_ms": None,
            "error": None,
        }

        if not self.is_initialized():
            return health_info

        try:
            start_time = time.time()
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                health_info["test_passed"] = result.scalar() == 1
            health_info["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
        except Exception as e:
            health_info["error"] = str(e)
            logger.error(f"Health check failed: {e}")

        return health_info

    async def close(self):
        """
        Cierra la conexión y limpia todos los recursos.
        """
        if self.engine:
            await self.engine.dispose()
            logger.info("Database engine disposed")

        self.engine = None
        self.session_factory = None
        self._connection_tested = False

    def __repr__(self) -> str:
        return (
            f"ConnDB(initialized={self.is_initialized()}, "
            f"engine={self.engine is not None}, "
            f"session_factory={self.session_factory is not None})"
        )


# Instancia global
_conn_db_instance: Optional[ConnDB] = None


def get_db_connection() -> ConnDB:
    """
    Obtiene la instancia global de ConnDB.

    Returns:
        ConnDB: Instancia de conexión a base de datos
    """
    global _conn_db_instance

    if _conn_db_instance is None:
        _conn_db_instance = ConnDB()

    return _conn_db_instance


async def initialize_database():
    """
    Inicializa la base de datos global y crea el esquema.
    """
    conn_db = get_db_connection()
    await conn_db.initialize()
    await conn_db.create_schema()


async def close_database():
    """
    Cierra la base de datos global.
    """
    global _conn_db_instance

    if _conn_db_instance is not None:
        await _conn_db_instance.close()
        _conn_db_instance = None
