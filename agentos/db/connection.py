"""
Clase ConnDB para gestión de la conexión a la base de datos local.

La base local guarda la copia de pedidos de Shopify junto con los datos
propios del back-office: agentes, asignaciones, comisiones y estado de
sincronización. Por defecto usa SQLite (aiosqlite).
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from agentos.core.config import get_settings
from agentos.utils.error_handler import DatabaseException

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS agents (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT,
        territory TEXT,
        active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS customers (
        id TEXT PRIMARY KEY,
        email TEXT,
        first_name TEXT,
        last_name TEXT,
        phone TEXT,
        orders_count INTEGER NOT NULL DEFAULT 0,
        total_spent TEXT NOT NULL DEFAULT '0',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        order_number INTEGER,
        name TEXT,
        email TEXT,
        total TEXT,
        currency TEXT NOT NULL,
        financial_status TEXT NOT NULL,
        fulfillment_status TEXT NOT NULL,
        line_items TEXT NOT NULL DEFAULT '[]',
        customer TEXT,
        created_at TEXT NOT NULL,
        paid_at TEXT,
        tracking TEXT,
        assigned_agent TEXT,
        assigned_by TEXT,
        assigned_at TEXT,
        assignment_version INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_orders_assigned_agent ON orders (assigned_agent)",
    """
    CREATE TABLE IF NOT EXISTS commissions (
        order_id TEXT NOT NULL,
        agent_id TEXT NOT NULL,
        order_total TEXT NOT NULL,
        currency TEXT NOT NULL,
        base_rate TEXT NOT NULL,
        bonus_rate TEXT NOT NULL,
        base_amount TEXT NOT NULL,
        bonus_amount TEXT NOT NULL,
        total_amount TEXT NOT NULL,
        matched_products TEXT NOT NULL DEFAULT '[]',
        computed_at TEXT NOT NULL,
        PRIMARY KEY (order_id, agent_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_state (
        key TEXT PRIMARY KEY,
        value TEXT,
        updated_at TEXT NOT NULL
    )
    """,
]


class ConnDB:
    """
    Gestión del engine async y de la fábrica de sesiones.
    """

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        settings = get_settings()
        self.database_url = database_url or settings.DATABASE_URL
        self.echo = settings.DATABASE_ECHO if echo is None else echo
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None

    async def initialize(self) -> None:
        """
        Crea el engine y el esquema si no existen.

        Raises:
            DatabaseException: Si falla la inicialización
        """
        if self.engine is not None:
            logger.info("Database connection already initialized")
            return

        logger.info("🗄️ Inicializando base de datos...")

        engine_kwargs = {"echo": self.echo, "future": True}
        if ":memory:" in self.database_url:
            # Todas las sesiones deben compartir la misma conexión en memoria
            engine_kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})

        try:
            self.engine = create_async_engine(self.database_url, **engine_kwargs)
            self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
            await self.create_schema()
        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            await self.close()
            raise DatabaseException(
                message=f"Failed to initialize database connection: {str(e)}",
                operation="initialization",
            ) from e

        logger.info("✅ Base de datos inicializada")

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(text(statement))

    def is_initialized(self) -> bool:
        return self.engine is not None and self.session_factory is not None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Sesión con commit al salir y rollback si hay excepción.

        Raises:
            DatabaseException: Si la conexión no está inicializada
        """
        if not self.is_initialized():
            raise DatabaseException(
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
            logger.error(f"Connection test failed: {e}")
            return False

    async def health_check(self) -> dict:
        start_time = time.time()
        test_passed = await self.test_connection()
        return {
            "connection_initialized": self.is_initialized(),
            "test_passed": test_passed,
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
        }

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database engine disposed")

        self.engine = None
        self.session_factory = None

    def __repr__(self) -> str:
        status = "initialized" if self.is_initialized() else "not_initialized"
        return f"ConnDB(status={status})"
