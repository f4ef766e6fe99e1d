"""
Gestión del ciclo de vida de la aplicación FastAPI.

Este módulo maneja los eventos de startup y shutdown de la aplicación:
inicializa la base de datos, el cliente de Shopify, los servicios de
negocio y el worker de reintentos de webhooks, y los libera al apagar.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from agentos.core.config import Settings, get_settings
from agentos.core.logging_config import setup_logging
from agentos.db.connection import ConnDB
from agentos.db.repositories import (
    AgentRepository,
    CommissionRepository,
    CustomerRepository,
    OrderRepository,
    SyncStateRepository,
)
from agentos.db.shopify_client import ShopifyClient
from agentos.services.agent_stats import AgentStatsService
from agentos.services.commission_engine import CommissionEngine, rates_from_settings
from agentos.services.order_assignment import OrderAssignmentService
from agentos.services.order_reports import OrderReportService
from agentos.services.order_sync import OrderSyncService
from agentos.services.webhook_handler import WebhookProcessor
from agentos.services.webhook_retry_queue import WebhookRetryQueue
from agentos.utils.error_handler import UpstreamError
from agentos.utils.retry_handler import RetryPolicy

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestión del ciclo de vida de la aplicación.
    Maneja eventos de startup y shutdown de manera ordenada.

    Args:
        app: Instancia de FastAPI
    """
    settings: Settings = getattr(app.state, "settings", None) or get_settings()

    # === STARTUP ===
    setup_logging(settings)
    logger.info(f"🚀 Iniciando {settings.APP_NAME} v{settings.APP_VERSION}...")

    try:
        await startup_initialize_database(app, settings)
        await startup_initialize_shopify(app, settings)
        startup_build_services(app, settings)
        startup_start_retry_worker(app)
        logger.info("🎉 Aplicación iniciada correctamente")
    except Exception as e:
        logger.error(f"❌ Error durante el startup: {e}")
        await shutdown_release_resources(app)
        raise

    # === YIELD (aplicación corriendo) ===
    yield

    # === SHUTDOWN ===
    logger.info(f"🛑 Cerrando {settings.APP_NAME}...")
    await shutdown_release_resources(app)
    logger.info("👋 Aplicación cerrada correctamente")


# === FUNCIONES DE STARTUP ===


async def startup_initialize_database(app: FastAPI, settings: Settings) -> None:
    """Inicializa la base de datos local y los repositorios."""
    conn_db = ConnDB(database_url=settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    await conn_db.initialize()
    app.state.conn_db = conn_db

    app.state.order_repository = OrderRepository(conn_db)
    app.state.agent_repository = AgentRepository(conn_db)
    app.state.customer_repository = CustomerRepository(conn_db)
    app.state.commission_repository = CommissionRepository(conn_db)
    app.state.sync_state_repository = SyncStateRepository(conn_db)
    logger.info("✅ Repositorios inicializados")


async def startup_initialize_shopify(app: FastAPI, settings: Settings) -> None:
    """
    Inicializa el cliente HTTP de Shopify.

    La verificación de conexión no es crítica: el back-office sigue
    funcionando con los datos locales si Shopify no responde.
    """
    client = ShopifyClient(settings)
    await client.initialize()
    app.state.shopify_client = client

    if not settings.is_shopify_configured:
        logger.warning("⚠️ Shopify no configurado - sincronización y proxies deshabilitados")
        return

    try:
        shop = await client.test_connection()
        logger.info(f"✅ Conexión a Shopify verificada: {shop.get('name')}")
    except UpstreamError as e:
        logger.warning(f"⚠️ Conexión a Shopify falló: {e.message} (no crítico)")


def startup_build_services(app: FastAPI, settings: Settings) -> None:
    """Construye los servicios de negocio sobre los repositorios."""
    state = app.state

    state.commission_engine = CommissionEngine(
        state.order_repository,
        state.commission_repository,
        rates=rates_from_settings(settings),
    )
    state.assignment_service = OrderAssignmentService(state.order_repository, state.agent_repository)
    state.order_report_service = OrderReportService(state.order_repository, state.agent_repository)
    state.agent_stats_service = AgentStatsService(
        state.order_repository,
        state.commission_repository,
        state.agent_repository,
    )
    state.order_sync_service = OrderSyncService(
        state.shopify_client,
        state.order_repository,
        state.sync_state_repository,
        settings=settings,
    )
    state.webhook_processor = WebhookProcessor(
        settings.SHOPIFY_WEBHOOK_SECRET,
        state.order_repository,
        state.customer_repository,
        state.commission_engine,
        currency=settings.CURRENCY,
    )
    state.webhook_retry_queue = WebhookRetryQueue(
        state.webhook_processor.dispatch,
        RetryPolicy(
            max_attempts=settings.WEBHOOK_RETRY_MAX_ATTEMPTS,
            base_delay=settings.WEBHOOK_RETRY_BASE_DELAY,
            max_delay=settings.WEBHOOK_RETRY_MAX_DELAY,
        ),
    )
    state.webhook_processor.retry_queue = state.webhook_retry_queue

    if not settings.SHOPIFY_WEBHOOK_SECRET:
        logger.warning("⚠️ SHOPIFY_WEBHOOK_SECRET no configurado - todos los webhooks serán rechazados")

    logger.info("✅ Servicios de negocio inicializados")


def startup_start_retry_worker(app: FastAPI) -> None:
    app.state.webhook_retry_queue.start()


# === FUNCIONES DE SHUTDOWN ===


async def shutdown_release_resources(app: FastAPI) -> None:
    """Detiene el worker y cierra conexiones. Tolera un startup parcial."""
    state = app.state

    retry_queue = getattr(state, "webhook_retry_queue", None)
    if retry_queue is not None:
        await retry_queue.stop()

    client = getattr(state, "shopify_client", None)
    if client is not None:
        await client.close()
        logger.info("✅ Cliente Shopify cerrado")

    conn_db = getattr(state, "conn_db", None)
    if conn_db is not None:
        await conn_db.close()
