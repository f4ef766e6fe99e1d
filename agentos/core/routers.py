"""
Configuración centralizada de routers para la aplicación FastAPI.

Este módulo se encarga de registrar todos los routers de la API,
configurar endpoints base y organizar las rutas de manera estructurada.
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agentos.api.v1.endpoints.agents import router as agents_router
from agentos.api.v1.endpoints.auth import router as auth_router
from agentos.api.v1.endpoints.commission import router as commission_router
from agentos.api.v1.endpoints.orders import router as orders_router
from agentos.api.v1.endpoints.shopify import router as shopify_router
from agentos.api.v1.endpoints.webhooks import router as webhooks_router
from agentos.core.config import get_environment_info

logger = logging.getLogger(__name__)


def create_root_endpoints(app: FastAPI) -> None:
    """
    Crea endpoints raíz de la aplicación.

    Args:
        app: Instancia de FastAPI
    """

    @app.get("/", tags=["Root"], summary="API Info")
    async def root(request: Request):
        settings = request.app.state.settings
        return {
            "message": settings.APP_NAME,
            "description": "Back-office de agentes de venta para Shopify",
            "version": settings.APP_VERSION,
            "status": "running",
            "documentation": "/docs" if settings.ENABLE_DOCS else "disabled",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": {
                "health": "/health",
                "shopify": "/api/shopify",
                "agents": "/api/agents",
                "orders": "/api/orders",
                "commission": "/api/commission",
                "auth": "/api/auth",
                "webhooks": "/webhooks",
            },
        }

    @app.get("/ping", tags=["Root"], summary="Simple Ping")
    async def ping():
        return {"message": "pong", "timestamp": datetime.now(timezone.utc).isoformat()}


def create_health_endpoints(app: FastAPI) -> None:
    """
    Crea el endpoint de health check.

    Args:
        app: Instancia de FastAPI
    """

    @app.get("/health", tags=["Health"], summary="Health Check")
    async def health_check(request: Request):
        """
        Verifica la base de datos local. Shopify se reporta pero no es crítico.
        """
        settings = request.app.state.settings
        conn_db = getattr(request.app.state, "conn_db", None)
        database = await conn_db.health_check() if conn_db is not None else {"test_passed": False}
        retry_queue = getattr(request.app.state, "webhook_retry_queue", None)

        healthy = bool(database.get("test_passed"))
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "version": settings.APP_VERSION,
                "environment": settings.ENVIRONMENT,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "services": {
                    "database": database,
                    "shopify": {"configured": settings.is_shopify_configured},
                    "webhook_retry_queue": {
                        "running": retry_queue.snapshot()["running"] if retry_queue else False,
                        "pending": retry_queue.pending_count if retry_queue else 0,
                    },
                },
                "features": get_environment_info(settings)["features"],
            },
        )


def configure_api_routers(app: FastAPI) -> None:
    """
    Registra los routers de la API y de webhooks.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando routers de API...")

    error_responses = {
        401: {"description": "Missing or invalid session token"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    }

    app.include_router(shopify_router, prefix="/api/shopify", tags=["Shopify"], responses=error_responses)
    app.include_router(agents_router, prefix="/api/agents", tags=["Agents"], responses=error_responses)
    app.include_router(orders_router, prefix="/api/orders", tags=["Orders"], responses=error_responses)
    app.include_router(commission_router, prefix="/api/commission", tags=["Commission"], responses=error_responses)
    app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
    app.include_router(
        webhooks_router,
        prefix="/webhooks",
        tags=["Webhooks"],
        responses={401: {"description": "Invalid webhook signature"}},
    )

    logger.info("✅ Routers de API configurados")


def configure_all_routers(app: FastAPI) -> None:
    """
    Configura todos los routers y endpoints de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    create_root_endpoints(app)
    create_health_endpoints(app)
    configure_api_routers(app)
