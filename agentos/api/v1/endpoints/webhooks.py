"""
Endpoints para webhooks de Shopify.

La firma HMAC se verifica sobre el body crudo antes de cualquier
procesamiento. Los webhooks verificados responden 200 de inmediato y la
lógica de negocio corre en background; los fallos van a la cola de
reintentos.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse

from agentos.api.v1.dependencies import get_webhook_processor, get_webhook_retry_queue
from agentos.core.config import Settings, get_settings
from agentos.core.security import AuthContext, get_auth_context, require_admin
from agentos.services.webhook_handler import WebhookProcessor
from agentos.services.webhook_retry_queue import WebhookRetryQueue

logger = logging.getLogger(__name__)

router = APIRouter()


def _webhooks_disabled_response() -> JSONResponse:
    logger.warning("⚠️ Webhook recibido con ENABLE_WEBHOOKS=False")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": "Webhooks disabled", "message": "Set ENABLE_WEBHOOKS=True to process Shopify webhooks"},
    )


async def _receive(
    request: Request,
    background_tasks: BackgroundTasks,
    processor: WebhookProcessor,
    path_topic: Optional[str] = None,
) -> Dict[str, Any]:
    body = await request.body()
    # AuthenticationError (401) y ValidationException (422) los mapean los exception handlers
    event = processor.receive(body, request.headers, path_topic=path_topic)

    # Procesar en background para responder rápido a Shopify
    background_tasks.add_task(processor.dispatch_or_enqueue, event)

    return {
        "received": True,
        "topic": event.topic,
        "webhook_id": event.webhook_id,
        "processing": "background",
    }


@router.post("/shopify/{resource}/{action}", status_code=status.HTTP_200_OK)
async def receive_shopify_topic_webhook(
    resource: str,
    action: str,
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """
    Webhook con el topic en la ruta, p.ej. ``/webhooks/shopify/orders/paid``.
    """
    if not settings.ENABLE_WEBHOOKS:
        return _webhooks_disabled_response()
    return await _receive(request, background_tasks, processor, path_topic=f"{resource}/{action}")


@router.post("/shopify", status_code=status.HTTP_200_OK)
async def receive_shopify_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """
    Endpoint genérico; el topic se toma del header X-Shopify-Topic.
    """
    if not settings.ENABLE_WEBHOOKS:
        return _webhooks_disabled_response()
    return await _receive(request, background_tasks, processor)


@router.get("/retry-queue", summary="Webhook retry queue and dead letters")
async def get_retry_queue(
    auth: AuthContext = Depends(get_auth_context),
    retry_queue: WebhookRetryQueue = Depends(get_webhook_retry_queue),
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> Dict[str, Any]:
    require_admin(auth)
    return {"success": True, "data": {**retry_queue.snapshot(), "metrics": processor.get_metrics()}}


@router.post("/test")
async def test_webhook(request: Request) -> Dict[str, Any]:
    """
    Eco del body recibido, sin verificación de firma.
    """
    body = await request.body()
    try:
        payload = await request.json() if body else None
    except ValueError:
        payload = body.decode("utf-8", errors="replace")

    logger.info(f"🧪 Webhook de prueba recibido ({len(body)} bytes)")
    return {
        "success": True,
        "message": "Test webhook received",
        "data": payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/test")
async def webhook_liveness() -> Dict[str, Any]:
    return {
        "success": True,
        "message": "Webhook endpoint is working",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
