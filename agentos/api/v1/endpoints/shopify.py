"""
Endpoints de pedidos, productos y clientes de Shopify.

Los pedidos traídos de Shopify se guardan localmente y se devuelven con
sus datos de asignación. La asignación de pedidos a agentes vive aquí
porque el dashboard la invoca sobre la ruta del pedido.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from agentos.api.v1.dependencies import (
    get_assignment_service,
    get_order_repository,
    get_order_sync_service,
    get_shopify_client,
)
from agentos.api.v1.schemas.agentos_schemas import AssignOrderRequest, CreateWebhookRequest, SyncOrdersRequest
from agentos.core.security import AuthContext, get_auth_context, require_admin
from agentos.db.repositories import OrderRepository
from agentos.db.shopify_client import DEFAULT_PAGE_LIMIT, ShopifyClient
from agentos.services.order_assignment import OrderAssignmentService
from agentos.services.order_sync import OrderSyncService
from agentos.utils.error_handler import NotFoundError, UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/orders", summary="List Shopify orders")
async def list_orders(
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, description="Máximo 250 por página"),
    status: str = Query("any"),
    financial_status: Optional[str] = Query(None),
    fulfillment_status: Optional[str] = Query(None),
    page_info: Optional[str] = Query(None, description="Cursor de paginación de Shopify"),
    auth: AuthContext = Depends(get_auth_context),
    sync_service: OrderSyncService = Depends(get_order_sync_service),
) -> Dict[str, Any]:
    """
    Trae pedidos de Shopify, los guarda localmente y los devuelve.
    """
    require_admin(auth)
    result = await sync_service.fetch_orders(
        limit=limit,
        status=status,
        financial_status=financial_status,
        fulfillment_status=fulfillment_status,
        page_info=page_info,
    )
    orders = [order.to_dict() for order in result["orders"]]
    return {
        "success": True,
        "data": orders,
        "count": len(orders),
        "skipped": result["skipped"],
        "pagination": result["pagination"],
    }


@router.get("/orders/{order_id}", summary="Get a single order")
async def get_order(
    order_id: str,
    auth: AuthContext = Depends(get_auth_context),
    sync_service: OrderSyncService = Depends(get_order_sync_service),
    order_repository: OrderRepository = Depends(get_order_repository),
) -> Dict[str, Any]:
    """
    Pedido desde Shopify; si Shopify no responde se devuelve la copia local.
    """
    require_admin(auth)
    try:
        order = await sync_service.fetch_order(order_id)
        source = "shopify"
    except UpstreamError as e:
        order = await order_repository.get(order_id)
        if order is None:
            if e.api_response_code == 404:
                raise NotFoundError(f"Order {order_id} not found", resource="order", resource_id=order_id) from e
            raise
        logger.warning(f"⚠️ Shopify no disponible, devolviendo copia local del pedido {order_id}: {e.message}")
        source = "local"

    return {"success": True, "data": order.to_dict(), "source": source}


@router.post("/orders/{order_id}/assign", summary="Assign order to agent")
async def assign_order(
    order_id: str,
    body: AssignOrderRequest,
    auth: AuthContext = Depends(get_auth_context),
    assignment_service: OrderAssignmentService = Depends(get_assignment_service),
) -> Dict[str, Any]:
    """
    Asigna un pedido a un agente.

    Con ``expectedVersion`` la asignación falla con 409 si otro usuario
    reasignó el pedido en el medio.
    """
    require_admin(auth)
    result = await assignment_service.assign(
        order_id,
        body.agent_id,
        assigned_by=body.assigned_by or auth.user_id,
        expected_version=body.expected_version,
    )
    return {
        "success": True,
        "message": "Order assigned successfully" if result.changed else "Order already assigned to agent",
        "data": result.to_dict(),
    }


@router.get("/products", summary="List Shopify products")
async def list_products(
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1),
    status: Optional[str] = Query("active"),
    page_info: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_auth_context),
    client: ShopifyClient = Depends(get_shopify_client),
) -> Dict[str, Any]:
    page = await client.get_products(limit=limit, status=status, page_info=page_info)
    products = [product.to_dict() for product in page.items]
    return {
        "success": True,
        "data": products,
        "count": len(products),
        "pagination": {"hasNext": page.has_next, "nextPageInfo": page.next_page_info},
    }


@router.get("/customers", summary="List Shopify customers")
async def list_customers(
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1),
    page_info: Optional[str] = Query(None),
    auth: AuthContext = Depends(get_auth_context),
    client: ShopifyClient = Depends(get_shopify_client),
) -> Dict[str, Any]:
    require_admin(auth)
    page = await client.get_customers(limit=limit, page_info=page_info)
    customers = [customer.to_domain().to_dict() for customer in page.items]
    return {
        "success": True,
        "data": customers,
        "count": len(customers),
        "pagination": {"hasNext": page.has_next, "nextPageInfo": page.next_page_info},
    }


@router.get("/webhooks", summary="List registered Shopify webhooks")
async def list_webhooks(
    auth: AuthContext = Depends(get_auth_context),
    client: ShopifyClient = Depends(get_shopify_client),
) -> Dict[str, Any]:
    require_admin(auth)
    webhooks = await client.get_webhooks()
    return {"success": True, "data": webhooks, "count": len(webhooks)}


@router.post("/webhooks", summary="Register a Shopify webhook")
async def create_webhook(
    body: CreateWebhookRequest,
    auth: AuthContext = Depends(get_auth_context),
    client: ShopifyClient = Depends(get_shopify_client),
) -> Dict[str, Any]:
    require_admin(auth)
    webhook = await client.create_webhook(body.topic, body.address)
    return {"success": True, "data": webhook}


@router.post("/sync/orders", summary="Sync recent orders from Shopify")
async def sync_orders(
    body: Optional[SyncOrdersRequest] = None,
    auth: AuthContext = Depends(get_auth_context),
    sync_service: OrderSyncService = Depends(get_order_sync_service),
) -> Dict[str, Any]:
    """
    Sincroniza pedidos recientes. Los datos de asignación locales se conservan.
    """
    require_admin(auth)
    limit = body.limit if body else SyncOrdersRequest().limit
    result = await sync_service.sync_orders(limit=limit)
    return {
        "success": True,
        "message": f"Synced {result['ordersSynced']} orders from Shopify",
        "data": result,
    }


@router.get("/sync/status", summary="Last sync status")
async def sync_status(
    auth: AuthContext = Depends(get_auth_context),
    sync_service: OrderSyncService = Depends(get_order_sync_service),
) -> Dict[str, Any]:
    return {"success": True, "data": await sync_service.get_sync_status()}
