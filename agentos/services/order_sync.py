"""
Sincronización de pedidos Shopify -> base local.

Trae los pedidos recientes de Shopify y los guarda preservando los datos
de asignación locales.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from agentos.api.v1.schemas.shopify_schemas import ShopifyOrderPayload
from agentos.core.config import Settings, get_settings
from agentos.db.repositories import OrderRepository, SyncStateRepository
from agentos.db.shopify_client import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, ShopifyClient
from agentos.domain.models import Order
from agentos.utils.error_handler import InvalidOrderError
from agentos.utils.order_lock import OrderLock

logger = logging.getLogger(__name__)


class OrderSyncService:
    """
    Sincroniza pedidos desde Shopify.
    """

    def __init__(
        self,
        shopify_client: ShopifyClient,
        order_repository: OrderRepository,
        sync_state_repository: SyncStateRepository,
        settings: Optional[Settings] = None,
    ):
        self.shopify_client = shopify_client
        self.order_repository = order_repository
        self.sync_state_repository = sync_state_repository
        self.settings = settings or get_settings()
        self.currency = self.settings.CURRENCY

    async def store_payloads(self, payloads: Iterable[ShopifyOrderPayload]) -> Tuple[List[Order], int]:
        """
        Guarda pedidos de Shopify en la base local, uno por uno bajo su lock.

        Returns:
            Tuple: (pedidos guardados, cantidad de pedidos inválidos omitidos)
        """
        stored: List[Order] = []
        errors = 0
        for payload in payloads:
            try:
                order = payload.to_domain(default_currency=self.currency)
                async with OrderLock(order.id):
                    stored.append(await self.order_repository.upsert(order))
            except (InvalidOrderError, ValueError) as e:
                errors += 1
                logger.warning(f"⚠️ Pedido {payload.id} omitido: {e}")
        return stored, errors

    async def fetch_orders(
        self,
        limit: int = DEFAULT_PAGE_LIMIT,
        status: Optional[str] = "any",
        financial_status: Optional[str] = None,
        fulfillment_status: Optional[str] = None,
        page_info: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Trae una página de pedidos de Shopify, la guarda y devuelve la versión local
        (con los datos de asignación).
        """
        page = await self.shopify_client.get_orders(
            limit=limit,
            status=status,
            financial_status=financial_status,
            fulfillment_status=fulfillment_status,
            page_info=page_info,
        )
        orders, errors = await self.store_payloads(page.items)
        return {
            "orders": orders,
            "skipped": errors,
            "pagination": {
                "hasNext": page.has_next,
                "nextPageInfo": page.next_page_info,
                "previousPageInfo": page.previous_page_info,
            },
        }

    async def fetch_order(self, order_id: str) -> Order:
        """Trae un pedido de Shopify y lo guarda localmente."""
        payload = await self.shopify_client.get_order(order_id)
        order = payload.to_domain(default_currency=self.currency)
        async with OrderLock(order.id):
            return await self.order_repository.upsert(order)

    async def sync_orders(self, limit: int = 100) -> Dict[str, Any]:
        """
        Sincroniza hasta ``limit`` pedidos recientes.

        Los pedidos con datos monetarios inválidos se cuentan como errores y
        no detienen la sincronización. Los errores de Shopify se propagan.

        Returns:
            Dict: Conteos de la sincronización
        """
        started_at = datetime.now(UTC)
        logger.info(f"🔄 Iniciando sincronización de pedidos (límite: {limit})")

        synced = 0
        errors = 0
        fetched = 0
        page_info = None

        while fetched < limit:
            page = await self.shopify_client.get_orders(limit=min(limit - fetched, MAX_PAGE_LIMIT), page_info=page_info)
            fetched += len(page.items)

            stored, page_errors = await self.store_payloads(page.items)
            synced += len(stored)
            errors += page_errors

            if not page.has_next or not page.items:
                break
            page_info = page.next_page_info

        finished_at = datetime.now(UTC)
        await self.sync_state_repository.set_many(
            {
                "last_sync_at": finished_at.isoformat(),
                "orders_synced": str(synced),
                "sync_errors": str(errors),
            }
        )

        result = {
            "ordersFetched": fetched,
            "ordersSynced": synced,
            "errors": errors,
            "startedAt": started_at.isoformat(),
            "finishedAt": finished_at.isoformat(),
            "durationSeconds": round((finished_at - started_at).total_seconds(), 3),
        }
        logger.info(f"✅ Sincronización completada: {synced} pedidos, {errors} errores")
        return result

    async def get_sync_status(self) -> Dict[str, Any]:
        state = await self.sync_state_repository.get_all()
        return {
            "lastSyncAt": state.get("last_sync_at"),
            "ordersSynced": int(state.get("orders_synced") or 0),
            "syncErrors": int(state.get("sync_errors") or 0),
            "shopifyConfigured": self.settings.is_shopify_configured,
        }
