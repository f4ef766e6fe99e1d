"""
OrderLock - lock por pedido para escrituras de asignación y webhooks.

Serializa las escrituras sobre un mismo pedido que llegan desde distintos
puntos de entrada:
- Asignación manual desde la API
- Handlers de webhooks (orders/paid, orders/fulfilled, ...)
- Sincronización de pedidos desde Shopify

Uso:
    from agentos.utils.order_lock import OrderLock

    async with OrderLock("6283579359292"):
        # Sólo una corutina ejecuta este bloque para este pedido
        await repository.update_assignment(...)
"""

import asyncio
import logging
from typing import Dict, Optional

from agentos.utils.error_handler import LockAcquisitionError

logger = logging.getLogger(__name__)

__all__ = ["OrderLock", "LockAcquisitionError"]


class OrderLock:
    """
    Lock asíncrono asociado a un ID de pedido de Shopify.

    Los locks viven en un registro del proceso indexado por el ID numérico,
    de modo que dos ``OrderLock`` del mismo pedido comparten un único
    ``asyncio.Lock``. Cada entrada cuenta cuántas corutinas la sostienen o
    esperan y se elimina cuando la última la libera. La seguridad entre
    procesos la da el UPDATE condicional del repositorio de pedidos.

    Example:
        ```python
        try:
            async with OrderLock("6283579359292", timeout_seconds=5):
                await process_order(order)
        except LockAcquisitionError:
            logger.warning("Pedido en proceso en otra corutina")
        ```
    """

    _locks: Dict[str, asyncio.Lock] = {}
    _users: Dict[str, int] = {}

    def __init__(self, shopify_order_id: str, timeout_seconds: float = 30):
        """
        Args:
            shopify_order_id: ID del pedido, numérico o GID
                ("gid://shopify/Order/6283579359292")
            timeout_seconds: Tiempo máximo de espera por el lock
        """
        shopify_order_id = str(shopify_order_id)
        if "Order/" in shopify_order_id:
            shopify_order_id = shopify_order_id.split("Order/")[-1]

        self.shopify_order_id = shopify_order_id
        self.timeout_seconds = timeout_seconds
        self._lock: Optional[asyncio.Lock] = None

    @property
    def locked(self) -> bool:
        lock = self._locks.get(self.shopify_order_id)
        return lock is not None and lock.locked()

    @classmethod
    def registered(cls) -> int:
        """Número de pedidos con lock sostenido o en espera."""
        return len(cls._locks)

    @classmethod
    def clear_registry(cls) -> None:
        """Vacía el registro. Sólo es seguro si ningún lock está tomado."""
        cls._locks.clear()
        cls._users.clear()

    def _checkout(self) -> asyncio.Lock:
        lock = self._locks.setdefault(self.shopify_order_id, asyncio.Lock())
        self._users[self.shopify_order_id] = self._users.get(self.shopify_order_id, 0) + 1
        return lock

    def _checkin(self) -> None:
        remaining = self._users.get(self.shopify_order_id, 0) - 1
        if remaining > 0:
            self._users[self.shopify_order_id] = remaining
            return
        self._users.pop(self.shopify_order_id, None)
        self._locks.pop(self.shopify_order_id, None)

    async def __aenter__(self):
        logger.debug(f"Intentando adquirir lock para pedido {self.shopify_order_id}")
        self._lock = self._checkout()
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            self._checkin()
            raise LockAcquisitionError(
                f"Could not acquire lock for order {self.shopify_order_id} within {self.timeout_seconds}s",
                order_id=self.shopify_order_id,
                timeout_seconds=self.timeout_seconds,
            ) from e
        except asyncio.CancelledError:
            self._checkin()
            raise
        logger.debug(f"Lock adquirido para pedido {self.shopify_order_id}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._lock.release()
        self._checkin()
        if exc_type:
            logger.debug(
                f"Lock liberado para pedido {self.shopify_order_id} (excepción: {exc_type.__name__})"
            )
        else:
            logger.debug(f"Lock liberado para pedido {self.shopify_order_id}")
        return False
