"""
Servicio de asignación de pedidos a agentes.

Único punto de escritura de los campos de asignación del pedido. Las
escrituras se serializan por pedido con ``OrderLock`` y se ejecutan como
UPDATE condicional sobre ``assignment_version`` para no perder
actualizaciones concurrentes.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from agentos.db.repositories import AgentRepository, OrderRepository
from agentos.domain.models import Order
from agentos.utils.error_handler import ConflictError, NotFoundError, ValidationException
from agentos.utils.order_lock import OrderLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignmentResult:
    """Resultado de una asignación."""

    order_id: str
    agent_id: str
    assigned_by: Optional[str]
    assigned_at: Optional[datetime]
    changed: bool
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "agentId": self.agent_id,
            "assignedBy": self.assigned_by,
            "assignedAt": self.assigned_at.isoformat() if self.assigned_at else None,
            "changed": self.changed,
            "version": self.version,
        }


class OrderAssignmentService:
    """
    Asigna pedidos a agentes y lista los pedidos de cada agente.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        agent_repository: AgentRepository,
        lock_timeout: float = 30,
    ):
        self.order_repository = order_repository
        self.agent_repository = agent_repository
        self.lock_timeout = lock_timeout

    async def _get_order(self, order_id: str) -> Order:
        order = await self.order_repository.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", resource="order", resource_id=order_id)
        return order

    async def assign(
        self,
        order_id: str,
        agent_id: str,
        assigned_by: str,
        expected_version: Optional[int] = None,
    ) -> AssignmentResult:
        """
        Asigna un pedido a un agente.

        Reasignar al mismo agente es un no-op exitoso; asignar a otro agente
        sobrescribe asignador y fecha e incrementa la versión.

        Args:
            order_id: ID del pedido en Shopify
            agent_id: Agente destino
            assigned_by: Usuario que realiza la asignación
            expected_version: Versión de asignación que el cliente leyó

        Raises:
            NotFoundError: Si el pedido o el agente no existen
            ValidationException: Si el agente está inactivo
            ConflictError: Si la versión no coincide con la almacenada
        """
        await self._get_order(order_id)

        agent = await self.agent_repository.get(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found", resource="agent", resource_id=agent_id)

        async with OrderLock(order_id, timeout_seconds=self.lock_timeout):
            # Releer bajo el lock
            order = await self._get_order(order_id)

            if order.assigned_agent == agent_id:
                logger.info(f"Pedido {order_id} ya asignado a {agent_id}, sin cambios")
                return AssignmentResult(
                    order_id=order_id,
                    agent_id=agent_id,
                    assigned_by=order.assigned_by,
                    assigned_at=order.assigned_at,
                    changed=False,
                    version=order.assignment_version,
                )

            if not agent.active:
                raise ValidationException(
                    f"Agent {agent_id} is inactive and cannot receive orders",
                    field="agentId",
                    invalid_value=agent_id,
                )

            if expected_version is not None and expected_version != order.assignment_version:
                raise ConflictError(
                    f"Order {order_id} was reassigned concurrently",
                    expected_version=expected_version,
                    current_version=order.assignment_version,
                )

            assigned_at = datetime.now(UTC)
            updated = await self.order_repository.update_assignment(
                order_id,
                agent_id=agent_id,
                assigned_by=assigned_by,
                assigned_at=assigned_at,
                expected_version=order.assignment_version,
            )

            if updated == 0:
                current = await self._get_order(order_id)
                raise ConflictError(
                    f"Order {order_id} was reassigned concurrently",
                    expected_version=order.assignment_version,
                    current_version=current.assignment_version,
                )

        logger.info(
            f"📌 Pedido {order_id} asignado a {agent_id} por {assigned_by} "
            f"(antes: {order.assigned_agent or 'sin asignar'})"
        )

        return AssignmentResult(
            order_id=order_id,
            agent_id=agent_id,
            assigned_by=assigned_by,
            assigned_at=assigned_at,
            changed=True,
            version=order.assignment_version + 1,
        )

    async def list_orders_for_agent(self, agent_id: str, limit: Optional[int] = None) -> List[Order]:
        """
        Pedidos asignados actualmente al agente, en orden de inserción.

        Raises:
            NotFoundError: Si el agente no existe
        """
        if not await self.agent_repository.exists(agent_id):
            raise NotFoundError(f"Agent {agent_id} not found", resource="agent", resource_id=agent_id)

        return await self.order_repository.list_by_agent(agent_id, limit=limit)
