"""
Vista de administración sobre los pedidos locales: listado filtrado y
resumen agregado por estado financiero y de envío.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from agentos.db.repositories import AgentRepository, OrderRepository
from agentos.domain.models import FinancialStatus, FulfillmentStatus, Order
from agentos.domain.value_objects.money import round_currency
from agentos.utils.error_handler import NotFoundError, ValidationException

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

ORDER_STATUSES = frozenset(s.value for s in FinancialStatus) | frozenset(s.value for s in FulfillmentStatus)


@dataclass(frozen=True)
class OrderSummary:
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    paid: int
    pending: int
    refunded: int
    fulfilled: int
    partially_fulfilled: int
    unfulfilled: int
    trends: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "totalOrders": self.total_orders,
                "totalRevenue": float(self.total_revenue),
                "averageOrderValue": float(self.average_order_value),
            },
            "financial": {
                "paid": self.paid,
                "pending": self.pending,
                "refunded": self.refunded,
            },
            "fulfillment": {
                "fulfilled": self.fulfilled,
                "partiallyFulfilled": self.partially_fulfilled,
                "unfulfilled": self.unfulfilled,
            },
            "trends": {
                day: {"count": values["count"], "revenue": float(values["revenue"])}
                for day, values in self.trends.items()
            },
        }


def _order_total(order: Order) -> Decimal:
    return order.total.amount if order.total is not None else ZERO


def _matches_status(order: Order, status: str) -> bool:
    return order.financial_status.value == status or order.fulfillment_status.value == status


def summarize_orders(orders: List[Order]) -> OrderSummary:
    """Agrega totales y conteos por estado; las tendencias se agrupan por día UTC."""
    total_orders = len(orders)
    total_revenue = round_currency(sum((_order_total(o) for o in orders), ZERO))

    trends: Dict[str, Dict[str, Any]] = {}
    for order in orders:
        day = order.created_at.astimezone(UTC).date().isoformat()
        bucket = trends.setdefault(day, {"count": 0, "revenue": ZERO})
        bucket["count"] += 1
        bucket["revenue"] = round_currency(bucket["revenue"] + _order_total(order))

    def count_financial(status: FinancialStatus) -> int:
        return sum(1 for o in orders if o.financial_status == status)

    def count_fulfillment(status: FulfillmentStatus) -> int:
        return sum(1 for o in orders if o.fulfillment_status == status)

    return OrderSummary(
        total_orders=total_orders,
        total_revenue=total_revenue,
        average_order_value=round_currency(total_revenue / total_orders) if total_orders else round_currency(ZERO),
        paid=count_financial(FinancialStatus.PAID),
        pending=count_financial(FinancialStatus.PENDING),
        refunded=count_financial(FinancialStatus.REFUNDED),
        fulfilled=count_fulfillment(FulfillmentStatus.FULFILLED),
        partially_fulfilled=count_fulfillment(FulfillmentStatus.PARTIAL),
        unfulfilled=count_fulfillment(FulfillmentStatus.UNFULFILLED),
        trends=dict(sorted(trends.items())),
    )


class OrderReportService:
    """
    Consultas de administración sobre el almacén local de pedidos.
    """

    def __init__(self, order_repository: OrderRepository, agent_repository: AgentRepository):
        self.order_repository = order_repository
        self.agent_repository = agent_repository

    async def _load(self, agent_id: Optional[str], limit: Optional[int] = None) -> List[Order]:
        if agent_id is None:
            return await self.order_repository.list_all(limit=limit)

        if not await self.agent_repository.exists(agent_id):
            raise NotFoundError(f"Agent {agent_id} not found", resource="agent", resource_id=agent_id)
        return await self.order_repository.list_by_agent(agent_id, limit=limit)

    async def list_orders(
        self,
        limit: int = 100,
        agent_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Order]:
        """
        Pedidos locales en orden de inserción.

        Args:
            limit: Máximo de pedidos devueltos (después de filtrar)
            agent_id: Sólo pedidos asignados a este agente
            status: Estado financiero o de envío (``paid``, ``fulfilled``, ...)

        Raises:
            NotFoundError: Si el agente no existe
            ValidationException: Si el estado no es conocido
        """
        if status is None:
            return await self._load(agent_id, limit=limit)

        status = status.lower()
        if status not in ORDER_STATUSES:
            raise ValidationException(
                f"Unknown order status '{status}'",
                field="status",
                invalid_value=status,
                expected_format=", ".join(sorted(ORDER_STATUSES)),
            )

        orders = [order for order in await self._load(agent_id) if _matches_status(order, status)]
        return orders[:limit]

    async def get_summary(
        self,
        agent_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> OrderSummary:
        """
        Resumen de pedidos, opcionalmente por agente y rango de ``created_at`` (inclusivo).
        """
        orders = await self._load(agent_id)
        if start is not None:
            orders = [o for o in orders if o.created_at >= start]
        if end is not None:
            orders = [o for o in orders if o.created_at <= end]

        summary = summarize_orders(orders)
        logger.debug(
            f"📊 Resumen de pedidos - agente: {agent_id or 'todos'}, "
            f"pedidos: {summary.total_orders}, ingresos: {summary.total_revenue}"
        )
        return summary
