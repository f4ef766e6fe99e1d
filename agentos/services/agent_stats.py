"""
Estadísticas de desempeño por agente.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from agentos.db.repositories import AgentRepository, CommissionRepository, OrderRepository
from agentos.domain.value_objects.money import round_currency
from agentos.utils.error_handler import NotFoundError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class AgentStats:
    agent_id: str
    total_orders: int
    total_revenue: Decimal
    total_commissions: Decimal
    completed_orders: int
    pending_orders: int
    success_rate: float
    monthly_orders: int
    monthly_revenue: Decimal
    average_order_value: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "totalOrders": self.total_orders,
            "totalRevenue": float(self.total_revenue),
            "totalCommissions": float(self.total_commissions),
            "completedOrders": self.completed_orders,
            "pendingOrders": self.pending_orders,
            "successRate": self.success_rate,
            "monthlyOrders": self.monthly_orders,
            "monthlyRevenue": float(self.monthly_revenue),
            "averageOrderValue": float(self.average_order_value),
        }


class AgentStatsService:
    """
    Calcula métricas agregadas de los pedidos y comisiones de un agente.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        commission_repository: CommissionRepository,
        agent_repository: AgentRepository,
    ):
        self.order_repository = order_repository
        self.commission_repository = commission_repository
        self.agent_repository = agent_repository

    async def get_agent_stats(self, agent_id: str, now: Optional[datetime] = None) -> AgentStats:
        """
        Args:
            agent_id: Agente a evaluar
            now: Referencia para el mes en curso (por defecto ahora, UTC)

        Raises:
            NotFoundError: Si el agente no existe
        """
        if not await self.agent_repository.exists(agent_id):
            raise NotFoundError(f"Agent {agent_id} not found", resource="agent", resource_id=agent_id)

        now = now or datetime.now(UTC)
        orders = await self.order_repository.list_by_agent(agent_id)
        commissions = await self.commission_repository.list_for_agent(agent_id)

        def order_total(order) -> Decimal:
            return order.total.amount if order.total is not None else ZERO

        total_orders = len(orders)
        total_revenue = round_currency(sum((order_total(o) for o in orders), ZERO))
        total_commissions = round_currency(sum((c.total_amount for c in commissions), ZERO))
        completed_orders = sum(1 for o in orders if o.is_completed)

        current_month = (now.year, now.month)
        monthly = []
        for order in orders:
            created = order.created_at.astimezone(UTC)
            if (created.year, created.month) == current_month:
                monthly.append(order)

        stats = AgentStats(
            agent_id=agent_id,
            total_orders=total_orders,
            total_revenue=total_revenue,
            total_commissions=total_commissions,
            completed_orders=completed_orders,
            pending_orders=total_orders - completed_orders,
            success_rate=round(completed_orders / total_orders * 100, 1) if total_orders else 0.0,
            monthly_orders=len(monthly),
            monthly_revenue=round_currency(sum((order_total(o) for o in monthly), ZERO)),
            average_order_value=round_currency(total_revenue / total_orders) if total_orders else round_currency(ZERO),
        )

        logger.debug(f"📊 Estadísticas de {agent_id}: {stats.total_orders} pedidos, {stats.total_revenue} ingresos")
        return stats
