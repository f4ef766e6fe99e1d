"""
Motor de cálculo de comisiones.

La comisión de un pedido es:

    total × (tasa base + Σ bonos de los productos distintos del pedido)

redondeada a 2 decimales. El cálculo es puro y determinista; la
persistencia usa upsert por (pedido, agente) para que recalcular nunca
duplique registros.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from agentos.core.config import Settings, get_settings
from agentos.db.repositories import CommissionRepository, OrderRepository
from agentos.domain.models import Commission, CommissionRates, CommissionSummary, Order, SimulationResult
from agentos.domain.value_objects.money import round_currency
from agentos.utils.error_handler import InvalidOrderError, NotFoundError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def rates_from_settings(settings: Optional[Settings] = None) -> CommissionRates:
    """Construye la configuración de tasas a partir de las variables de entorno."""
    settings = settings or get_settings()
    return CommissionRates(
        default_rate=settings.COMMISSION_DEFAULT_RATE,
        product_bonuses=settings.COMMISSION_PRODUCT_BONUSES,
    )


def compute_commission(
    order: Order,
    rates: CommissionRates,
    agent_id: Optional[str] = None,
    computed_at: Optional[datetime] = None,
) -> Commission:
    """
    Calcula la comisión de un pedido.

    Cada producto con bono suma su tasa una sola vez aunque aparezca en
    varias líneas. El bono se busca por SKU y, si no hay, por product_id.

    Args:
        order: Pedido a evaluar
        rates: Tasas de comisión
        agent_id: Agente al que se atribuye (por defecto el asignado)
        computed_at: Marca de tiempo del cálculo

    Returns:
        Commission: Desglose de la comisión

    Raises:
        InvalidOrderError: Si el pedido no tiene total
    """
    if order.total is None:
        raise InvalidOrderError(f"Order {order.id} has no total", order_id=order.id)

    total = order.total.amount
    if total < 0:
        raise InvalidOrderError(f"Order {order.id} has a negative total: {total}", order_id=order.id)

    matched: List[str] = []
    bonus_rate = ZERO
    for item in order.line_items:
        for key in (item.sku, item.product_id):
            if not key or key not in rates.product_bonuses:
                continue
            if key not in matched:
                matched.append(key)
                bonus_rate += rates.bonus_for(key)
            break

    base_rate = rates.default_rate

    return Commission(
        order_id=order.id,
        agent_id=agent_id if agent_id is not None else order.assigned_agent,
        order_total=total,
        currency=order.currency,
        base_rate=base_rate,
        bonus_rate=bonus_rate,
        base_amount=round_currency(total * base_rate),
        bonus_amount=round_currency(total * bonus_rate),
        total_amount=round_currency(total * (base_rate + bonus_rate)),
        matched_products=tuple(matched),
        computed_at=computed_at or datetime.now(UTC),
    )


def summarize(commissions: Iterable[Commission]) -> CommissionSummary:
    """Totales agregados; el promedio es 0 cuando no hay comisiones."""
    commissions = list(commissions)
    total_orders = len(commissions)
    total_commission = round_currency(sum((c.total_amount for c in commissions), ZERO))
    average = round_currency(total_commission / total_orders) if total_orders else round_currency(ZERO)

    return CommissionSummary(
        total_orders=total_orders,
        total_commission=total_commission,
        average_commission=average,
    )


class CommissionEngine:
    """
    Servicio de comisiones sobre los repositorios locales.
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        commission_repository: CommissionRepository,
        rates: Optional[CommissionRates] = None,
    ):
        self.order_repository = order_repository
        self.commission_repository = commission_repository
        self._rates = rates if rates is not None else CommissionRates()

    def get_rates(self) -> CommissionRates:
        return self._rates

    def compute_commission(
        self,
        order: Order,
        rates: Optional[CommissionRates] = None,
        agent_id: Optional[str] = None,
        computed_at: Optional[datetime] = None,
    ) -> Commission:
        return compute_commission(order, rates or self._rates, agent_id=agent_id, computed_at=computed_at)

    async def simulate(self, agent_id: Optional[str] = None, rates: Optional[CommissionRates] = None) -> SimulationResult:
        """
        Recalcula las comisiones de los pedidos de un agente sin persistir.

        Sin agent_id se usan todos los pedidos almacenados. Los pedidos
        inválidos se omiten y se registran en el log.
        """
        rates = rates or self._rates
        if agent_id:
            orders = await self.order_repository.list_by_agent(agent_id)
        else:
            orders = await self.order_repository.list_all()

        computed_at = datetime.now(UTC)
        commissions = []
        for order in orders:
            try:
                commissions.append(compute_commission(order, rates, agent_id=agent_id, computed_at=computed_at))
            except InvalidOrderError as e:
                logger.warning(f"⚠️ Pedido {order.id} omitido en simulación: {e.message}")

        summary = summarize(commissions)
        logger.info(
            f"🧮 Simulación de comisiones - agente: {agent_id or 'todos'}, "
            f"pedidos: {summary.total_orders}, total: {summary.total_commission}"
        )
        return SimulationResult(commissions=commissions, summary=summary)

    async def calculate_for_order(self, order_id: str, agent_id: str) -> Commission:
        """
        Calcula y persiste la comisión de un pedido para un agente.

        Raises:
            NotFoundError: Si el pedido no existe
            InvalidOrderError: Si el pedido no tiene total válido
        """
        order = await self.order_repository.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", resource="order", resource_id=order_id)

        commission = compute_commission(order, self._rates, agent_id=agent_id)
        await self.commission_repository.upsert(commission)
        logger.info(f"💰 Comisión calculada - pedido {order_id}, agente {agent_id}: {commission.total_amount}")
        return commission

    async def recompute_for_order(self, order_id: str) -> Optional[Commission]:
        """
        Recalcula la comisión del agente asignado (webhook orders/paid).

        Returns:
            Commission o None si el pedido no está asignado
        """
        order = await self.order_repository.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", resource="order", resource_id=order_id)

        if not order.assigned_agent:
            logger.info(f"Pedido {order_id} sin agente asignado, no se calcula comisión")
            return None

        commission = compute_commission(order, self._rates)
        await self.commission_repository.upsert(commission)
        logger.info(
            f"💰 Comisión recalculada - pedido {order_id}, agente {order.assigned_agent}: {commission.total_amount}"
        )
        return commission

    async def get_agent_commissions(
        self,
        agent_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = 50,
    ) -> Dict[str, Any]:
        commissions = await self.commission_repository.list_for_agent(agent_id, start=start, end=end, limit=limit)
        return {"commissions": commissions, "summary": summarize(commissions)}
