"""
Commission domain models.

Rates configuration, per-order commission records and aggregated summaries.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping

DEFAULT_COMMISSION_RATE = Decimal("0.05")


@dataclass(frozen=True)
class CommissionRates:
    """
    Commission rate configuration.

    Loaded once at startup and shared read-only across requests.

    Attributes:
        default_rate: Base fraction applied to every order total
        product_bonuses: Extra fraction per product key (SKU or product ID)
    """

    default_rate: Decimal = DEFAULT_COMMISSION_RATE
    product_bonuses: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "default_rate", Decimal(str(self.default_rate)))
        bonuses = {str(key): Decimal(str(rate)) for key, rate in dict(self.product_bonuses).items()}
        object.__setattr__(self, "product_bonuses", MappingProxyType(bonuses))

        if self.default_rate < 0:
            raise ValueError(f"Default rate cannot be negative: {self.default_rate}")
        for key, rate in bonuses.items():
            if rate < 0:
                raise ValueError(f"Bonus rate for {key} cannot be negative: {rate}")

    def bonus_for(self, product_key: str | None) -> Decimal:
        """Bonus fraction for a product key; unknown keys have no bonus."""
        if product_key is None:
            return Decimal("0")
        return self.product_bonuses.get(product_key, Decimal("0"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "defaultRate": float(self.default_rate),
            "productBonuses": {key: float(rate) for key, rate in self.product_bonuses.items()},
        }


@dataclass(frozen=True)
class Commission:
    """
    Commission earned by an agent on one order.

    Derived data: it can always be recomputed from the order and the rates.
    """

    order_id: str
    agent_id: str | None
    order_total: Decimal
    currency: str
    base_rate: Decimal
    bonus_rate: Decimal
    base_amount: Decimal
    bonus_amount: Decimal
    total_amount: Decimal
    matched_products: tuple[str, ...] = ()
    computed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def effective_rate(self) -> Decimal:
        return self.base_rate + self.bonus_rate

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderId": self.order_id,
            "agentId": self.agent_id,
            "orderTotal": float(self.order_total),
            "currency": self.currency,
            "baseRate": float(self.base_rate),
            "bonusRate": float(self.bonus_rate),
            "effectiveRate": float(self.effective_rate),
            "baseAmount": float(self.base_amount),
            "bonusAmount": float(self.bonus_amount),
            "totalAmount": float(self.total_amount),
            "matchedProducts": list(self.matched_products),
            "computedAt": self.computed_at.isoformat(),
        }


@dataclass(frozen=True)
class CommissionSummary:
    total_orders: int
    total_commission: Decimal
    average_commission: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalOrders": self.total_orders,
            "totalCommission": float(self.total_commission),
            "averageCommission": float(self.average_commission),
        }


@dataclass(frozen=True)
class SimulationResult:
    commissions: list[Commission]
    summary: CommissionSummary

    def to_dict(self) -> dict[str, Any]:
        return {
            "commissions": [commission.to_dict() for commission in self.commissions],
            "summary": self.summary.to_dict(),
        }
