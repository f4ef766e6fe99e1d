from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentos.domain.models import CommissionRates
from agentos.services.commission_engine import CommissionEngine, compute_commission, rates_from_settings, summarize
from agentos.utils.error_handler import InvalidOrderError, NotFoundError


class TestComputeCommission:
    def test_default_rate_plus_sku_bonus(self, make_order):
        """149.00 con tasa base 0.05 y bono de SKU 0.02 => 10.43."""
        rates = CommissionRates(default_rate=Decimal("0.05"), product_bonuses={"BATIK-001": Decimal("0.02")})

        commission = compute_commission(make_order(), rates, agent_id="AGT-001")

        assert commission.total_amount == Decimal("10.43")
        assert commission.base_amount == Decimal("7.45")
        assert commission.bonus_rate == Decimal("0.02")
        assert commission.matched_products == ("BATIK-001",)
        assert commission.agent_id == "AGT-001"

    def test_bonus_counted_once_per_distinct_product(self, make_order, rates):
        """Debe sumar el bono una vez por producto aunque aparezca en varias líneas."""
        order = make_order(
            total="300.00",
            items=[
                ("BATIK-001", "7001", 1, "100.00"),
                ("BATIK-001", "7001", 1, "100.00"),
                (None, "8001", 1, "100.00"),
            ],
        )

        commission = compute_commission(order, rates)

        assert commission.bonus_rate == Decimal("0.03")
        assert commission.matched_products == ("BATIK-001", "8001")
        assert commission.total_amount == Decimal("24.00")

    def test_falls_back_to_product_id_when_sku_has_no_bonus(self, make_order, rates):
        order = make_order(total="100.00", items=[("OTHER-SKU", "8001", 1, "100.00")])

        commission = compute_commission(order, rates)

        assert commission.matched_products == ("8001",)
        assert commission.total_amount == Decimal("6.00")

    def test_no_bonus_uses_default_rate(self, make_order, rates):
        order = make_order(total="99.99", items=[("PLAIN", "1", 1, "99.99")])

        assert compute_commission(order, rates).total_amount == Decimal("5.00")

    def test_defaults_to_assigned_agent(self, make_order, rates):
        order = make_order(assigned_agent="AGT-002")

        assert compute_commission(order, rates).agent_id == "AGT-002"

    def test_is_deterministic(self, make_order, rates):
        order = make_order()
        first = compute_commission(order, rates)
        second = compute_commission(order, rates)

        assert first.total_amount == second.total_amount
        assert first.matched_products == second.matched_products

    def test_missing_total_is_invalid(self, make_order, rates):
        with pytest.raises(InvalidOrderError):
            compute_commission(make_order(total=None), rates)


class TestSummarize:
    def test_empty_summary_is_zero(self):
        summary = summarize([])

        assert summary.total_orders == 0
        assert summary.total_commission == Decimal("0.00")
        assert summary.average_commission == Decimal("0.00")

    def test_average_is_rounded(self, make_order, rates):
        commissions = [
            compute_commission(make_order(order_id="1", total="10.00", items=[]), rates),
            compute_commission(make_order(order_id="2", total="10.10", items=[]), rates),
            compute_commission(make_order(order_id="3", total="10.20", items=[]), rates),
        ]

        summary = summarize(commissions)

        assert summary.total_orders == 3
        assert summary.total_commission == Decimal("1.52")
        assert summary.average_commission == Decimal("0.51")


class TestRatesFromSettings:
    def test_reads_environment_rates(self, settings):
        rates = rates_from_settings(settings)

        assert rates.default_rate == Decimal("0.05")
        assert rates.bonus_for("BATIK-001") == Decimal("0.02")
        assert rates.bonus_for("unknown") == Decimal("0")

    def test_rates_are_read_only(self, rates):
        with pytest.raises(TypeError):
            rates.product_bonuses["NEW"] = Decimal("0.5")


class TestCommissionEngine:
    @pytest.fixture
    def engine(self, rates):
        order_repository = MagicMock()
        commission_repository = MagicMock()
        commission_repository.upsert = AsyncMock(side_effect=lambda commission: commission)
        return CommissionEngine(order_repository, commission_repository, rates=rates)

    @pytest.mark.asyncio
    async def test_simulate_without_orders_is_zero(self, engine):
        engine.order_repository.list_by_agent = AsyncMock(return_value=[])

        result = await engine.simulate("AGT-001")

        assert result.commissions == []
        assert result.summary.total_orders == 0
        assert result.summary.total_commission == Decimal("0.00")
        engine.commission_repository.upsert.assert_not_called()

    @pytest.mark.asyncio
    async def test_simulate_skips_invalid_orders(self, engine, make_order):
        engine.order_repository.list_all = AsyncMock(
            return_value=[make_order(order_id="1"), make_order(order_id="2", total=None)]
        )

        result = await engine.simulate()

        assert [c.order_id for c in result.commissions] == ["1"]
        assert result.summary.total_orders == 1

    @pytest.mark.asyncio
    async def test_calculate_for_order_persists(self, engine, make_order):
        engine.order_repository.get = AsyncMock(return_value=make_order())

        commission = await engine.calculate_for_order("1001", "AGT-001")

        assert commission.agent_id == "AGT-001"
        engine.commission_repository.upsert.assert_awaited_once_with(commission)

    @pytest.mark.asyncio
    async def test_calculate_for_unknown_order(self, engine):
        engine.order_repository.get = AsyncMock(return_value=None)

        with pytest.raises(NotFoundError):
            await engine.calculate_for_order("404", "AGT-001")

    @pytest.mark.asyncio
    async def test_recompute_skips_unassigned_orders(self, engine, make_order):
        engine.order_repository.get = AsyncMock(return_value=make_order())

        assert await engine.recompute_for_order("1001") is None
        engine.commission_repository.upsert.assert_not_called()
