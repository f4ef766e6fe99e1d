from datetime import UTC, datetime
from decimal import Decimal

import pytest

from agentos.domain.models import FinancialStatus, FulfillmentStatus
from agentos.services.agent_stats import AgentStatsService
from agentos.services.commission_engine import CommissionEngine
from agentos.utils.error_handler import NotFoundError

NOW = datetime(2025, 8, 23, 12, 0, tzinfo=UTC)


@pytest.fixture
def stats_service(order_repository, commission_repository, agent_repository):
    return AgentStatsService(order_repository, commission_repository, agent_repository)


async def assign(order_repository, order_id, agent_id):
    await order_repository.update_assignment(
        order_id, agent_id=agent_id, assigned_by="admin", assigned_at=NOW, expected_version=0
    )


class TestAgentStats:
    @pytest.mark.asyncio
    async def test_agent_without_orders(self, stats_service, agents):
        stats = await stats_service.get_agent_stats("AGT-001", now=NOW)

        assert stats.total_orders == 0
        assert stats.success_rate == 0.0
        assert stats.average_order_value == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_aggregates_orders_and_commissions(
        self, stats_service, order_repository, commission_repository, agents, make_order, rates
    ):
        completed = make_order(
            order_id="1",
            financial_status=FinancialStatus.PAID,
            fulfillment_status=FulfillmentStatus.FULFILLED,
        )
        pending = make_order(order_id="2", total="51.00", items=[], created_at=datetime(2025, 7, 30, tzinfo=UTC))
        for order in (completed, pending):
            await order_repository.upsert(order)
            await assign(order_repository, order.id, "AGT-001")

        engine = CommissionEngine(order_repository, commission_repository, rates=rates)
        await engine.calculate_for_order("1", "AGT-001")

        stats = await stats_service.get_agent_stats("AGT-001", now=NOW)

        assert stats.total_orders == 2
        assert stats.total_revenue == Decimal("200.00")
        assert stats.completed_orders == 1
        assert stats.pending_orders == 1
        assert stats.success_rate == 50.0
        assert stats.monthly_orders == 1
        assert stats.monthly_revenue == Decimal("149.00")
        assert stats.average_order_value == Decimal("100.00")
        assert stats.total_commissions == Decimal("10.43")

    @pytest.mark.asyncio
    async def test_unknown_agent(self, stats_service):
        with pytest.raises(NotFoundError):
            await stats_service.get_agent_stats("AGT-404")
