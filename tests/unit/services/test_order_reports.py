from datetime import UTC, datetime
from decimal import Decimal

import pytest

from agentos.domain.models import FinancialStatus, FulfillmentStatus
from agentos.services.order_reports import OrderReportService, summarize_orders
from agentos.utils.error_handler import NotFoundError, ValidationException


@pytest.fixture
def report_service(order_repository, agent_repository):
    return OrderReportService(order_repository, agent_repository)


@pytest.fixture
def stored_orders(order_repository, make_order):
    """Tres pedidos: pagado y enviado, pendiente, y reembolsado con envío parcial."""

    async def _store():
        orders = [
            make_order(
                order_id="1",
                total="149.00",
                financial_status=FinancialStatus.PAID,
                fulfillment_status=FulfillmentStatus.FULFILLED,
                created_at=datetime(2025, 8, 1, 10, tzinfo=UTC),
            ),
            make_order(order_id="2", total="51.00", created_at=datetime(2025, 8, 1, 23, tzinfo=UTC)),
            make_order(
                order_id="3",
                total=None,
                financial_status=FinancialStatus.REFUNDED,
                fulfillment_status=FulfillmentStatus.PARTIAL,
                created_at=datetime(2025, 8, 3, tzinfo=UTC),
            ),
        ]
        for order in orders:
            await order_repository.upsert(order)
        return orders

    return _store


class TestSummarizeOrders:
    def test_empty(self):
        summary = summarize_orders([])

        assert summary.total_orders == 0
        assert summary.average_order_value == Decimal("0.00")
        assert summary.trends == {}

    def test_counts_and_trends(self, make_order):
        orders = [
            make_order(order_id="1", total="149.00", financial_status=FinancialStatus.PAID),
            make_order(order_id="2", total="51.00"),
            make_order(order_id="3", total=None, fulfillment_status=FulfillmentStatus.PARTIAL),
        ]

        summary = summarize_orders(orders)

        assert summary.total_orders == 3
        assert summary.total_revenue == Decimal("200.00")
        assert summary.average_order_value == Decimal("66.67")
        assert (summary.paid, summary.pending, summary.refunded) == (1, 2, 0)
        assert (summary.fulfilled, summary.partially_fulfilled, summary.unfulfilled) == (0, 1, 2)
        assert summary.trends == {"2025-08-23": {"count": 3, "revenue": Decimal("200.00")}}


class TestOrderReportService:
    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, report_service, stored_orders):
        await stored_orders()

        paid = await report_service.list_orders(status="paid")
        unfulfilled = await report_service.list_orders(status="UNFULFILLED")

        assert [o.id for o in paid] == ["1"]
        assert [o.id for o in unfulfilled] == ["2"]

    @pytest.mark.asyncio
    async def test_limit_applies_after_filter(self, report_service, stored_orders):
        await stored_orders()

        assert [o.id for o in await report_service.list_orders(limit=1, status="pending")] == ["2"]
        assert [o.id for o in await report_service.list_orders(limit=2)] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_unknown_status_is_rejected(self, report_service):
        with pytest.raises(ValidationException) as exc_info:
            await report_service.list_orders(status="lost")

        assert exc_info.value.field == "status"

    @pytest.mark.asyncio
    async def test_list_by_agent(self, report_service, order_repository, agents, stored_orders):
        await stored_orders()
        await order_repository.update_assignment("2", "AGT-001", "admin", datetime.now(UTC), expected_version=0)

        assert [o.id for o in await report_service.list_orders(agent_id="AGT-001")] == ["2"]
        with pytest.raises(NotFoundError):
            await report_service.list_orders(agent_id="AGT-404")

    @pytest.mark.asyncio
    async def test_summary_date_range(self, report_service, stored_orders):
        """Debe filtrar por created_at con límites inclusivos."""
        await stored_orders()

        summary = await report_service.get_summary(
            start=datetime(2025, 8, 1, 10, tzinfo=UTC),
            end=datetime(2025, 8, 2, tzinfo=UTC),
        )

        assert summary.total_orders == 2
        assert summary.total_revenue == Decimal("200.00")
        assert summary.trends == {"2025-08-01": {"count": 2, "revenue": Decimal("200.00")}}

    @pytest.mark.asyncio
    async def test_summary_all_orders(self, report_service, stored_orders):
        await stored_orders()

        data = (await report_service.get_summary()).to_dict()

        assert data["summary"] == {"totalOrders": 3, "totalRevenue": 200.0, "averageOrderValue": 66.67}
        assert data["financial"] == {"paid": 1, "pending": 1, "refunded": 1}
        assert data["fulfillment"] == {"fulfilled": 1, "partiallyFulfilled": 1, "unfulfilled": 1}
