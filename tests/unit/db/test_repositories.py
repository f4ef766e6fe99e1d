from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from agentos.domain.models import Agent, Customer, TrackingInfo
from agentos.services.commission_engine import compute_commission
from agentos.utils.error_handler import ConflictError, DatabaseException


class TestConnDB:
    @pytest.mark.asyncio
    async def test_health_check(self, conn_db):
        health = await conn_db.health_check()

        assert health["connection_initialized"] is True
        assert health["test_passed"] is True

    @pytest.mark.asyncio
    async def test_session_requires_initialize(self, conn_db):
        await conn_db.close()

        with pytest.raises(DatabaseException):
            async with conn_db.session():
                pass
        assert await conn_db.test_connection() is False


class TestOrderRepository:
    @pytest.mark.asyncio
    async def test_upsert_round_trip(self, order_repository, make_order):
        order = make_order(customer=Customer(id="7", email="jay@example.com", first_name="Jay"))

        stored = await order_repository.upsert(order)

        assert stored.id == "1001"
        assert stored.total.amount == Decimal("149.00")
        assert stored.line_items[0].sku == "BATIK-001"
        assert stored.customer.email == "jay@example.com"
        assert stored.created_at == order.created_at
        assert stored.assignment_version == 0

    @pytest.mark.asyncio
    async def test_upsert_keeps_tracking_and_paid_at(self, order_repository, make_order):
        paid = make_order().mark_paid(datetime(2025, 8, 24, tzinfo=UTC))
        await order_repository.upsert(paid.mark_fulfilled(TrackingInfo(number="EP1")))

        refreshed = await order_repository.upsert(make_order(total="150.00"))

        assert refreshed.total.amount == Decimal("150.00")
        assert refreshed.tracking.number == "EP1"
        assert refreshed.paid_at == datetime(2025, 8, 24, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_order_without_total(self, order_repository, make_order):
        stored = await order_repository.upsert(make_order(total=None))

        assert stored.total is None

    @pytest.mark.asyncio
    async def test_conditional_assignment_update(self, order_repository, make_order):
        await order_repository.upsert(make_order())
        now = datetime.now(UTC)

        assert await order_repository.update_assignment("1001", "AGT-001", "admin", now, expected_version=0) == 1
        assert await order_repository.update_assignment("1001", "AGT-002", "admin", now, expected_version=0) == 0

        stored = await order_repository.get("1001")
        assert stored.assigned_agent == "AGT-001"
        assert stored.assignment_version == 1

    @pytest.mark.asyncio
    async def test_list_preserves_insertion_order(self, order_repository, make_order):
        for order_id in ("30", "10", "20"):
            await order_repository.upsert(make_order(order_id=order_id))
        # re-upsert no mueve el pedido
        await order_repository.upsert(make_order(order_id="30"))

        assert [order.id for order in await order_repository.list_all()] == ["30", "10", "20"]
        assert len(await order_repository.list_all(limit=2)) == 2


class TestAgentRepository:
    @pytest.mark.asyncio
    async def test_create_and_list(self, agent_repository, agents):
        assert (await agent_repository.get("AGT-001")).territory == "Selangor"
        assert len(await agent_repository.list_all()) == 3
        assert {agent.id for agent in await agent_repository.list_all(active_only=True)} == {"AGT-001", "AGT-002"}

    @pytest.mark.asyncio
    async def test_duplicate_id_conflicts(self, agent_repository, agents):
        with pytest.raises(ConflictError):
            await agent_repository.create(Agent(id="AGT-001", name="Copy"))


class TestCommissionRepository:
    @pytest.mark.asyncio
    async def test_upsert_does_not_duplicate(self, commission_repository, make_order, rates):
        order = make_order()
        await commission_repository.upsert(compute_commission(order, rates, agent_id="AGT-001"))
        await commission_repository.upsert(compute_commission(order, rates, agent_id="AGT-001"))

        commissions = await commission_repository.list_for_agent("AGT-001")

        assert len(commissions) == 1
        assert commissions[0].total_amount == Decimal("10.43")
        assert commissions[0].matched_products == ("BATIK-001",)

    @pytest.mark.asyncio
    async def test_date_range_filter(self, commission_repository, make_order, rates):
        base = datetime(2025, 8, 1, tzinfo=UTC)
        for day in range(3):
            order = make_order(order_id=str(100 + day))
            commission = compute_commission(order, rates, agent_id="AGT-001", computed_at=base + timedelta(days=day))
            await commission_repository.upsert(commission)

        selected = await commission_repository.list_for_agent(
            "AGT-001", start=base + timedelta(days=1), end=base + timedelta(days=2)
        )

        assert [c.order_id for c in selected] == ["102", "101"]

    @pytest.mark.asyncio
    async def test_other_agent_row_is_replaced(self, commission_repository, make_order, rates):
        order = make_order()
        await commission_repository.upsert(compute_commission(order, rates, agent_id="AGT-001"))
        await commission_repository.upsert(compute_commission(order, rates, agent_id="AGT-002"))

        assert await commission_repository.list_for_agent("AGT-001") == []
        assert (await commission_repository.get("1001", "AGT-002")).total_amount == Decimal("10.43")

    @pytest.mark.asyncio
    async def test_reassignment_voids_previous_agent_commission(
        self, commission_repository, order_repository, make_order, rates
    ):
        await order_repository.upsert(make_order())
        now = datetime.now(UTC)
        await order_repository.update_assignment("1001", "AGT-001", "admin", now, expected_version=0)
        await commission_repository.upsert(compute_commission(make_order(), rates, agent_id="AGT-001"))

        await order_repository.update_assignment("1001", "AGT-002", "admin", now, expected_version=1)

        assert await commission_repository.get("1001", "AGT-001") is None

    @pytest.mark.asyncio
    async def test_unattributed_commission_is_rejected(self, commission_repository, make_order, rates):
        with pytest.raises(ValueError):
            await commission_repository.upsert(compute_commission(make_order(), rates))


class TestSyncStateRepository:
    @pytest.mark.asyncio
    async def test_set_many_overwrites(self, sync_state_repository):
        await sync_state_repository.set_many({"last_sync_at": "a", "orders_synced": "1"})
        await sync_state_repository.set_many({"orders_synced": "2"})

        assert await sync_state_repository.get_all() == {"last_sync_at": "a", "orders_synced": "2"}
