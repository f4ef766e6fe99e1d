import asyncio
from decimal import Decimal

import pytest

from agentos.services.commission_engine import CommissionEngine
from agentos.services.order_assignment import OrderAssignmentService
from agentos.utils.error_handler import ConflictError, NotFoundError, ValidationException
from agentos.utils.order_lock import LockAcquisitionError, OrderLock


@pytest.fixture
def assignment_service(order_repository, agent_repository):
    return OrderAssignmentService(order_repository, agent_repository)


@pytest.fixture
def commission_engine(order_repository, commission_repository, rates):
    return CommissionEngine(order_repository, commission_repository, rates)


class TestOrderAssignment:
    @pytest.mark.asyncio
    async def test_assigns_unassigned_order(self, assignment_service, order_repository, agents, make_order):
        await order_repository.upsert(make_order())

        result = await assignment_service.assign("1001", "AGT-001", assigned_by="admin")

        assert result.changed is True
        assert result.version == 1
        stored = await order_repository.get("1001")
        assert stored.assigned_agent == "AGT-001"
        assert stored.assigned_by == "admin"
        assert stored.assignment_version == 1

    @pytest.mark.asyncio
    async def test_same_agent_is_idempotent(self, assignment_service, order_repository, agents, make_order):
        """Debe ser un no-op reasignar al mismo agente, sin cambiar asignador ni versión."""
        await order_repository.upsert(make_order())
        first = await assignment_service.assign("1001", "AGT-001", assigned_by="admin")

        second = await assignment_service.assign("1001", "AGT-001", assigned_by="someone-else")

        assert second.changed is False
        assert second.version == first.version
        assert second.assigned_by == "admin"
        stored = await order_repository.get("1001")
        assert stored.assigned_by == "admin"
        assert stored.assignment_version == 1

    @pytest.mark.asyncio
    async def test_reassign_overwrites_owner(self, assignment_service, order_repository, agents, make_order):
        await order_repository.upsert(make_order())
        await assignment_service.assign("1001", "AGT-001", assigned_by="admin")

        result = await assignment_service.assign("1001", "AGT-002", assigned_by="supervisor", expected_version=1)

        assert result.changed is True
        assert result.version == 2
        assert await assignment_service.list_orders_for_agent("AGT-001") == []
        orders = await assignment_service.list_orders_for_agent("AGT-002")
        assert [order.id for order in orders] == ["1001"]

    @pytest.mark.asyncio
    async def test_reassign_after_paid_moves_commission(
        self, assignment_service, commission_engine, commission_repository, order_repository, agents, make_order
    ):
        """Un pedido reasignado tras el pago no debe pagar comisión a dos agentes."""
        await order_repository.upsert(make_order())
        await assignment_service.assign("1001", "AGT-001", assigned_by="admin")
        await commission_engine.recompute_for_order("1001")

        await assignment_service.assign("1001", "AGT-002", assigned_by="admin")
        assert await commission_repository.list_for_agent("AGT-001") == []

        # orders/paid reentregado
        await commission_engine.recompute_for_order("1001")

        first = await commission_engine.get_agent_commissions("AGT-001")
        second = await commission_engine.get_agent_commissions("AGT-002")
        assert first["summary"].total_orders == 0
        assert second["summary"].total_orders == 1
        assert second["summary"].total_commission == Decimal("10.43")

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, assignment_service, order_repository, agents, make_order):
        await order_repository.upsert(make_order())
        await assignment_service.assign("1001", "AGT-001", assigned_by="admin")

        with pytest.raises(ConflictError) as exc_info:
            await assignment_service.assign("1001", "AGT-002", assigned_by="admin", expected_version=0)

        assert exc_info.value.status_code == 409
        assert exc_info.value.current_version == 1
        assert (await order_repository.get("1001")).assigned_agent == "AGT-001"

    @pytest.mark.asyncio
    async def test_unknown_order_or_agent(self, assignment_service, order_repository, agents, make_order):
        with pytest.raises(NotFoundError):
            await assignment_service.assign("404", "AGT-001", assigned_by="admin")

        await order_repository.upsert(make_order())
        with pytest.raises(NotFoundError) as exc_info:
            await assignment_service.assign("1001", "AGT-404", assigned_by="admin")
        assert exc_info.value.resource == "agent"

    @pytest.mark.asyncio
    async def test_inactive_agent_is_rejected(self, assignment_service, order_repository, agents, make_order):
        await order_repository.upsert(make_order())

        with pytest.raises(ValidationException) as exc_info:
            await assignment_service.assign("1001", "AGT-099", assigned_by="admin")

        assert exc_info.value.field == "agentId"

    @pytest.mark.asyncio
    async def test_concurrent_assignments_serialize(self, assignment_service, order_repository, agents, make_order):
        """Con la misma versión esperada, sólo una de dos asignaciones concurrentes gana."""
        await order_repository.upsert(make_order())

        results = await asyncio.gather(
            assignment_service.assign("1001", "AGT-001", assigned_by="a", expected_version=0),
            assignment_service.assign("1001", "AGT-002", assigned_by="b", expected_version=0),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(conflicts) == 1
        stored = await order_repository.get("1001")
        assert stored.assignment_version == 1

    @pytest.mark.asyncio
    async def test_lock_timeout_is_retryable_conflict(self, order_repository, agent_repository, agents, make_order):
        await order_repository.upsert(make_order())
        service = OrderAssignmentService(order_repository, agent_repository, lock_timeout=0.01)

        async with OrderLock("1001"):
            with pytest.raises(LockAcquisitionError) as exc_info:
                await service.assign("1001", "AGT-001", assigned_by="admin")

        assert exc_info.value.status_code == 409
        assert exc_info.value.is_retryable is True
        assert (await order_repository.get("1001")).assigned_agent is None

    @pytest.mark.asyncio
    async def test_list_orders_for_unknown_agent(self, assignment_service):
        with pytest.raises(NotFoundError):
            await assignment_service.list_orders_for_agent("AGT-404")
