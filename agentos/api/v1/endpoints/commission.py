"""
Endpoints de comisiones: tasas vigentes, simulación y cálculo persistido.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from agentos.api.v1.dependencies import get_agent_repository, get_commission_engine
from agentos.api.v1.schemas.agentos_schemas import CalculateRequest, SimulateRequest
from agentos.core.security import AuthContext, get_auth_context, require_admin, require_agent_access
from agentos.db.repositories import AgentRepository
from agentos.services.commission_engine import CommissionEngine
from agentos.utils.error_handler import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/rates", summary="Commission rate configuration")
async def get_rates(
    auth: AuthContext = Depends(get_auth_context),
    commission_engine: CommissionEngine = Depends(get_commission_engine),
) -> Dict[str, Any]:
    return {
        "success": True,
        "data": commission_engine.get_rates().to_dict(),
        "message": "Commission rates configuration",
    }


@router.post("/simulate", summary="Simulate commissions without persisting")
async def simulate(
    body: Optional[SimulateRequest] = None,
    auth: AuthContext = Depends(get_auth_context),
    commission_engine: CommissionEngine = Depends(get_commission_engine),
) -> Dict[str, Any]:
    """
    Simula las comisiones de un agente (o de todos los pedidos si no se indica agente).

    Sin pedidos el resumen es 0/0/0.
    """
    agent_id = body.agent_id if body else None
    if agent_id:
        require_agent_access(auth, agent_id)
    else:
        require_admin(auth)

    result = await commission_engine.simulate(agent_id)
    return {
        "success": True,
        "data": result.to_dict(),
        "message": f"Simulated {result.summary.total_orders} commission calculations",
    }


@router.post("/calculate", summary="Calculate and store commission for an order")
async def calculate(
    body: CalculateRequest,
    auth: AuthContext = Depends(get_auth_context),
    commission_engine: CommissionEngine = Depends(get_commission_engine),
    agent_repository: AgentRepository = Depends(get_agent_repository),
) -> Dict[str, Any]:
    require_admin(auth)
    if not await agent_repository.exists(body.agent_id):
        raise NotFoundError(f"Agent {body.agent_id} not found", resource="agent", resource_id=body.agent_id)

    commission = await commission_engine.calculate_for_order(body.order_id, body.agent_id)
    return {"success": True, "data": commission.to_dict(), "message": "Commission calculated successfully"}
