"""
Endpoints de agentes: registro, pedidos asignados, comisiones y estadísticas.

Un agente sólo puede leer sus propios recursos; los administradores leen todos.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from agentos.api.v1.dependencies import (
    get_agent_repository,
    get_agent_stats_service,
    get_assignment_service,
    get_commission_engine,
)
from agentos.api.v1.schemas.agentos_schemas import CreateAgentRequest
from agentos.core.security import AuthContext, get_auth_context, require_admin, require_agent_access
from agentos.db.repositories import AgentRepository
from agentos.domain.models import Agent
from agentos.services.agent_stats import AgentStatsService
from agentos.services.commission_engine import CommissionEngine
from agentos.services.order_assignment import OrderAssignmentService
from agentos.utils.error_handler import NotFoundError, ValidationException

logger = logging.getLogger(__name__)

router = APIRouter()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Fechas sin zona horaria se interpretan como UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@router.get("", summary="List agents")
async def list_agents(
    active_only: bool = Query(False, alias="activeOnly"),
    auth: AuthContext = Depends(get_auth_context),
    agent_repository: AgentRepository = Depends(get_agent_repository),
) -> Dict[str, Any]:
    require_admin(auth)
    agents = await agent_repository.list_all(active_only=active_only)
    return {"success": True, "data": [agent.to_dict() for agent in agents], "count": len(agents)}


@router.post("", status_code=status.HTTP_201_CREATED, summary="Register agent")
async def create_agent(
    body: CreateAgentRequest,
    auth: AuthContext = Depends(get_auth_context),
    agent_repository: AgentRepository = Depends(get_agent_repository),
) -> Dict[str, Any]:
    """
    Registra un agente nuevo. Responde 409 si el ID ya existe.
    """
    require_admin(auth)
    agent = await agent_repository.create(
        Agent(id=body.id, name=body.name, email=body.email, territory=body.territory, active=body.active)
    )
    logger.info(f"👤 Agente registrado por {auth.user_id}: {agent.id} ({agent.name})")
    return {"success": True, "data": agent.to_dict()}


@router.get("/{agent_id}", summary="Get agent")
async def get_agent(
    agent_id: str,
    auth: AuthContext = Depends(get_auth_context),
    agent_repository: AgentRepository = Depends(get_agent_repository),
) -> Dict[str, Any]:
    require_agent_access(auth, agent_id)
    agent = await agent_repository.get(agent_id)
    if agent is None:
        raise NotFoundError(f"Agent {agent_id} not found", resource="agent", resource_id=agent_id)
    return {"success": True, "data": agent.to_dict()}


@router.get("/{agent_id}/orders", summary="Orders assigned to agent")
async def get_agent_orders(
    agent_id: str,
    limit: Optional[int] = Query(None, ge=1),
    auth: AuthContext = Depends(get_auth_context),
    assignment_service: OrderAssignmentService = Depends(get_assignment_service),
) -> Dict[str, Any]:
    require_agent_access(auth, agent_id)
    orders = await assignment_service.list_orders_for_agent(agent_id, limit=limit)
    return {"success": True, "data": [order.to_dict() for order in orders], "count": len(orders)}


@router.get("/{agent_id}/commissions", summary="Commissions earned by agent")
async def get_agent_commissions(
    agent_id: str,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(50, ge=1, le=500),
    auth: AuthContext = Depends(get_auth_context),
    agent_repository: AgentRepository = Depends(get_agent_repository),
    commission_engine: CommissionEngine = Depends(get_commission_engine),
) -> Dict[str, Any]:
    """
    Comisiones persistidas del agente, opcionalmente filtradas por fecha de cálculo.
    """
    require_agent_access(auth, agent_id)
    start_date = as_utc(start_date)
    end_date = as_utc(end_date)
    if start_date and end_date and start_date > end_date:
        raise ValidationException(
            "startDate must be before endDate",
            field="startDate",
            invalid_value=start_date.isoformat(),
        )
    if not await agent_repository.exists(agent_id):
        raise NotFoundError(f"Agent {agent_id} not found", resource="agent", resource_id=agent_id)

    result = await commission_engine.get_agent_commissions(agent_id, start=start_date, end=end_date, limit=limit)
    return {
        "success": True,
        "data": {
            "commissions": [commission.to_dict() for commission in result["commissions"]],
            "summary": result["summary"].to_dict(),
        },
    }


@router.get("/{agent_id}/stats", summary="Agent performance stats")
async def get_agent_stats(
    agent_id: str,
    auth: AuthContext = Depends(get_auth_context),
    stats_service: AgentStatsService = Depends(get_agent_stats_service),
) -> Dict[str, Any]:
    require_agent_access(auth, agent_id)
    stats = await stats_service.get_agent_stats(agent_id)
    return {"success": True, "data": stats.to_dict()}
