"""
Endpoints de administración sobre los pedidos locales.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from agentos.api.v1.dependencies import get_order_report_service
from agentos.api.v1.endpoints.agents import as_utc
from agentos.core.security import AuthContext, get_auth_context, require_admin
from agentos.services.order_reports import OrderReportService
from agentos.utils.error_handler import ValidationException

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", summary="List stored orders")
async def list_orders(
    limit: int = Query(100, ge=1, le=1000),
    agent_id: Optional[str] = Query(None, alias="agentId"),
    status: Optional[str] = Query(None, description="Financial or fulfillment status"),
    auth: AuthContext = Depends(get_auth_context),
    report_service: OrderReportService = Depends(get_order_report_service),
) -> Dict[str, Any]:
    require_admin(auth)
    orders = await report_service.list_orders(limit=limit, agent_id=agent_id, status=status)
    return {"success": True, "data": [order.to_dict() for order in orders], "count": len(orders)}


@router.get("/stats/summary", summary="Order statistics")
async def get_order_summary(
    agent_id: Optional[str] = Query(None, alias="agentId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    auth: AuthContext = Depends(get_auth_context),
    report_service: OrderReportService = Depends(get_order_report_service),
) -> Dict[str, Any]:
    """
    Totales, ingresos y conteos por estado, con tendencia diaria.
    """
    require_admin(auth)
    start_date = as_utc(start_date)
    end_date = as_utc(end_date)
    if start_date and end_date and start_date > end_date:
        raise ValidationException(
            "startDate must be before endDate",
            field="startDate",
            invalid_value=start_date.isoformat(),
        )

    summary = await report_service.get_summary(agent_id=agent_id, start=start_date, end=end_date)
    return {"success": True, "data": summary.to_dict()}
