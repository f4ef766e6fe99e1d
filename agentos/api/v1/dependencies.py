"""
Dependencias FastAPI para acceder a los servicios creados en el lifespan.
"""

from fastapi import Request

from agentos.db.repositories import AgentRepository, OrderRepository
from agentos.db.shopify_client import ShopifyClient
from agentos.services.agent_stats import AgentStatsService
from agentos.services.commission_engine import CommissionEngine
from agentos.services.order_assignment import OrderAssignmentService
from agentos.services.order_reports import OrderReportService
from agentos.services.order_sync import OrderSyncService
from agentos.services.webhook_handler import WebhookProcessor
from agentos.services.webhook_retry_queue import WebhookRetryQueue


def get_order_repository(request: Request) -> OrderRepository:
    return request.app.state.order_repository


def get_agent_repository(request: Request) -> AgentRepository:
    return request.app.state.agent_repository


def get_shopify_client(request: Request) -> ShopifyClient:
    return request.app.state.shopify_client


def get_commission_engine(request: Request) -> CommissionEngine:
    return request.app.state.commission_engine


def get_assignment_service(request: Request) -> OrderAssignmentService:
    return request.app.state.assignment_service


def get_order_report_service(request: Request) -> OrderReportService:
    return request.app.state.order_report_service


def get_agent_stats_service(request: Request) -> AgentStatsService:
    return request.app.state.agent_stats_service


def get_order_sync_service(request: Request) -> OrderSyncService:
    return request.app.state.order_sync_service


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor


def get_webhook_retry_queue(request: Request) -> WebhookRetryQueue:
    return request.app.state.webhook_retry_queue
