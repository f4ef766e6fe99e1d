"""
Domain models for business entities.

These models represent core business concepts and contain
business logic and invariants.
"""

from .agent import Agent
from .commission import Commission, CommissionRates, CommissionSummary, SimulationResult
from .customer import Customer
from .order import FinancialStatus, FulfillmentStatus, LineItem, Order, TrackingInfo

__all__ = [
    "Agent",
    "Commission",
    "CommissionRates",
    "CommissionSummary",
    "Customer",
    "FinancialStatus",
    "FulfillmentStatus",
    "LineItem",
    "Order",
    "SimulationResult",
    "TrackingInfo",
]
