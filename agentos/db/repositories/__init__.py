from agentos.db.repositories.agent_repository import AgentRepository
from agentos.db.repositories.commission_repository import CommissionRepository
from agentos.db.repositories.customer_repository import CustomerRepository
from agentos.db.repositories.order_repository import OrderRepository
from agentos.db.repositories.sync_state_repository import SyncStateRepository

__all__ = [
    "AgentRepository",
    "CommissionRepository",
    "CustomerRepository",
    "OrderRepository",
    "SyncStateRepository",
]
