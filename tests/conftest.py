"""Fixtures compartidos: base en memoria, repositorios y datos de ejemplo."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
import pytest_asyncio

from agentos.core.config import Settings
from agentos.db.connection import ConnDB
from agentos.db.repositories import (
    AgentRepository,
    CommissionRepository,
    CustomerRepository,
    OrderRepository,
    SyncStateRepository,
)
from agentos.domain.models import Agent, CommissionRates, LineItem, Order
from agentos.domain.value_objects import Money
from agentos.utils.order_lock import OrderLock

MEMORY_DB_URL = "sqlite+aiosqlite:///:memory:"
WEBHOOK_SECRET = "shhh"


@pytest.fixture(autouse=True)
def clear_order_locks():
    """Los locks por pedido no deben compartirse entre event loops de distintos tests."""
    OrderLock.clear_registry()
    yield
    OrderLock.clear_registry()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL=MEMORY_DB_URL,
        LOG_FILE_PATH=None,
        DEBUG=False,
        SECRET_KEY="test-secret-key",
        SHOPIFY_WEBHOOK_SECRET=WEBHOOK_SECRET,
        COMMISSION_DEFAULT_RATE=Decimal("0.05"),
        COMMISSION_PRODUCT_BONUSES={"BATIK-001": Decimal("0.02"), "8001": Decimal("0.01")},
        WEBHOOK_RETRY_BASE_DELAY=0.01,
        WEBHOOK_RETRY_MAX_DELAY=0.05,
    )


@pytest.fixture
def rates() -> CommissionRates:
    return CommissionRates(
        default_rate=Decimal("0.05"),
        product_bonuses={"BATIK-001": Decimal("0.02"), "8001": Decimal("0.01")},
    )


@pytest_asyncio.fixture
async def conn_db():
    db = ConnDB(database_url=MEMORY_DB_URL, echo=False)
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def order_repository(conn_db) -> OrderRepository:
    return OrderRepository(conn_db)


@pytest.fixture
def agent_repository(conn_db) -> AgentRepository:
    return AgentRepository(conn_db)


@pytest.fixture
def customer_repository(conn_db) -> CustomerRepository:
    return CustomerRepository(conn_db)


@pytest.fixture
def commission_repository(conn_db) -> CommissionRepository:
    return CommissionRepository(conn_db)


@pytest.fixture
def sync_state_repository(conn_db) -> SyncStateRepository:
    return SyncStateRepository(conn_db)


@pytest.fixture
def make_order():
    """Factory de pedidos de dominio."""

    def _make_order(
        order_id: str = "1001",
        total: str | None = "149.00",
        items: list[tuple[str | None, str | None, int, str]] | None = None,
        currency: str = "MYR",
        **kwargs,
    ) -> Order:
        # items: (sku, product_id, quantity, unit_price)
        if items is None:
            items = [("BATIK-001", "7001", 1, "149.00")]
        line_items = [
            LineItem(
                product_id=product_id,
                title=f"Product {sku or product_id}",
                quantity=quantity,
                unit_price=Money(Decimal(price), currency),
                sku=sku,
            )
            for sku, product_id, quantity, price in items
        ]
        return Order(
            id=order_id,
            order_number=int(order_id) if order_id.isdigit() else None,
            name=f"#{order_id}",
            total=Money(Decimal(total), currency) if total is not None else None,
            currency=currency,
            line_items=line_items,
            created_at=kwargs.pop("created_at", datetime(2025, 8, 23, 5, 59, 40, tzinfo=UTC)),
            **kwargs,
        )

    return _make_order


@pytest.fixture
def shopify_order_payload() -> dict:
    """Pedido tal como lo envía Shopify (REST y webhooks orders/*)."""
    return {
        "id": 6940416376922,
        "order_number": 3122,
        "name": "#3122",
        "email": "jay@example.com",
        "total_price": "149.00",
        "currency": "MYR",
        "financial_status": "pending",
        "fulfillment_status": None,
        "created_at": "2025-08-23T05:59:40+08:00",
        "customer": {
            "id": 7001122,
            "email": "jay@example.com",
            "first_name": "Jay",
            "last_name": "Decade",
            "orders_count": 3,
            "total_spent": "420.50",
        },
        "line_items": [
            {
                "id": 19133572317274,
                "product_id": 8001,
                "variant_id": 9001,
                "title": "Kurung Batik Alana",
                "quantity": 1,
                "price": "149.00",
                "sku": "BATIK-001",
                "vendor": "DESA MURNI BATIK",
            }
        ],
        "fulfillments": [],
    }


@pytest_asyncio.fixture
async def agents(agent_repository) -> dict:
    """Dos agentes activos y uno inactivo."""
    created = {}
    for agent in (
        Agent(id="AGT-001", name="Aisyah", email="aisyah@example.com", territory="Selangor"),
        Agent(id="AGT-002", name="Badrul", email="badrul@example.com", territory="Johor"),
        Agent(id="AGT-099", name="Retired", active=False),
    ):
        created[agent.id] = await agent_repository.create(agent)
    return created
