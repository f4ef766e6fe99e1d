"""
OrderRepository: local copy of Shopify orders plus agent assignment.

Shopify-sourced columns are overwritten on every upsert; the assignment
columns are only written through ``update_assignment``.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from sqlalchemy import text

from agentos.db.repositories.base import (
    BaseRepository,
    dump_json,
    from_iso,
    load_json,
    log_operation,
    to_decimal,
    to_iso,
)
from agentos.domain.models import (
    Customer,
    FinancialStatus,
    FulfillmentStatus,
    LineItem,
    Order,
    TrackingInfo,
)
from agentos.domain.value_objects import Money

logger = logging.getLogger(__name__)

ORDER_COLUMNS = """
    id, order_number, name, email, total, currency, financial_status,
    fulfillment_status, line_items, customer, created_at, paid_at, tracking,
    assigned_agent, assigned_by, assigned_at, assignment_version
"""


def _line_item_to_row(item: LineItem) -> dict:
    return {
        "product_id": item.product_id,
        "variant_id": item.variant_id,
        "title": item.title,
        "quantity": item.quantity,
        "price": str(item.unit_price.amount),
        "sku": item.sku,
        "vendor": item.vendor,
    }


def _customer_to_row(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "email": customer.email,
        "first_name": customer.first_name,
        "last_name": customer.last_name,
        "phone": customer.phone,
        "orders_count": customer.orders_count,
        "total_spent": str(customer.total_spent),
        "created_at": to_iso(customer.created_at),
    }


def _tracking_to_row(tracking: TrackingInfo) -> dict:
    return {
        "number": tracking.number,
        "company": tracking.company,
        "url": tracking.url,
        "fulfilled_at": to_iso(tracking.fulfilled_at),
    }


def row_to_order(row: Mapping[str, Any]) -> Order:
    """Build an ``Order`` from a result mapping."""
    currency = row["currency"]
    total = to_decimal(row["total"])

    line_items = [
        LineItem(
            product_id=item.get("product_id"),
            variant_id=item.get("variant_id"),
            title=item.get("title") or "",
            quantity=int(item["quantity"]),
            unit_price=Money(amount=Decimal(item["price"]), currency=currency),
            sku=item.get("sku"),
            vendor=item.get("vendor"),
        )
        for item in load_json(row["line_items"], default=[])
    ]

    customer_data = load_json(row["customer"])
    customer = None
    if customer_data:
        customer = Customer(
            id=customer_data["id"],
            email=customer_data.get("email"),
            first_name=customer_data.get("first_name") or "",
            last_name=customer_data.get("last_name") or "",
            phone=customer_data.get("phone"),
            orders_count=customer_data.get("orders_count") or 0,
            total_spent=Decimal(customer_data.get("total_spent") or "0"),
            created_at=from_iso(customer_data.get("created_at")) or from_iso(row["created_at"]),
        )

    tracking_data = load_json(row["tracking"])
    tracking = None
    if tracking_data:
        tracking = TrackingInfo(
            number=tracking_data.get("number"),
            company=tracking_data.get("company"),
            url=tracking_data.get("url"),
            fulfilled_at=from_iso(tracking_data.get("fulfilled_at")),
        )

    return Order(
        id=row["id"],
        order_number=row["order_number"],
        name=row["name"],
        email=row["email"],
        total=Money(amount=total, currency=currency) if total is not None else None,
        currency=currency,
        financial_status=FinancialStatus(row["financial_status"]),
        fulfillment_status=FulfillmentStatus(row["fulfillment_status"]),
        line_items=line_items,
        customer=customer,
        created_at=from_iso(row["created_at"]),
        paid_at=from_iso(row["paid_at"]),
        tracking=tracking,
        assigned_agent=row["assigned_agent"],
        assigned_by=row["assigned_by"],
        assigned_at=from_iso(row["assigned_at"]),
        assignment_version=row["assignment_version"],
    )


class OrderRepository(BaseRepository):
    """Repository for orders and their agent assignment."""

    @log_operation()
    async def get(self, order_id: str) -> Optional[Order]:
        async with self.session() as session:
            result = await session.execute(
                text(f"SELECT {ORDER_COLUMNS} FROM orders WHERE id = :id"),
                {"id": str(order_id)},
            )
            row = result.mappings().first()
        return row_to_order(row) if row else None

    @log_operation()
    async def exists(self, order_id: str) -> bool:
        async with self.session() as session:
            result = await session.execute(text("SELECT 1 FROM orders WHERE id = :id"), {"id": str(order_id)})
            return result.scalar() is not None

    @log_operation()
    async def upsert(self, order: Order) -> Order:
        """
        Insert or update an order with Shopify data.

        Assignment columns of an existing row are never touched. ``paid_at``
        and ``tracking`` keep their stored value when the incoming snapshot
        has none.

        Returns:
            Order: The stored order after the write
        """
        now = to_iso(datetime.now(UTC))
        params = {
            "id": order.id,
            "order_number": order.order_number,
            "name": order.name,
            "email": order.email,
            "total": str(order.total.amount) if order.total is not None else None,
            "currency": order.currency,
            "financial_status": order.financial_status.value,
            "fulfillment_status": order.fulfillment_status.value,
            "line_items": dump_json([_line_item_to_row(item) for item in order.line_items]),
            "customer": dump_json(_customer_to_row(order.customer)) if order.customer else None,
            "created_at": to_iso(order.created_at),
            "paid_at": to_iso(order.paid_at),
            "tracking": dump_json(_tracking_to_row(order.tracking)) if order.tracking else None,
            "updated_at": now,
        }

        async with self.session() as session:
            await session.execute(
                text(
                    """
                    INSERT INTO orders (
                        id, order_number, name, email, total, currency, financial_status,
                        fulfillment_status, line_items, customer, created_at, paid_at,
                        tracking, updated_at
                    )
                    VALUES (
                        :id, :order_number, :name, :email, :total, :currency, :financial_status,
                        :fulfillment_status, :line_items, :customer, :created_at, :paid_at,
                        :tracking, :updated_at
                    )
                    ON CONFLICT (id) DO UPDATE SET
                        order_number = excluded.order_number,
                        name = excluded.name,
                        email = excluded.email,
                        total = excluded.total,
                        currency = excluded.currency,
                        financial_status = excluded.financial_status,
                        fulfillment_status = excluded.fulfillment_status,
                        line_items = excluded.line_items,
                        customer = COALESCE(excluded.customer, orders.customer),
                        created_at = excluded.created_at,
                        paid_at = COALESCE(excluded.paid_at, orders.paid_at),
                        tracking = COALESCE(excluded.tracking, orders.tracking),
                        updated_at = excluded.updated_at
                    """
                ),
                params,
            )
            result = await session.execute(
                text(f"SELECT {ORDER_COLUMNS} FROM orders WHERE id = :id"),
                {"id": order.id},
            )
            row = result.mappings().first()

        return row_to_order(row)

    @log_operation()
    async def list_all(self, limit: Optional[int] = None) -> List[Order]:
        """All stored orders in insertion order."""
        query = f"SELECT {ORDER_COLUMNS} FROM orders ORDER BY seq"
        params: dict = {}
        if limit is not None:
            query += " LIMIT :limit"
            params["limit"] = limit

        async with self.session() as session:
            result = await session.execute(text(query), params)
            rows = result.mappings().all()
        return [row_to_order(row) for row in rows]

    @log_operation()
    async def list_by_agent(self, agent_id: str, limit: Optional[int] = None) -> List[Order]:
        """Orders currently assigned to an agent, in insertion order."""
        query = f"SELECT {ORDER_COLUMNS} FROM orders WHERE assigned_agent = :agent_id ORDER BY seq"
        params: dict = {"agent_id": agent_id}
        if limit is not None:
            query += " LIMIT :limit"
            params["limit"] = limit

        async with self.session() as session:
            result = await session.execute(text(query), params)
            rows = result.mappings().all()
        return [row_to_order(row) for row in rows]

    @log_operation()
    async def update_assignment(
        self,
        order_id: str,
        agent_id: str,
        assigned_by: str,
        assigned_at: datetime,
        expected_version: int,
    ) -> int:
        """
        Conditional assignment write.

        The row is only updated when its ``assignment_version`` still equals
        ``expected_version``; the version is incremented on success.
        In the same transaction, commissions stored for any other agent on
        this order are deleted, so an order never pays two agents.

        Returns:
            int: Number of updated rows (0 means the version moved)
        """
        async with self.session() as session:
            result = await session.execute(
                text(
                    """
                    UPDATE orders
                    SET assigned_agent = :agent_id,
                        assigned_by = :assigned_by,
                        assigned_at = :assigned_at,
                        assignment_version = assignment_version + 1
                    WHERE id = :id AND assignment_version = :expected_version
                    """
                ),
                {
                    "id": order_id,
                    "agent_id": agent_id,
                    "assigned_by": assigned_by,
                    "assigned_at": to_iso(assigned_at),
                    "expected_version": expected_version,
                },
            )
            if result.rowcount:
                voided = await session.execute(
                    text("DELETE FROM commissions WHERE order_id = :id AND agent_id != :agent_id"),
                    {"id": order_id, "agent_id": agent_id},
                )
                if voided.rowcount:
                    logger.info(f"🧾 Voided {voided.rowcount} commission(s) of order {order_id} on reassignment")
            return result.rowcount
