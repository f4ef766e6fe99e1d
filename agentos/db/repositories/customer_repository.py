"""
CustomerRepository: customers registered from Shopify webhooks and syncs.
"""

import logging
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from sqlalchemy import text

from agentos.db.repositories.base import BaseRepository, from_iso, log_operation, to_iso
from agentos.domain.models import Customer

logger = logging.getLogger(__name__)

CUSTOMER_COLUMNS = "id, email, first_name, last_name, phone, orders_count, total_spent, created_at"


def row_to_customer(row: Mapping[str, Any]) -> Customer:
    return Customer(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"] or "",
        last_name=row["last_name"] or "",
        phone=row["phone"],
        orders_count=row["orders_count"],
        total_spent=Decimal(row["total_spent"]),
        created_at=from_iso(row["created_at"]),
    )


class CustomerRepository(BaseRepository):
    """Repository for customers."""

    @log_operation()
    async def get(self, customer_id: str) -> Optional[Customer]:
        async with self.session() as session:
            result = await session.execute(
                text(f"SELECT {CUSTOMER_COLUMNS} FROM customers WHERE id = :id"),
                {"id": customer_id},
            )
            row = result.mappings().first()
        return row_to_customer(row) if row else None

    @log_operation()
    async def upsert(self, customer: Customer) -> Customer:
        async with self.session() as session:
            await session.execute(
                text(
                    """
                    INSERT INTO customers (
                        id, email, first_name, last_name, phone, orders_count, total_spent, created_at
                    )
                    VALUES (
                        :id, :email, :first_name, :last_name, :phone, :orders_count, :total_spent, :created_at
                    )
                    ON CONFLICT (id) DO UPDATE SET
                        email = excluded.email,
                        first_name = excluded.first_name,
                        last_name = excluded.last_name,
                        phone = excluded.phone,
                        orders_count = excluded.orders_count,
                        total_spent = excluded.total_spent
                    """
                ),
                {
                    "id": customer.id,
                    "email": customer.email,
                    "first_name": customer.first_name,
                    "last_name": customer.last_name,
                    "phone": customer.phone,
                    "orders_count": customer.orders_count,
                    "total_spent": str(customer.total_spent),
                    "created_at": to_iso(customer.created_at),
                },
            )
        return customer

    @log_operation()
    async def list_all(self, limit: Optional[int] = None) -> List[Customer]:
        query = f"SELECT {CUSTOMER_COLUMNS} FROM customers ORDER BY created_at DESC"
        params: dict = {}
        if limit is not None:
            query += " LIMIT :limit"
            params["limit"] = limit

        async with self.session() as session:
            result = await session.execute(text(query), params)
            rows = result.mappings().all()
        return [row_to_customer(row) for row in rows]
