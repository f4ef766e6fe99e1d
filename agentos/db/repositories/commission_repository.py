"""
CommissionRepository: persisted commissions, at most one row per order.

Rows are upserted so recomputing an order's commission replaces the
previous value instead of adding a new one. Storing a commission for one
agent removes any row another agent held for the same order.
"""

import logging
from datetime import datetime
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
from agentos.domain.models import Commission

logger = logging.getLogger(__name__)

COMMISSION_COLUMNS = """
    order_id, agent_id, order_total, currency, base_rate, bonus_rate,
    base_amount, bonus_amount, total_amount, matched_products, computed_at
"""


def row_to_commission(row: Mapping[str, Any]) -> Commission:
    return Commission(
        order_id=row["order_id"],
        agent_id=row["agent_id"],
        order_total=to_decimal(row["order_total"]),
        currency=row["currency"],
        base_rate=to_decimal(row["base_rate"]),
        bonus_rate=to_decimal(row["bonus_rate"]),
        base_amount=to_decimal(row["base_amount"]),
        bonus_amount=to_decimal(row["bonus_amount"]),
        total_amount=to_decimal(row["total_amount"]),
        matched_products=tuple(load_json(row["matched_products"], default=[])),
        computed_at=from_iso(row["computed_at"]),
    )


class CommissionRepository(BaseRepository):
    """Repository for computed commissions."""

    @log_operation()
    async def upsert(self, commission: Commission) -> Commission:
        if commission.agent_id is None:
            raise ValueError("Only commissions attributed to an agent can be stored")

        async with self.session() as session:
            await session.execute(
                text("DELETE FROM commissions WHERE order_id = :order_id AND agent_id != :agent_id"),
                {"order_id": commission.order_id, "agent_id": commission.agent_id},
            )
            await session.execute(
                text(
                    f"""
                    INSERT INTO commissions ({COMMISSION_COLUMNS})
                    VALUES (
                        :order_id, :agent_id, :order_total, :currency, :base_rate, :bonus_rate,
                        :base_amount, :bonus_amount, :total_amount, :matched_products, :computed_at
                    )
                    ON CONFLICT (order_id, agent_id) DO UPDATE SET
                        order_total = excluded.order_total,
                        currency = excluded.currency,
                        base_rate = excluded.base_rate,
                        bonus_rate = excluded.bonus_rate,
                        base_amount = excluded.base_amount,
                        bonus_amount = excluded.bonus_amount,
                        total_amount = excluded.total_amount,
                        matched_products = excluded.matched_products,
                        computed_at = excluded.computed_at
                    """
                ),
                {
                    "order_id": commission.order_id,
                    "agent_id": commission.agent_id,
                    "order_total": str(commission.order_total),
                    "currency": commission.currency,
                    "base_rate": str(commission.base_rate),
                    "bonus_rate": str(commission.bonus_rate),
                    "base_amount": str(commission.base_amount),
                    "bonus_amount": str(commission.bonus_amount),
                    "total_amount": str(commission.total_amount),
                    "matched_products": dump_json(list(commission.matched_products)),
                    "computed_at": to_iso(commission.computed_at),
                },
            )
        return commission

    @log_operation()
    async def get(self, order_id: str, agent_id: str) -> Optional[Commission]:
        async with self.session() as session:
            result = await session.execute(
                text(f"SELECT {COMMISSION_COLUMNS} FROM commissions WHERE order_id = :order_id AND agent_id = :agent_id"),
                {"order_id": order_id, "agent_id": agent_id},
            )
            row = result.mappings().first()
        return row_to_commission(row) if row else None

    @log_operation()
    async def list_for_agent(
        self,
        agent_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Commission]:
        """
        Commissions of an agent, newest first.

        Args:
            agent_id: Agent identifier
            start: Inclusive lower bound on computed_at
            end: Inclusive upper bound on computed_at
            limit: Max rows
        """
        query = f"SELECT {COMMISSION_COLUMNS} FROM commissions WHERE agent_id = :agent_id"
        params: dict = {"agent_id": agent_id}

        if start is not None:
            query += " AND computed_at >= :start"
            params["start"] = to_iso(start)
        if end is not None:
            query += " AND computed_at <= :end"
            params["end"] = to_iso(end)

        query += " ORDER BY computed_at DESC"
        if limit is not None:
            query += " LIMIT :limit"
            params["limit"] = limit

        async with self.session() as session:
            result = await session.execute(text(query), params)
            rows = result.mappings().all()
        return [row_to_commission(row) for row in rows]
