"""
AgentRepository: registered sales agents.
"""

import logging
from typing import Any, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from agentos.db.repositories.base import BaseRepository, from_iso, log_operation, to_iso
from agentos.domain.models import Agent
from agentos.utils.error_handler import ConflictError

logger = logging.getLogger(__name__)


def row_to_agent(row: Mapping[str, Any]) -> Agent:
    return Agent(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        territory=row["territory"],
        active=bool(row["active"]),
        created_at=from_iso(row["created_at"]),
    )


class AgentRepository(BaseRepository):
    """Repository for agents."""

    @log_operation()
    async def get(self, agent_id: str) -> Optional[Agent]:
        async with self.session() as session:
            result = await session.execute(
                text("SELECT id, name, email, territory, active, created_at FROM agents WHERE id = :id"),
                {"id": agent_id},
            )
            row = result.mappings().first()
        return row_to_agent(row) if row else None

    @log_operation()
    async def exists(self, agent_id: str) -> bool:
        async with self.session() as session:
            result = await session.execute(text("SELECT 1 FROM agents WHERE id = :id"), {"id": agent_id})
            return result.scalar() is not None

    @log_operation()
    async def create(self, agent: Agent) -> Agent:
        """
        Register a new agent.

        Raises:
            ConflictError: If an agent with the same id already exists
        """
        try:
            async with self.session() as session:
                await session.execute(
                    text(
                        """
                        INSERT INTO agents (id, name, email, territory, active, created_at)
                        VALUES (:id, :name, :email, :territory, :active, :created_at)
                        """
                    ),
                    {
                        "id": agent.id,
                        "name": agent.name,
                        "email": agent.email,
                        "territory": agent.territory,
                        "active": 1 if agent.active else 0,
                        "created_at": to_iso(agent.created_at),
                    },
                )
        except IntegrityError as e:
            raise ConflictError(f"Agent {agent.id} already exists") from e

        logger.info(f"👤 Agent registered: {agent.id} ({agent.name})")
        return agent

    @log_operation()
    async def list_all(self, active_only: bool = False) -> List[Agent]:
        query = "SELECT id, name, email, territory, active, created_at FROM agents"
        if active_only:
            query += " WHERE active = 1"
        query += " ORDER BY id"

        async with self.session() as session:
            result = await session.execute(text(query))
            rows = result.mappings().all()
        return [row_to_agent(row) for row in rows]
