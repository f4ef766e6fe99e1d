"""
Agent domain model.

A sales agent that can own assigned orders and earn commissions.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class Agent:
    """
    Domain model representing a sales agent.

    Attributes:
        id: Agent identifier (e.g. "AGT-001")
        name: Display name
        email: Contact email
        territory: Sales territory, optional
        active: Whether the agent can receive new assignments
        created_at: Registration time
    """

    id: str
    name: str
    email: str | None = None
    territory: str | None = None
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("Agent id is required")
        if not self.name or not self.name.strip():
            raise ValueError("Agent name is required")

    def to_dict(self) -> dict[str, Any]:
        """Convert agent to dictionary for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "territory": self.territory,
            "active": self.active,
            "createdAt": self.created_at.isoformat(),
        }
