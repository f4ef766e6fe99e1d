"""
Customer domain model.

Represents a Shopify customer as seen by sales agents.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any


@dataclass
class Customer:
    """
    Domain model representing a customer.

    Attributes:
        id: Shopify customer ID (numeric string)
        email: Customer email address
        first_name: Customer first name
        last_name: Customer last name
        phone: Customer phone number
        orders_count: Number of orders placed in Shopify
        total_spent: Lifetime spend reported by Shopify
        created_at: Creation time in Shopify
    """

    id: str
    email: str | None = None
    first_name: str = ""
    last_name: str = ""
    phone: str | None = None
    orders_count: int = 0
    total_spent: Decimal = Decimal("0")
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        """Validate customer data after initialization."""
        if not self.id:
            raise ValueError("Customer id is required")

        if self.email and "@" not in self.email:
            raise ValueError(f"Invalid email format: {self.email}")

    @property
    def full_name(self) -> str:
        """Get customer's full name."""
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or "Unknown"

    def to_dict(self) -> dict[str, Any]:
        """Convert customer to dictionary for API responses."""
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "fullName": self.full_name,
            "phone": self.phone,
            "ordersCount": self.orders_count,
            "totalSpent": float(self.total_spent),
            "createdAt": self.created_at.isoformat(),
        }
