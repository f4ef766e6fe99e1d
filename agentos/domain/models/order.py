"""
Order domain model (Aggregate Root).

Represents a Shopify order as tracked by AgentOS: immutable Shopify data plus
the agent assignment fields owned by the back-office.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from agentos.domain.value_objects.money import Money

from .customer import Customer


class FinancialStatus(str, Enum):
    """Financial status of an order as reported by Shopify."""

    PENDING = "pending"
    AUTHORIZED = "authorized"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUNDED = "refunded"
    VOIDED = "voided"

    @classmethod
    def from_shopify(cls, value: str | None) -> "FinancialStatus":
        """Map a Shopify status string; unknown or empty values become PENDING."""
        if not value:
            return cls.PENDING
        try:
            return cls(value.lower())
        except ValueError:
            return cls.PENDING


class FulfillmentStatus(str, Enum):
    """Fulfillment status of an order. Shopify sends null for unfulfilled orders."""

    UNFULFILLED = "unfulfilled"
    PARTIAL = "partial"
    FULFILLED = "fulfilled"
    RESTOCKED = "restocked"

    @classmethod
    def from_shopify(cls, value: str | None) -> "FulfillmentStatus":
        if not value:
            return cls.UNFULFILLED
        try:
            return cls(value.lower())
        except ValueError:
            return cls.UNFULFILLED


@dataclass(frozen=True)
class TrackingInfo:
    """Shipment tracking data attached when an order is fulfilled."""

    number: str | None = None
    company: str | None = None
    url: str | None = None
    fulfilled_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trackingNumber": self.number,
            "trackingCompany": self.company,
            "trackingUrl": self.url,
            "fulfilledAt": self.fulfilled_at.isoformat() if self.fulfilled_at else None,
        }


@dataclass(frozen=True)
class LineItem:
    """
    Domain model representing an order line item.

    Attributes:
        product_id: Shopify product ID (may be None for custom items)
        title: Item title
        quantity: Quantity ordered, always positive
        unit_price: Unit price
        sku: Variant SKU, optional
        variant_id: Shopify variant ID, optional
        vendor: Product vendor, optional
    """

    product_id: str | None
    title: str
    quantity: int
    unit_price: Money
    sku: str | None = None
    variant_id: str | None = None
    vendor: str | None = None

    def __post_init__(self) -> None:
        """Validate line item data after initialization."""
        if self.quantity <= 0:
            raise ValueError(f"Quantity must be positive: {self.quantity}")

    @property
    def product_key(self) -> str | None:
        """Key used to look up product bonuses: the SKU, falling back to the product ID."""
        return self.sku or self.product_id

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "variantId": self.variant_id,
            "title": self.title,
            "quantity": self.quantity,
            "price": float(self.unit_price.amount),
            "sku": self.sku,
            "vendor": self.vendor,
        }


@dataclass
class Order:
    """
    Domain model representing an order (Aggregate Root).

    Shopify-sourced fields are treated as immutable once fetched; webhook
    updates produce new snapshots via ``with_*`` helpers. The assignment
    fields are only changed by the order assignment service.

    Attributes:
        id: Shopify order ID (numeric string)
        order_number: Shopify sequential order number
        name: Display name (e.g. "#1001")
        total: Order total, None when Shopify did not report one
        currency: ISO currency code
        financial_status: Payment status
        fulfillment_status: Fulfillment status
        line_items: Ordered sequence of line items
        customer: Customer snapshot, optional
        created_at: Creation time in Shopify
        paid_at: Time the orders/paid webhook was processed
        tracking: Shipment tracking info once fulfilled
        assigned_agent: Agent currently owning the order
        assigned_by: User that performed the last assignment
        assigned_at: Time of the last assignment
        assignment_version: Incremented on every effective reassignment
    """

    id: str
    total: Money | None
    currency: str = "MYR"
    order_number: int | None = None
    name: str | None = None
    email: str | None = None
    financial_status: FinancialStatus = FinancialStatus.PENDING
    fulfillment_status: FulfillmentStatus = FulfillmentStatus.UNFULFILLED
    line_items: list[LineItem] = field(default_factory=list)
    customer: Customer | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    paid_at: datetime | None = None
    tracking: TrackingInfo | None = None
    assigned_agent: str | None = None
    assigned_by: str | None = None
    assigned_at: datetime | None = None
    assignment_version: int = 0

    def __post_init__(self) -> None:
        """Validate order data after initialization."""
        if not self.id:
            raise ValueError("Order id is required")

        if self.total is not None and self.total.currency != self.currency:
            raise ValueError(f"Order total currency ({self.total.currency}) doesn't match order currency ({self.currency})")

    @property
    def items_count(self) -> int:
        return len(self.line_items)

    @property
    def is_paid(self) -> bool:
        return self.financial_status == FinancialStatus.PAID

    @property
    def is_completed(self) -> bool:
        """Paid and fulfilled."""
        return self.is_paid and self.fulfillment_status == FulfillmentStatus.FULFILLED

    @property
    def is_assigned(self) -> bool:
        return self.assigned_agent is not None

    def with_shopify_data(self, incoming: "Order") -> "Order":
        """Take Shopify fields from a fresh snapshot while keeping local assignment and tracking."""
        return replace(
            incoming,
            paid_at=incoming.paid_at or self.paid_at,
            tracking=incoming.tracking or self.tracking,
            assigned_agent=self.assigned_agent,
            assigned_by=self.assigned_by,
            assigned_at=self.assigned_at,
            assignment_version=self.assignment_version,
        )

    def mark_paid(self, paid_at: datetime | None = None) -> "Order":
        return replace(self, financial_status=FinancialStatus.PAID, paid_at=paid_at or datetime.now(UTC))

    def mark_fulfilled(self, tracking: TrackingInfo | None = None) -> "Order":
        return replace(self, fulfillment_status=FulfillmentStatus.FULFILLED, tracking=tracking or self.tracking)

    def to_dict(self) -> dict[str, Any]:
        """Convert order to dictionary for API responses."""
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "name": self.name,
            "email": self.email,
            "total": float(self.total.amount) if self.total is not None else None,
            "currency": self.currency,
            "financialStatus": self.financial_status.value,
            "fulfillmentStatus": self.fulfillment_status.value,
            "customer": self.customer.to_dict() if self.customer else None,
            "lineItems": [item.to_dict() for item in self.line_items],
            "createdAt": self.created_at.isoformat(),
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
            "tracking": self.tracking.to_dict() if self.tracking else None,
            "assignedAgent": self.assigned_agent,
            "assignedBy": self.assigned_by,
            "assignedAt": self.assigned_at.isoformat() if self.assigned_at else None,
            "assignmentVersion": self.assignment_version,
        }
