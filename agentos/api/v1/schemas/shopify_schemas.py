"""
Modelos Pydantic para payloads de la API REST de Shopify.

Este módulo define los schemas de pedidos, clientes, productos y
fulfillments tal como los envía Shopify (REST Admin API y webhooks),
y su conversión a los modelos de dominio.
"""

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from agentos.domain.models import Customer, FinancialStatus, FulfillmentStatus, LineItem, Order, TrackingInfo
from agentos.domain.value_objects import Money
from agentos.utils.error_handler import InvalidOrderError


def _to_str_id(v):
    """Shopify envía IDs numéricos; internamente se manejan como string."""
    if v is None:
        return None
    return str(v)


def _parse_decimal(value: Any, field: str, order_id: Optional[str] = None) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidOrderError(f"Monto inválido en '{field}': {value!r}", order_id=order_id, field=field) from e
    if not amount.is_finite():
        raise InvalidOrderError(f"Monto inválido en '{field}': {value!r}", order_id=order_id, field=field)
    return amount


class ShopifyCustomerPayload(BaseModel):
    """Modelo para cliente de Shopify."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    orders_count: int = 0
    total_spent: Optional[str] = None
    created_at: Optional[datetime] = None

    normalize_id = field_validator("id", mode="before")(_to_str_id)

    @field_validator("total_spent", mode="before")
    @classmethod
    def validate_total_spent(cls, v):
        """Convierte montos numéricos a string."""
        if v is None:
            return None
        return str(v)

    def to_domain(self) -> Customer:
        return Customer(
            id=self.id,
            email=self.email or None,
            first_name=self.first_name or "",
            last_name=self.last_name or "",
            phone=self.phone,
            orders_count=self.orders_count or 0,
            total_spent=Decimal(self.total_spent) if self.total_spent else Decimal("0"),
            created_at=self.created_at or datetime.now(UTC),
        )


class ShopifyLineItemPayload(BaseModel):
    """Modelo para línea de pedido."""

    id: Optional[str] = None
    product_id: Optional[str] = None
    variant_id: Optional[str] = None
    title: str = ""
    quantity: int = 1
    price: str = "0"
    sku: Optional[str] = None
    vendor: Optional[str] = None

    normalize_ids = field_validator("id", "product_id", "variant_id", mode="before")(_to_str_id)

    @field_validator("price", mode="before")
    @classmethod
    def validate_price(cls, v):
        """Valida y convierte precios a string."""
        if v is None:
            return "0"
        return str(v)

    @field_validator("sku", mode="before")
    @classmethod
    def blank_sku_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ShopifyFulfillmentPayload(BaseModel):
    """Modelo para fulfillment (envío) de un pedido."""

    id: Optional[str] = None
    order_id: Optional[str] = None
    status: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_company: Optional[str] = None
    tracking_url: Optional[str] = None
    created_at: Optional[datetime] = None

    normalize_ids = field_validator("id", "order_id", mode="before")(_to_str_id)

    def to_tracking(self) -> TrackingInfo:
        return TrackingInfo(
            number=self.tracking_number,
            company=self.tracking_company,
            url=self.tracking_url,
            fulfilled_at=self.created_at or datetime.now(UTC),
        )


class ShopifyOrderPayload(BaseModel):
    """Modelo para pedido de Shopify (REST y webhooks orders/*)."""

    id: str
    order_number: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    total_price: Optional[str] = None
    currency: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    created_at: Optional[datetime] = None
    customer: Optional[ShopifyCustomerPayload] = None
    line_items: List[ShopifyLineItemPayload] = Field(default_factory=list)
    fulfillments: List[ShopifyFulfillmentPayload] = Field(default_factory=list)

    normalize_id = field_validator("id", mode="before")(_to_str_id)

    @field_validator("total_price", mode="before")
    @classmethod
    def validate_total_price(cls, v):
        if v is None:
            return None
        return str(v)

    def to_domain(self, default_currency: str = "MYR") -> Order:
        """
        Convierte el payload a modelo de dominio.

        Raises:
            InvalidOrderError: Si el total o algún precio es inválido o negativo
        """
        currency = (self.currency or default_currency).upper()

        total_amount = _parse_decimal(self.total_price, "total_price", self.id)
        if total_amount is not None and total_amount < 0:
            raise InvalidOrderError(
                f"Order {self.id} has a negative total: {total_amount}",
                order_id=self.id,
                invalid_value=total_amount,
            )
        total = Money(amount=total_amount, currency=currency) if total_amount is not None else None

        line_items = []
        for item in self.line_items:
            price = _parse_decimal(item.price, "line_items.price", self.id) or Decimal("0")
            if price < 0 or item.quantity <= 0:
                raise InvalidOrderError(
                    f"Order {self.id} has an invalid line item: {item.title!r}",
                    order_id=self.id,
                    field="line_items",
                )
            line_items.append(
                LineItem(
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    title=item.title,
                    quantity=item.quantity,
                    unit_price=Money(amount=price, currency=currency),
                    sku=item.sku,
                    vendor=item.vendor,
                )
            )

        fulfillment_status = FulfillmentStatus.from_shopify(self.fulfillment_status)
        tracking = self.fulfillments[0].to_tracking() if self.fulfillments else None

        return Order(
            id=self.id,
            order_number=self.order_number,
            name=self.name,
            email=self.email,
            total=total,
            currency=currency,
            financial_status=FinancialStatus.from_shopify(self.financial_status),
            fulfillment_status=fulfillment_status,
            line_items=line_items,
            customer=self.customer.to_domain() if self.customer else None,
            created_at=self.created_at or datetime.now(UTC),
            tracking=tracking,
        )


class ShopifyVariantPayload(BaseModel):
    """Modelo para variante de producto."""

    id: Optional[str] = None
    title: Optional[str] = None
    price: Optional[str] = None
    sku: Optional[str] = None
    inventory_quantity: Optional[int] = None

    normalize_id = field_validator("id", mode="before")(_to_str_id)

    @field_validator("price", mode="before")
    @classmethod
    def validate_price(cls, v):
        if v is None:
            return None
        return str(v)


class ShopifyProductPayload(BaseModel):
    """Modelo para producto de Shopify."""

    id: str
    title: str
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    handle: Optional[str] = None
    status: Optional[str] = None
    variants: List[ShopifyVariantPayload] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    normalize_id = field_validator("id", mode="before")(_to_str_id)

    def to_dict(self) -> dict:
        """Formato expuesto al dashboard."""
        return {
            "id": self.id,
            "title": self.title,
            "vendor": self.vendor,
            "productType": self.product_type,
            "handle": self.handle,
            "status": self.status,
            "variants": [
                {
                    "id": variant.id,
                    "title": variant.title,
                    "price": float(variant.price) if variant.price else 0.0,
                    "sku": variant.sku,
                    "inventoryQuantity": variant.inventory_quantity,
                }
                for variant in self.variants
            ],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
