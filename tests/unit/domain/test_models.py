from datetime import UTC, datetime
from decimal import Decimal

import pytest

from agentos.domain.models import (
    Agent,
    Customer,
    FinancialStatus,
    FulfillmentStatus,
    LineItem,
    Order,
    TrackingInfo,
)
from agentos.domain.value_objects import Money


class TestMoney:
    def test_rounds_half_up_to_cents(self):
        """Debe redondear a 2 decimales con ROUND_HALF_UP."""
        assert Money(Decimal("10.425")).amount == Decimal("10.43")
        assert Money(Decimal("10.424")).amount == Decimal("10.42")

    def test_multiplication_rounds_result(self):
        assert (Money(Decimal("149.00")) * Decimal("0.07")).amount == Decimal("10.43")

    def test_rejects_negative_and_non_finite_amounts(self):
        with pytest.raises(ValueError):
            Money(Decimal("-1"))
        with pytest.raises(ValueError):
            Money(Decimal("NaN"))

    def test_rejects_invalid_currency(self):
        with pytest.raises(ValueError):
            Money(Decimal("1"), currency="RINGGIT")

    def test_add_requires_same_currency(self):
        assert (Money(Decimal("1.10"), "MYR") + Money(Decimal("2.20"), "MYR")).amount == Decimal("3.30")
        with pytest.raises(ValueError):
            Money(Decimal("1"), "MYR") + Money(Decimal("1"), "USD")

    def test_currency_is_upper_cased(self):
        assert Money(Decimal("1"), "myr").currency == "MYR"


class TestOrder:
    @pytest.fixture
    def order(self):
        return Order(
            id="1001",
            total=Money(Decimal("149.00")),
            line_items=[LineItem(product_id="8001", title="Kurung", quantity=2, unit_price=Money(Decimal("74.50")))],
            assigned_agent="AGT-001",
            assigned_by="admin",
            assigned_at=datetime(2025, 8, 1, tzinfo=UTC),
            assignment_version=2,
        )

    def test_requires_id(self):
        with pytest.raises(ValueError):
            Order(id="", total=None)

    def test_total_currency_must_match_order_currency(self):
        with pytest.raises(ValueError):
            Order(id="1", total=Money(Decimal("1"), "USD"), currency="MYR")

    def test_line_item_quantity_must_be_positive(self):
        with pytest.raises(ValueError):
            LineItem(product_id="1", title="x", quantity=0, unit_price=Money(Decimal("1")))

    def test_product_key_prefers_sku(self):
        item = LineItem(product_id="8001", title="x", quantity=1, unit_price=Money(Decimal("1")), sku="SKU-1")
        assert item.product_key == "SKU-1"
        assert item.line_total.amount == Decimal("1.00")

    def test_with_shopify_data_keeps_assignment(self, order):
        """Debe conservar la asignación local al refrescar datos de Shopify."""
        incoming = Order(id="1001", total=Money(Decimal("200.00")), financial_status=FinancialStatus.PAID)

        merged = order.with_shopify_data(incoming)

        assert merged.total.amount == Decimal("200.00")
        assert merged.financial_status == FinancialStatus.PAID
        assert merged.assigned_agent == "AGT-001"
        assert merged.assignment_version == 2

    def test_mark_paid_and_fulfilled(self, order):
        tracking = TrackingInfo(number="MY123", company="PosLaju")

        completed = order.mark_paid().mark_fulfilled(tracking)

        assert completed.is_completed
        assert completed.paid_at is not None
        assert completed.tracking == tracking
        # el original no cambia
        assert order.financial_status == FinancialStatus.PENDING

    def test_to_dict_uses_camel_case(self, order):
        data = order.to_dict()

        assert data["total"] == 149.0
        assert data["assignedAgent"] == "AGT-001"
        assert data["assignmentVersion"] == 2
        assert data["lineItems"][0]["quantity"] == 2
        assert data["fulfillmentStatus"] == FulfillmentStatus.UNFULFILLED.value

    @pytest.mark.parametrize(
        "raw, expected",
        [(None, FinancialStatus.PENDING), ("PAID", FinancialStatus.PAID), ("weird", FinancialStatus.PENDING)],
    )
    def test_financial_status_from_shopify(self, raw, expected):
        assert FinancialStatus.from_shopify(raw) == expected


class TestAgentAndCustomer:
    def test_agent_requires_id_and_name(self):
        with pytest.raises(ValueError):
            Agent(id=" ", name="x")
        with pytest.raises(ValueError):
            Agent(id="AGT-1", name="")

    def test_customer_full_name_and_email_validation(self):
        assert Customer(id="1", first_name="Jay", last_name="Decade").full_name == "Jay Decade"
        assert Customer(id="2").full_name == "Unknown"
        with pytest.raises(ValueError):
            Customer(id="3", email="not-an-email")
