from decimal import Decimal

import pytest

from agentos.api.v1.schemas.shopify_schemas import ShopifyFulfillmentPayload, ShopifyOrderPayload
from agentos.domain.models import FinancialStatus, FulfillmentStatus
from agentos.utils.error_handler import InvalidOrderError


class TestShopifyOrderPayload:
    def test_to_domain(self, shopify_order_payload):
        """Debe normalizar IDs numéricos a string y convertir montos a Money."""
        order = ShopifyOrderPayload.model_validate(shopify_order_payload).to_domain()

        assert order.id == "6940416376922"
        assert order.total.amount == Decimal("149.00")
        assert order.financial_status == FinancialStatus.PENDING
        assert order.fulfillment_status == FulfillmentStatus.UNFULFILLED
        assert order.line_items[0].product_id == "8001"
        assert order.line_items[0].product_key == "BATIK-001"
        assert order.customer.id == "7001122"
        assert order.created_at.utcoffset().total_seconds() == 8 * 3600

    def test_missing_currency_uses_default(self, shopify_order_payload):
        shopify_order_payload.pop("currency")

        assert ShopifyOrderPayload.model_validate(shopify_order_payload).to_domain("usd").currency == "USD"

    def test_missing_total_is_kept_as_none(self, shopify_order_payload):
        shopify_order_payload["total_price"] = None

        assert ShopifyOrderPayload.model_validate(shopify_order_payload).to_domain().total is None

    @pytest.mark.parametrize("total", ["-1.00", "abc", "NaN"])
    def test_invalid_total(self, shopify_order_payload, total):
        shopify_order_payload["total_price"] = total

        with pytest.raises(InvalidOrderError):
            ShopifyOrderPayload.model_validate(shopify_order_payload).to_domain()

    def test_blank_sku_is_none(self, shopify_order_payload):
        shopify_order_payload["line_items"][0]["sku"] = "  "

        order = ShopifyOrderPayload.model_validate(shopify_order_payload).to_domain()

        assert order.line_items[0].product_key == "8001"

    def test_fulfillments_become_tracking(self, shopify_order_payload):
        shopify_order_payload["fulfillment_status"] = "fulfilled"
        shopify_order_payload["fulfillments"] = [{"id": 1, "order_id": 6940416376922, "tracking_number": "EP1"}]

        order = ShopifyOrderPayload.model_validate(shopify_order_payload).to_domain()

        assert order.fulfillment_status == FulfillmentStatus.FULFILLED
        assert order.tracking.number == "EP1"


def test_fulfillment_payload_normalizes_order_id():
    fulfillment = ShopifyFulfillmentPayload.model_validate({"order_id": 123, "tracking_company": "J&T"})

    assert fulfillment.order_id == "123"
    assert fulfillment.to_tracking().company == "J&T"
