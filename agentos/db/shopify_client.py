"""
Shopify REST Admin API client.

Wraps the REST endpoints used by the back-office (orders, products,
customers, webhooks) with bounded concurrency, an explicit timeout and
retries for idempotent GET requests.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar
from urllib.parse import parse_qs, urlparse

import aiohttp
from aiohttp import ClientTimeout

from agentos.api.v1.schemas.shopify_schemas import (
    ShopifyCustomerPayload,
    ShopifyOrderPayload,
    ShopifyProductPayload,
)
from agentos.core.config import Settings, get_settings
from agentos.utils.error_handler import UpstreamError
from agentos.utils.retry_handler import RetryHandler, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_PAGE_LIMIT = 250
DEFAULT_PAGE_LIMIT = 50

_LINK_PATTERN = re.compile(r'<([^>]+)>;\s*rel="([^"]+)"')

_STATUS_MESSAGES = {
    401: "Unauthorized: Please check your Shopify access token",
    403: "Forbidden: Insufficient permissions",
    404: "Resource not found",
    429: "Rate limit exceeded. Please try again later",
}


@dataclass
class ShopifyPage(Generic[T]):
    """One page of a Shopify list endpoint."""

    items: List[T] = field(default_factory=list)
    next_page_info: Optional[str] = None
    previous_page_info: Optional[str] = None

    @property
    def has_next(self) -> bool:
        return self.next_page_info is not None


def clamp_limit(limit: Optional[int]) -> int:
    """Shopify accepts between 1 and 250 items per page."""
    if limit is None:
        return DEFAULT_PAGE_LIMIT
    return max(1, min(int(limit), MAX_PAGE_LIMIT))


def parse_link_header(link_header: Optional[str]) -> Dict[str, str]:
    """
    Extract ``page_info`` cursors from a Shopify ``Link`` header.

    Returns:
        Dict: rel ("next"/"previous") -> page_info
    """
    if not link_header:
        return {}

    cursors = {}
    for url, rel in _LINK_PATTERN.findall(link_header):
        page_info = parse_qs(urlparse(url).query).get("page_info")
        if page_info:
            cursors[rel] = page_info[0]
    return cursors


def format_error(status: int, data: Any, reason: Optional[str] = None) -> str:
    """Readable message for a Shopify error response."""
    if status in _STATUS_MESSAGES:
        return _STATUS_MESSAGES[status]

    if isinstance(data, dict) and data.get("errors"):
        errors = data["errors"]
        if isinstance(errors, list):
            return ", ".join(str(error) for error in errors)
        if isinstance(errors, dict):
            parts = []
            for key, value in errors.items():
                detail = ", ".join(map(str, value)) if isinstance(value, list) else str(value)
                parts.append(f"{key}: {detail}")
            return "; ".join(parts)
        return str(errors)

    return f"HTTP {status}: {reason or 'Unknown error'}"


class ShopifyClient:
    """
    Async client for the Shopify REST Admin API.

    Usage:
        client = ShopifyClient()
        await client.initialize()
        page = await client.get_orders(limit=50)
        await client.close()
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.shopify_admin_base_url
        self.session: Optional[aiohttp.ClientSession] = None

        self._semaphore = asyncio.Semaphore(self.settings.SHOPIFY_MAX_CONCURRENT_REQUESTS)
        self._retry_handler = RetryHandler(
            "shopify_get",
            RetryPolicy(max_attempts=self.settings.SHOPIFY_MAX_RETRIES, base_delay=1.0, max_delay=30.0),
        )

        logger.info(f"Initialized Shopify REST client for {self.settings.SHOPIFY_SHOP_URL}")

    async def initialize(self) -> None:
        """Create the HTTP session."""
        if self.session is not None:
            return

        timeout = ClientTimeout(total=self.settings.SHOPIFY_REQUEST_TIMEOUT, connect=10)
        self.session = aiohttp.ClientSession(
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": self.settings.SHOPIFY_ACCESS_TOKEN,
                "User-Agent": f"AgentOS-Backoffice/{self.settings.APP_VERSION}",
            },
        )
        logger.info("✅ Shopify REST client session created")

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("Shopify REST client closed")

    # ------------------------------------------------------------------
    # Transporte
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Dict[str, str], Any]:
        """Single HTTP round-trip. Returns (status, headers, parsed JSON body)."""
        if self.session is None:
            await self.initialize()

        url = f"{self.base_url}/{path.lstrip('/')}"
        async with self._semaphore:
            async with self.session.request(method, url, params=params, json=json_body) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None
                return response.status, dict(response.headers), data

    async def _request_once(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Any, Dict[str, str]]:
        start = time.time()
        try:
            status, headers, data = await self._send(method, path, params=params, json_body=json_body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"❌ Shopify {method} {path} network error: {e}")
            raise UpstreamError(
                f"Network error: Unable to connect to Shopify ({type(e).__name__}: {e})",
                endpoint=path,
            ) from e

        duration_ms = (time.time() - start) * 1000
        logger.debug(f"Shopify API {method} {path} -> {status} ({duration_ms:.1f}ms)")

        if status >= 400:
            retry_after = None
            if status == 429:
                try:
                    retry_after = int(float(headers.get("Retry-After", "2")))
                except ValueError:
                    retry_after = 2
            message = format_error(status, data)
            logger.warning(f"⚠️ Shopify {method} {path} failed: {status} - {message}")
            raise UpstreamError(
                message,
                api_response_code=status,
                endpoint=path,
                rate_limited=status == 429,
                retry_after=retry_after,
            )

        return data or {}, headers

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Tuple[Any, Dict[str, str]]:
        """GET with retries on network errors, 5xx and 429."""
        return await self._retry_handler.execute(
            self._request_once, "GET", path, params=params, context={"endpoint": path}
        )

    async def _post(self, path: str, json_body: Dict[str, Any]) -> Any:
        """POST without retries."""
        data, _ = await self._request_once("POST", path, json_body=json_body)
        return data

    @staticmethod
    def _list_params(limit: Optional[int], page_info: Optional[str], **filters: Any) -> Dict[str, Any]:
        params: Dict[str, Any] = {"limit": clamp_limit(limit)}
        if page_info:
            # Con page_info Shopify solo admite limit y fields
            params["page_info"] = page_info
            return params
        params.update({key: value for key, value in filters.items() if value is not None})
        return params

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_orders(
        self,
        limit: Optional[int] = DEFAULT_PAGE_LIMIT,
        status: Optional[str] = "any",
        financial_status: Optional[str] = None,
        fulfillment_status: Optional[str] = None,
        page_info: Optional[str] = None,
    ) -> ShopifyPage[ShopifyOrderPayload]:
        params = self._list_params(
            limit,
            page_info,
            status=status,
            financial_status=financial_status,
            fulfillment_status=fulfillment_status,
        )
        data, headers = await self._get("orders.json", params)
        cursors = parse_link_header(headers.get("Link") or headers.get("link"))

        return ShopifyPage(
            items=[ShopifyOrderPayload.model_validate(order) for order in data.get("orders", [])],
            next_page_info=cursors.get("next"),
            previous_page_info=cursors.get("previous"),
        )

    async def get_order(self, order_id: str) -> ShopifyOrderPayload:
        data, _ = await self._get(f"orders/{order_id}.json")
        return ShopifyOrderPayload.model_validate(data["order"])

    async def get_products(
        self,
        limit: Optional[int] = DEFAULT_PAGE_LIMIT,
        status: Optional[str] = "active",
        page_info: Optional[str] = None,
    ) -> ShopifyPage[ShopifyProductPayload]:
        data, headers = await self._get("products.json", self._list_params(limit, page_info, status=status))
        cursors = parse_link_header(headers.get("Link") or headers.get("link"))

        return ShopifyPage(
            items=[ShopifyProductPayload.model_validate(product) for product in data.get("products", [])],
            next_page_info=cursors.get("next"),
            previous_page_info=cursors.get("previous"),
        )

    async def get_customers(
        self,
        limit: Optional[int] = DEFAULT_PAGE_LIMIT,
        page_info: Optional[str] = None,
    ) -> ShopifyPage[ShopifyCustomerPayload]:
        data, headers = await self._get("customers.json", self._list_params(limit, page_info))
        cursors = parse_link_header(headers.get("Link") or headers.get("link"))

        return ShopifyPage(
            items=[ShopifyCustomerPayload.model_validate(customer) for customer in data.get("customers", [])],
            next_page_info=cursors.get("next"),
            previous_page_info=cursors.get("previous"),
        )

    async def get_webhooks(self) -> List[Dict[str, Any]]:
        data, _ = await self._get("webhooks.json")
        return data.get("webhooks", [])

    async def create_webhook(self, topic: str, address: str) -> Dict[str, Any]:
        data = await self._post("webhooks.json", {"webhook": {"topic": topic, "address": address, "format": "json"}})
        webhook = data.get("webhook", {})
        logger.info(f"✅ Shopify webhook registered: {topic} -> {address}")
        return webhook

    async def test_connection(self) -> Dict[str, Any]:
        """
        Fetch shop info to validate credentials.

        Raises:
            UpstreamError: If Shopify is unreachable or rejects the token
        """
        data, _ = await self._get("shop.json")
        shop = data.get("shop", {})
        logger.info(f"✅ Connected to Shopify store: {shop.get('name', 'Unknown')} ({shop.get('currency', 'Unknown')})")
        return shop

    def __repr__(self) -> str:
        return f"ShopifyClient(base_url='{self.base_url}', initialized={self.session is not None})"
