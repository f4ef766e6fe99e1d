"""
Manejador de webhooks de Shopify.

Cada webhook recorre la máquina de estados:

    RECEIVED -> VERIFIED -> DISPATCHED
    RECEIVED -> REJECTED

La firma HMAC se verifica sobre los bytes crudos del body antes de
interpretar el payload. El procesamiento de negocio corre fuera de la
respuesta HTTP; los fallos se envían a la cola de reintentos.
"""

import base64
import hashlib
import hmac
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from agentos.api.v1.schemas.shopify_schemas import (
    ShopifyCustomerPayload,
    ShopifyFulfillmentPayload,
    ShopifyOrderPayload,
)
from agentos.db.repositories import CustomerRepository, OrderRepository
from agentos.services.commission_engine import CommissionEngine
from agentos.utils.error_handler import (
    AuthenticationError,
    NotFoundError,
    ValidationException,
    log_error,
)
from agentos.utils.order_lock import OrderLock

logger = logging.getLogger(__name__)


class WebhookTopic(str, Enum):
    """Topics de Shopify que el back-office procesa."""

    ORDERS_CREATE = "orders/create"
    ORDERS_UPDATED = "orders/updated"
    ORDERS_PAID = "orders/paid"
    ORDERS_FULFILLED = "orders/fulfilled"
    CUSTOMERS_CREATE = "customers/create"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["WebhookTopic"]:
        """Topic conocido o None (acepta "orders_create" y mayúsculas)."""
        if not value:
            return None
        normalized = value.strip().lower().replace("_", "/")
        try:
            return cls(normalized)
        except ValueError:
            return None


class WebhookState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    REJECTED = "rejected"
    DISPATCHED = "dispatched"


@dataclass
class WebhookEvent:
    """
    Webhook recibido. Transitorio: no se persiste.

    Attributes:
        topic: Topic tal como llegó (path o header X-Shopify-Topic)
        shop_domain: Header X-Shopify-Shop-Domain
        signature: Header X-Shopify-Hmac-Sha256
        webhook_id: Header X-Shopify-Webhook-Id, usado para deduplicar
        body: Bytes crudos del request
        payload: JSON parseado tras la verificación
        state: Estado actual
        attempts: Intentos de despacho realizados
        last_error: Último error de despacho
    """

    topic: str
    body: bytes
    shop_domain: Optional[str] = None
    signature: Optional[str] = None
    webhook_id: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    state: WebhookState = WebhookState.RECEIVED
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def known_topic(self) -> Optional[WebhookTopic]:
        return WebhookTopic.parse(self.topic)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "shopDomain": self.shop_domain,
            "webhookId": self.webhook_id,
            "state": self.state.value,
            "receivedAt": self.received_at.isoformat(),
            "attempts": self.attempts,
            "lastError": self.last_error,
        }


def compute_webhook_signature(body: bytes, secret: str) -> str:
    """base64(HMAC-SHA256(secret, body)), formato del header X-Shopify-Hmac-Sha256."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Verifica la firma HMAC del webhook.

    Sin secreto configurado o sin firma el webhook se rechaza.

    Args:
        body: Body crudo del request
        signature: Valor del header X-Shopify-Hmac-Sha256
        secret: Secreto compartido del webhook

    Returns:
        bool: True si la firma es válida
    """
    if not secret:
        logger.warning("No webhook secret configured, rejecting webhook")
        return False
    if not signature:
        return False

    expected = compute_webhook_signature(body, secret)
    # Comparación segura contra timing attacks
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))


class WebhookProcessor:
    """
    Procesador de webhooks de Shopify.
    """

    def __init__(
        self,
        secret: Optional[str],
        order_repository: OrderRepository,
        customer_repository: CustomerRepository,
        commission_engine: CommissionEngine,
        currency: str = "MYR",
        max_tracked_ids: int = 1000,
    ):
        self.secret = secret
        self.order_repository = order_repository
        self.customer_repository = customer_repository
        self.commission_engine = commission_engine
        self.currency = currency
        self.retry_queue = None

        self._processed_ids: "OrderedDict[str, None]" = OrderedDict()
        self._max_tracked_ids = max_tracked_ids
        self.metrics = {"received": 0, "rejected": 0, "dispatched": 0, "failed": 0, "duplicates": 0}

    def receive(self, body: bytes, headers: Mapping[str, str], path_topic: Optional[str] = None) -> WebhookEvent:
        """
        Verifica un webhook entrante.

        Args:
            body: Body crudo
            headers: Headers del request
            path_topic: Topic derivado de la ruta (tiene prioridad sobre el header)

        Returns:
            WebhookEvent: Evento en estado VERIFIED con el payload parseado

        Raises:
            AuthenticationError: Firma ausente o inválida (estado REJECTED)
            ValidationException: Body no es un objeto JSON
        """
        lowered = {key.lower(): value for key, value in headers.items()}
        event = WebhookEvent(
            topic=path_topic or lowered.get("x-shopify-topic") or "",
            body=body,
            shop_domain=lowered.get("x-shopify-shop-domain"),
            signature=lowered.get("x-shopify-hmac-sha256"),
            webhook_id=lowered.get("x-shopify-webhook-id"),
        )
        self.metrics["received"] += 1

        if not verify_webhook_signature(body, event.signature, self.secret):
            event.state = WebhookState.REJECTED
            self.metrics["rejected"] += 1
            logger.warning(f"🚫 Webhook rechazado: firma inválida - topic: {event.topic}, shop: {event.shop_domain}")
            raise AuthenticationError(
                "Invalid webhook signature",
                details={"topic": event.topic, "shop_domain": event.shop_domain, "state": event.state.value},
            )

        event.state = WebhookState.VERIFIED

        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            raise ValidationException("Invalid JSON payload", field="body", expected_format="JSON object") from e
        if not isinstance(payload, dict):
            raise ValidationException("Invalid JSON payload", field="body", expected_format="JSON object")

        event.payload = payload
        logger.info(f"📨 Webhook verificado: {event.topic} from {event.shop_domain} (ID: {event.webhook_id})")
        return event

    def is_duplicate(self, event: WebhookEvent) -> bool:
        return bool(event.webhook_id) and event.webhook_id in self._processed_ids

    def _mark_processed(self, event: WebhookEvent) -> None:
        if not event.webhook_id:
            return
        self._processed_ids[event.webhook_id] = None
        while len(self._processed_ids) > self._max_tracked_ids:
            self._processed_ids.popitem(last=False)

    async def dispatch(self, event: WebhookEvent) -> Dict[str, Any]:
        """
        Ejecuta la lógica de negocio del webhook según su topic.

        Topics desconocidos se reconocen sin hacer nada.

        Returns:
            Dict: Resultado del procesamiento

        Raises:
            Exception: Cualquier error de negocio (el llamador decide si reintentar)
        """
        if self.is_duplicate(event):
            self.metrics["duplicates"] += 1
            logger.info(f"Webhook {event.webhook_id} already processed, skipping")
            return {"status": "skipped", "reason": "duplicate", "webhook_id": event.webhook_id}

        event.attempts += 1
        start_time = datetime.now(UTC)

        handlers = {
            WebhookTopic.ORDERS_CREATE: self._handle_order_upsert,
            WebhookTopic.ORDERS_UPDATED: self._handle_order_upsert,
            WebhookTopic.ORDERS_PAID: self._handle_order_paid,
            WebhookTopic.ORDERS_FULFILLED: self._handle_order_fulfilled,
            WebhookTopic.CUSTOMERS_CREATE: self._handle_customer_create,
        }

        topic = event.known_topic
        handler = handlers.get(topic) if topic else None
        if handler is None:
            logger.warning(f"No handler found for webhook topic: {event.topic}")
            result = {"action": "ignored", "reason": f"unhandled topic: {event.topic}"}
        else:
            result = await handler(event.payload or {})

        event.state = WebhookState.DISPATCHED
        event.last_error = None
        self._mark_processed(event)
        self.metrics["dispatched"] += 1

        duration = (datetime.now(UTC) - start_time).total_seconds()
        logger.info(f"✅ Webhook procesado en {duration:.2f}s: {event.topic}")
        return {"status": "success", "topic": event.topic, "webhook_id": event.webhook_id, "result": result}

    async def dispatch_or_enqueue(self, event: WebhookEvent) -> None:
        """
        Despacha el evento; si falla, lo registra y lo envía a la cola de reintentos.

        Pensado para correr como BackgroundTask después de responder 200.
        """
        try:
            await self.dispatch(event)
        except Exception as e:
            event.last_error = f"{type(e).__name__}: {e}"
            self.metrics["failed"] += 1
            log_error(e, context={"topic": event.topic, "webhook_id": event.webhook_id, "attempt": event.attempts})
            if self.retry_queue is not None:
                await self.retry_queue.enqueue(event, e)

    # ------------------------------------------------------------------
    # Handlers por topic
    # ------------------------------------------------------------------

    def _order_from_payload(self, payload: Dict[str, Any]):
        return ShopifyOrderPayload.model_validate(payload).to_domain(default_currency=self.currency)

    async def _handle_order_upsert(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """orders/create y orders/updated: registra o actualiza el pedido."""
        order = self._order_from_payload(payload)
        async with OrderLock(order.id):
            stored = await self.order_repository.upsert(order)

        logger.info(f"🛒 Pedido registrado desde webhook: {stored.name or stored.id}")
        return {"action": "order_upserted", "order_id": stored.id, "order_number": stored.order_number}

    async def _handle_order_paid(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """orders/paid: marca el pedido como pagado y recalcula la comisión."""
        order = self._order_from_payload(payload)
        async with OrderLock(order.id):
            stored = await self.order_repository.upsert(order.mark_paid())

        commission = await self.commission_engine.recompute_for_order(stored.id)

        logger.info(f"💳 Pedido pagado: {stored.name or stored.id}")
        return {
            "action": "order_paid",
            "order_id": stored.id,
            "commission": commission.to_dict() if commission else None,
        }

    async def _handle_order_fulfilled(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        orders/fulfilled: marca el pedido como enviado y adjunta el tracking.

        Acepta el payload de pedido (con ``fulfillments``) o un payload de
        fulfillment (con ``order_id``).
        """
        if "order_id" in payload and "line_items" not in payload:
            fulfillment = ShopifyFulfillmentPayload.model_validate(payload)
            order_id = fulfillment.order_id
        else:
            order_payload = ShopifyOrderPayload.model_validate(payload)
            order_id = order_payload.id
            fulfillment = order_payload.fulfillments[0] if order_payload.fulfillments else None

        if not order_id:
            raise ValidationException("Order ID missing in fulfillment webhook", field="order_id")

        async with OrderLock(order_id):
            order = await self.order_repository.get(order_id)
            if order is None:
                # Puede llegar antes que orders/create; se reintenta
                raise NotFoundError(
                    f"Order {order_id} not found",
                    resource="order",
                    resource_id=order_id,
                    is_retryable=True,
                )
            tracking = fulfillment.to_tracking() if fulfillment else None
            stored = await self.order_repository.upsert(order.mark_fulfilled(tracking))

        logger.info(f"📦 Pedido enviado: {stored.name or stored.id} - tracking: {tracking.number if tracking else 'N/A'}")
        return {
            "action": "order_fulfilled",
            "order_id": stored.id,
            "tracking": stored.tracking.to_dict() if stored.tracking else None,
        }

    async def _handle_customer_create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """customers/create: registra el cliente."""
        customer = ShopifyCustomerPayload.model_validate(payload).to_domain()
        await self.customer_repository.upsert(customer)

        logger.info(f"👤 Cliente registrado: {customer.full_name} ({customer.email})")
        return {"action": "customer_created", "customer_id": customer.id}

    def get_metrics(self) -> Dict[str, Any]:
        return {
            **self.metrics,
            "tracked_webhook_ids": len(self._processed_ids),
            "signature_configured": bool(self.secret),
        }
