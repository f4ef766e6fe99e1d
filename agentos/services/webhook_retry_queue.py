"""
Cola de reintentos para webhooks cuyo procesamiento falló.

Los eventos se reintentan en segundo plano con backoff exponencial según
``RetryPolicy``. Los que agotan los intentos, o fallan con un error no
reintentable, pasan a la lista de dead letters. La cola vive en memoria.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from agentos.services.webhook_handler import WebhookEvent
from agentos.utils.retry_handler import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class RetryItem:
    event: WebhookEvent
    next_attempt_at: float
    last_error: str

    def to_dict(self, now: float) -> Dict[str, Any]:
        return {
            **self.event.to_dict(),
            "nextAttemptInSeconds": round(max(self.next_attempt_at - now, 0), 2),
            "lastError": self.last_error,
        }


@dataclass
class DeadLetter:
    event: WebhookEvent
    error: str
    failed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {**self.event.to_dict(), "error": self.error, "failedAt": self.failed_at.isoformat()}


class WebhookRetryQueue:
    """
    Cola de reintentos con worker asíncrono.

    Args:
        dispatcher: Corrutina que reprocesa un evento (WebhookProcessor.dispatch)
        policy: Política de reintentos (intentos máximos y backoff)
        poll_interval: Segundos entre revisiones de la cola
        max_dead_letters: Tamaño máximo de la lista de dead letters
    """

    def __init__(
        self,
        dispatcher: Callable[[WebhookEvent], Awaitable[Any]],
        policy: Optional[RetryPolicy] = None,
        poll_interval: float = 1.0,
        max_dead_letters: int = 500,
    ):
        self.dispatcher = dispatcher
        self.policy = policy or RetryPolicy(max_attempts=5, base_delay=2.0, max_delay=300.0)
        self.poll_interval = poll_interval
        self.max_dead_letters = max_dead_letters

        self._pending: List[RetryItem] = []
        self._dead_letters: List[DeadLetter] = []
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def dead_letters(self) -> List[DeadLetter]:
        return list(self._dead_letters)

    async def enqueue(self, event: WebhookEvent, error: Exception) -> bool:
        """
        Agenda un nuevo intento para el evento.

        Returns:
            bool: True si quedó en cola, False si pasó a dead letters
        """
        error_text = f"{type(error).__name__}: {error}"
        event.last_error = error_text

        if not self.policy.should_retry(error, event.attempts):
            await self._add_dead_letter(event, error_text)
            return False

        delay = self.policy.calculate_delay(event.attempts, error)
        async with self._lock:
            self._pending.append(RetryItem(event=event, next_attempt_at=time.monotonic() + delay, last_error=error_text))

        logger.info(
            f"🔄 Webhook {event.topic} (ID: {event.webhook_id}) reintentará en {delay:.1f}s "
            f"- intento {event.attempts + 1}/{self.policy.max_attempts}"
        )
        return True

    async def _add_dead_letter(self, event: WebhookEvent, error_text: str) -> None:
        async with self._lock:
            self._dead_letters.append(DeadLetter(event=event, error=error_text, failed_at=datetime.now(UTC)))
            if len(self._dead_letters) > self.max_dead_letters:
                self._dead_letters.pop(0)

        logger.error(
            f"💀 Webhook {event.topic} (ID: {event.webhook_id}) descartado tras {event.attempts} intentos: {error_text}"
        )

    async def process_due(self, now: Optional[float] = None) -> int:
        """
        Reprocesa los eventos cuyo momento de reintento ya llegó.

        Returns:
            int: Cantidad de eventos procesados (con éxito o no)
        """
        now = time.monotonic() if now is None else now
        async with self._lock:
            due = [item for item in self._pending if item.next_attempt_at <= now]
            self._pending = [item for item in self._pending if item.next_attempt_at > now]

        for item in due:
            try:
                await self.dispatcher(item.event)
                logger.info(f"✅ Webhook {item.event.topic} (ID: {item.event.webhook_id}) procesado en reintento")
            except Exception as e:
                logger.warning(f"⚠️ Reintento fallido de webhook {item.event.topic}: {e}")
                await self.enqueue(item.event, e)

        return len(due)

    async def _run(self) -> None:
        logger.info("🚀 Worker de reintentos de webhooks iniciado")
        while not self._stopping.is_set():
            await self.process_due()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Worker de reintentos de webhooks detenido")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None

        if self._pending:
            logger.warning(f"⚠️ {len(self._pending)} webhooks pendientes de reintento descartados al apagar")

    def snapshot(self) -> Dict[str, Any]:
        now = time.monotonic()
        return {
            "pending": [item.to_dict(now) for item in self._pending],
            "deadLetters": [letter.to_dict() for letter in self._dead_letters],
            "pendingCount": len(self._pending),
            "deadLetterCount": len(self._dead_letters),
            "maxAttempts": self.policy.max_attempts,
            "running": self._task is not None and not self._task.done(),
        }
