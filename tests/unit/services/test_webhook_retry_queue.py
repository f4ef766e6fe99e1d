import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from agentos.services.webhook_handler import WebhookEvent
from agentos.services.webhook_retry_queue import WebhookRetryQueue
from agentos.utils.error_handler import NotFoundError, UpstreamError, ValidationException
from agentos.utils.retry_handler import RetryPolicy


def make_event(attempts: int = 1) -> WebhookEvent:
    event = WebhookEvent(topic="orders/fulfilled", body=b"{}", webhook_id="wh-retry", payload={})
    event.attempts = attempts
    return event


def retryable_error() -> NotFoundError:
    return NotFoundError("Order 1 not found", resource="order", resource_id="1", is_retryable=True)


@pytest.fixture
def policy():
    return RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.05, jitter=False)


class TestWebhookRetryQueue:
    @pytest.mark.asyncio
    async def test_retryable_error_is_queued(self, policy):
        queue = WebhookRetryQueue(AsyncMock(), policy)

        queued = await queue.enqueue(make_event(), retryable_error())

        assert queued is True
        assert queue.pending_count == 1
        assert queue.snapshot()["pendingCount"] == 1

    @pytest.mark.asyncio
    async def test_non_retryable_error_goes_to_dead_letters(self, policy):
        queue = WebhookRetryQueue(AsyncMock(), policy)

        queued = await queue.enqueue(make_event(), ValidationException("bad payload", field="body"))

        assert queued is False
        assert queue.pending_count == 0
        assert len(queue.dead_letters) == 1
        assert queue.dead_letters[0].error.startswith("ValidationException")

    @pytest.mark.asyncio
    async def test_exhausted_attempts_go_to_dead_letters(self, policy):
        queue = WebhookRetryQueue(AsyncMock(), policy)

        queued = await queue.enqueue(make_event(attempts=3), UpstreamError("boom", api_response_code=503))

        assert queued is False
        assert queue.snapshot()["deadLetterCount"] == 1

    @pytest.mark.asyncio
    async def test_process_due_redispatches(self, policy):
        dispatcher = AsyncMock(return_value={"status": "success"})
        queue = WebhookRetryQueue(dispatcher, policy)
        event = make_event()
        await queue.enqueue(event, retryable_error())

        # todavía no vence
        assert await queue.process_due(now=time.monotonic() - 10) == 0

        processed = await queue.process_due(now=time.monotonic() + 1)

        assert processed == 1
        dispatcher.assert_awaited_once_with(event)
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_failed_retry_is_requeued_until_dead(self, policy):
        event = make_event()

        async def failing_dispatch(evt):
            evt.attempts += 1
            raise retryable_error()

        queue = WebhookRetryQueue(failing_dispatch, policy)
        await queue.enqueue(event, retryable_error())

        await queue.process_due(now=time.monotonic() + 1)
        assert event.attempts == 2
        assert queue.pending_count == 1
        assert queue.dead_letters == []

        await queue.process_due(now=time.monotonic() + 1)

        assert queue.pending_count == 0
        assert len(queue.dead_letters) == 1
        assert event.attempts == 3

    @pytest.mark.asyncio
    async def test_worker_start_and_stop(self, policy):
        dispatcher = AsyncMock()
        queue = WebhookRetryQueue(dispatcher, policy, poll_interval=0.01)
        await queue.enqueue(make_event(), retryable_error())

        queue.start()
        assert queue.snapshot()["running"] is True
        await asyncio.sleep(0.1)
        await queue.stop()

        dispatcher.assert_awaited()
        assert queue.snapshot()["running"] is False
