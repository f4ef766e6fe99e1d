import asyncio
from unittest.mock import AsyncMock

import pytest

from agentos.utils.error_handler import UpstreamError, ValidationException
from agentos.utils.order_lock import LockAcquisitionError, OrderLock
from agentos.utils.retry_handler import RetryHandler, RetryPolicy


class TestRetryPolicy:
    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=False)

        assert [policy.calculate_delay(attempt) for attempt in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_retry_after_wins(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=60.0, jitter=False)
        error = UpstreamError("slow down", api_response_code=429, rate_limited=True, retry_after=7)

        assert policy.calculate_delay(1, error) == 7.0

    def test_should_retry_follows_exception_flag(self):
        policy = RetryPolicy(max_attempts=3)

        assert policy.should_retry(UpstreamError("down", api_response_code=503), 1)
        assert not policy.should_retry(UpstreamError("bad", api_response_code=400), 1)
        assert not policy.should_retry(ValidationException("bad", field="x"), 1)
        assert not policy.should_retry(UpstreamError("down", api_response_code=503), 3)

    def test_plain_exceptions_need_opt_in(self):
        policy = RetryPolicy(retry_on=[ConnectionError])

        assert policy.should_retry(ConnectionError(), 1)
        assert not policy.should_retry(KeyError(), 1)


class TestRetryHandler:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failure(self):
        func = AsyncMock(side_effect=[UpstreamError("down", api_response_code=500), "ok"])
        handler = RetryHandler("test", RetryPolicy(max_attempts=3, base_delay=0, jitter=False))

        assert await handler.execute(func) == "ok"
        assert handler.get_metrics()["total_retries"] == 1

    @pytest.mark.asyncio
    async def test_gives_up_and_reraises(self):
        func = AsyncMock(side_effect=UpstreamError("down", api_response_code=500))
        handler = RetryHandler("test", RetryPolicy(max_attempts=2, base_delay=0, jitter=False))

        with pytest.raises(UpstreamError):
            await handler.execute(func)
        assert func.await_count == 2


class TestOrderLock:
    @pytest.mark.asyncio
    async def test_gid_and_numeric_ids_share_lock(self):
        async with OrderLock("gid://shopify/Order/123"):
            assert OrderLock(123).locked

    @pytest.mark.asyncio
    async def test_serializes_same_order(self):
        events = []

        async def worker(name):
            async with OrderLock("1"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        """Debe fallar como conflicto reintentable (409) si el lock no se libera a tiempo."""
        async with OrderLock("2"):
            with pytest.raises(LockAcquisitionError) as exc_info:
                async with OrderLock("2", timeout_seconds=0.01):
                    pass
            assert OrderLock.registered() == 1

        assert exc_info.value.status_code == 409
        assert exc_info.value.is_retryable is True
        assert exc_info.value.details["order_id"] == "2"
        assert OrderLock.registered() == 0

    @pytest.mark.asyncio
    async def test_registry_is_emptied_after_release(self):
        """Debe eliminar la entrada del pedido cuando nadie sostiene ni espera el lock."""
        for order_id in range(1000):
            async with OrderLock(str(order_id)):
                pass

        assert OrderLock.registered() == 0

    @pytest.mark.asyncio
    async def test_entry_survives_while_waiters_remain(self):
        release = asyncio.Event()

        async def holder():
            async with OrderLock("7"):
                await release.wait()

        async def waiter():
            async with OrderLock("7"):
                pass

        tasks = [asyncio.create_task(holder()), asyncio.create_task(waiter())]
        await asyncio.sleep(0.01)
        assert OrderLock.registered() == 1

        release.set()
        await asyncio.gather(*tasks)

        assert OrderLock.registered() == 0

    @pytest.mark.asyncio
    async def test_released_on_exception(self):
        with pytest.raises(RuntimeError):
            async with OrderLock("3"):
                raise RuntimeError("boom")

        assert not OrderLock("3").locked
