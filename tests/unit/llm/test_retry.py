"""
Unit tests for RetryExecutor.

The sleep function is injected so backoff delays are observed without
actually waiting.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from parley.errors import BackendError, RequestFailedError
from parley.llm.retry import RetryExecutor, compute_delay_ms


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def executor(sleep):
    return RetryExecutor(sleep=sleep)


class TestComputeDelay:
    """Tests for the backoff formula."""

    def test_doubles_per_attempt(self):
        assert compute_delay_ms(1) == 2000
        assert compute_delay_ms(2) == 4000
        assert compute_delay_ms(3) == 8000

    def test_rejects_attempt_zero(self):
        with pytest.raises(ValueError):
            compute_delay_ms(0)


class TestExecute:
    """Tests for execute()."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, executor, sleep):
        operation = AsyncMock(return_value="ok")
        on_retry = MagicMock()

        result = await executor.execute(operation, attempts=3, on_retry=on_retry)

        assert result == "ok"
        assert operation.call_count == 1
        on_retry.assert_not_called()
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_fails_twice_then_succeeds(self, executor, sleep):
        first, second = BackendError("boom 1"), BackendError("boom 2")
        operation = AsyncMock(side_effect=[first, second, "ok"])
        on_retry = MagicMock()

        result = await executor.execute(operation, attempts=3, on_retry=on_retry)

        assert result == "ok"
        assert operation.call_count == 3
        assert on_retry.call_count == 2
        assert on_retry.call_args_list[0].args == (1, first, 2000)
        assert on_retry.call_args_list[1].args == (2, second, 4000)
        assert [c.args[0] for c in sleep.call_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_always_failing_raises_request_failed(self, executor, sleep):
        last = BackendError("still down")
        operation = AsyncMock(side_effect=[BackendError("down"), last])

        with pytest.raises(RequestFailedError) as exc_info:
            await executor.execute(operation, attempts=2)

        assert operation.call_count == 2
        assert exc_info.value.attempts == 2
        assert exc_info.value.cause is last
        assert exc_info.value.__cause__ is last
        # No wait after the final attempt
        assert sleep.call_count == 1

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, executor, sleep):
        operation = AsyncMock(side_effect=BackendError("down"))

        with pytest.raises(RequestFailedError):
            await executor.execute(operation, attempts=1)

        assert operation.call_count == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_backend_error_propagates_immediately(self, executor, sleep):
        operation = AsyncMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            await executor.execute(operation, attempts=3)

        assert operation.call_count == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_custom_retry_on(self, sleep):
        executor = RetryExecutor(sleep=sleep, retry_on=(ConnectionError,))
        operation = AsyncMock(side_effect=[ConnectionError("reset"), "ok"])

        assert await executor.execute(operation, attempts=2) == "ok"

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self, executor):
        with pytest.raises(ValueError, match="attempts"):
            await executor.execute(AsyncMock(), attempts=0)
