from unittest.mock import AsyncMock

import pytest

from services.retry import backoff_delay, retry_async


def test_backoff_delay_doubles_each_attempt() -> None:
    assert [backoff_delay(attempt, 1.0) for attempt in (1, 2, 3)] == [1.0, 2.0, 4.0]
    assert backoff_delay(2, 0.5) == 1.0


@pytest.mark.asyncio
async def test_retry_returns_first_success_without_sleeping() -> None:
    sleep = AsyncMock()
    operation = AsyncMock(return_value="ok")

    result = await retry_async(operation, max_attempts=3, base_delay=1, sleep=sleep)

    assert result == "ok"
    operation.assert_awaited_once_with(1)
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_backs_off_between_attempts() -> None:
    sleep = AsyncMock()
    operation = AsyncMock(side_effect=[RuntimeError("first"), RuntimeError("second"), "ok"])

    result = await retry_async(operation, max_attempts=3, base_delay=1, sleep=sleep)

    assert result == "ok"
    assert [call.args[0] for call in operation.await_args_list] == [1, 2, 3]
    assert [call.args[0] for call in sleep.await_args_list] == [1, 2]


@pytest.mark.asyncio
async def test_retry_reraises_last_error_when_exhausted() -> None:
    sleep = AsyncMock()
    operation = AsyncMock(side_effect=[RuntimeError("first"), RuntimeError("second"), RuntimeError("third")])

    with pytest.raises(RuntimeError, match="third"):
        await retry_async(operation, max_attempts=3, base_delay=1, sleep=sleep)

    assert operation.await_count == 3
    # no wait after the final attempt
    assert [call.args[0] for call in sleep.await_args_list] == [1, 2]


@pytest.mark.asyncio
async def test_retry_stops_on_non_retryable_error() -> None:
    sleep = AsyncMock()
    operation = AsyncMock(side_effect=KeyError("fatal"))

    with pytest.raises(KeyError):
        await retry_async(
            operation,
            max_attempts=3,
            base_delay=1,
            is_retryable=lambda exc: isinstance(exc, RuntimeError),
            sleep=sleep,
        )

    operation.assert_awaited_once()
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_rejects_non_positive_attempts() -> None:
    with pytest.raises(ValueError):
        await retry_async(AsyncMock(), max_attempts=0, base_delay=1)
