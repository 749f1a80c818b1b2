"""Tests for ErrorHandler and the retry policy."""

import pytest

from hotboard.core.infrastructure.retry import (
    BackoffStrategy,
    RetryExhaustedError,
    RetryPolicy,
    execute_with_retry,
)
from hotboard.modules.sources.application.error_handler import ErrorHandler
from hotboard.modules.sources.domain.exceptions import (
    ConfigError,
    ErrorKind,
    NetworkError,
    ParseError,
)
from tests.conftest import FakeClock, no_sleep

pytestmark = pytest.mark.anyio


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class Flaky:
    """前 failures 次抛出 error，之后返回 value。"""

    def __init__(self, failures: int, error: Exception, value=None):
        self.failures = failures
        self.error = error
        self.value = value if value is not None else ["ok"]
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


def _network(status: int | None = None) -> NetworkError:
    return NetworkError("alpha", "https://alpha.test", status_code=status)


async def test_wrap_retries_until_success(clock: FakeClock) -> None:
    handler = ErrorHandler(clock=clock, sleep=no_sleep)
    operation = Flaky(failures=2, error=_network())

    result = await handler.wrap("alpha", operation, fallback=[], retry_count=3)

    assert result == ["ok"]
    assert operation.calls == 3
    assert handler.last_attempts("alpha") == 3
    assert handler.get_stats("alpha") == {}


async def test_wrap_returns_fallback_when_exhausted(clock: FakeClock) -> None:
    handler = ErrorHandler(clock=clock, sleep=no_sleep)
    operation = Flaky(failures=10, error=_network(502))

    result = await handler.wrap("alpha", operation, fallback=[], retry_count=2)

    assert result == []
    assert operation.calls == 3
    stats = handler.get_stats("alpha")["alpha"]
    assert stats.count == 1
    assert stats.last_error_ms == clock()
    assert stats.error_kinds == {ErrorKind.NETWORK: 1}
    assert "HTTP 502" in stats.last_message


async def test_client_errors_are_not_retried(clock: FakeClock) -> None:
    handler = ErrorHandler(clock=clock, sleep=no_sleep)
    operation = Flaky(failures=10, error=_network(404))

    with pytest.raises(NetworkError):
        await handler.wrap_or_raise("alpha", operation, retry_count=3)

    assert operation.calls == 1
    assert handler.last_attempts("alpha") == 1


async def test_parse_errors_are_not_retried(clock: FakeClock) -> None:
    handler = ErrorHandler(clock=clock, sleep=no_sleep)
    operation = Flaky(failures=10, error=ParseError("alpha", "bad shape"))

    assert await handler.wrap("alpha", operation, fallback=None, retry_count=3) is None
    assert operation.calls == 1


async def test_unknown_errors_are_retried(clock: FakeClock) -> None:
    handler = ErrorHandler(clock=clock, sleep=no_sleep)
    operation = Flaky(failures=1, error=RuntimeError("transient"))

    assert await handler.wrap_or_raise("alpha", operation, retry_count=1) == ["ok"]
    assert operation.calls == 2


async def test_wrap_or_raise_reraises_original_error(clock: FakeClock) -> None:
    handler = ErrorHandler(clock=clock, sleep=no_sleep)
    error = ConfigError("alpha", "missing url")

    async def broken():
        raise error

    with pytest.raises(ConfigError) as exc_info:
        await handler.wrap_or_raise("alpha", broken)

    assert exc_info.value is error
    assert handler.get_stats("alpha")["alpha"].error_kinds == {ErrorKind.CONFIG: 1}


async def test_stats_are_grouped_by_kind_and_source(clock: FakeClock) -> None:
    handler = ErrorHandler(clock=clock)
    handler.record_error("alpha", _network())
    handler.record_error("alpha", ParseError("alpha", "x"))
    handler.record_error("alpha", ValueError("boom"))
    handler.record_error("beta", _network())

    stats = handler.get_stats()
    assert stats["alpha"].count == 3
    assert stats["alpha"].error_kinds == {
        ErrorKind.NETWORK: 1,
        ErrorKind.PARSE: 1,
        ErrorKind.UNKNOWN: 1,
    }
    assert stats["beta"].count == 1

    # 返回的是副本
    stats["alpha"].count = 99
    assert handler.get_stats("alpha")["alpha"].count == 3

    handler.clear_stats("alpha")
    assert set(handler.get_stats()) == {"beta"}
    handler.clear_stats()
    assert handler.get_stats() == {}


async def test_backoff_delays_follow_strategy(clock: FakeClock) -> None:
    sleep = RecordingSleep()
    handler = ErrorHandler(
        RetryPolicy(base_delay_ms=100, strategy=BackoffStrategy.EXPONENTIAL),
        clock=clock,
        sleep=sleep,
    )
    operation = Flaky(failures=3, error=_network())

    await handler.wrap("alpha", operation, fallback=[], retry_count=3)

    assert sleep.delays == [0.1, 0.2, 0.4]


async def test_per_call_overrides_replace_policy(clock: FakeClock) -> None:
    sleep = RecordingSleep()
    handler = ErrorHandler(RetryPolicy(retry_count=5, base_delay_ms=1000), clock=clock, sleep=sleep)
    operation = Flaky(failures=10, error=_network())

    await handler.wrap(
        "alpha", operation, fallback=[], retry_count=2, retry_delay_ms=50, backoff="linear"
    )

    assert operation.calls == 3
    assert sleep.delays == [0.05, 0.1]


def test_policy_delay_calculation() -> None:
    fixed = RetryPolicy(base_delay_ms=200)
    linear = RetryPolicy(base_delay_ms=200, strategy=BackoffStrategy.LINEAR)
    exponential = RetryPolicy(
        base_delay_ms=1000, max_delay_ms=5000, strategy=BackoffStrategy.EXPONENTIAL
    )

    assert [fixed.delay_ms(i) for i in range(3)] == [200, 200, 200]
    assert [linear.delay_ms(i) for i in range(3)] == [200, 400, 600]
    assert [exponential.delay_ms(i) for i in range(4)] == [1000, 2000, 4000, 5000]


async def test_execute_with_retry_reports_attempts() -> None:
    operation = Flaky(failures=10, error=_network())

    with pytest.raises(RetryExhaustedError) as exc_info:
        await execute_with_retry(operation, RetryPolicy(retry_count=2), sleep=no_sleep)

    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, NetworkError)
