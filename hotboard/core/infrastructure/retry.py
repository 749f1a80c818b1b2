"""Retry / backoff helpers.

所有需要重试的调用点统一使用 execute_with_retry（基于 tenacity），退避策略由 RetryPolicy 决定：
- fixed: 每次等待 base
- linear: base * (attempt + 1)
- exponential: min(base * 2^attempt, max)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    stop_after_attempt,
)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]
RetryPredicate = Callable[[BaseException, int], bool]


class BackoffStrategy(StrEnum):
    """退避策略。"""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """重试策略。

    retry_count 为首次失败后的额外尝试次数，总尝试次数 = retry_count + 1。
    """

    retry_count: int = 0
    base_delay_ms: int = 1000
    max_delay_ms: int = 30_000
    strategy: BackoffStrategy = BackoffStrategy.FIXED

    def delay_ms(self, attempt: int) -> int:
        """第 attempt 次（从 0 开始）失败后的等待时间。"""
        if self.strategy is BackoffStrategy.EXPONENTIAL:
            return min(self.base_delay_ms * 2**attempt, self.max_delay_ms)
        if self.strategy is BackoffStrategy.LINEAR:
            return min(self.base_delay_ms * (attempt + 1), self.max_delay_ms)
        return self.base_delay_ms

    def with_overrides(
        self,
        *,
        retry_count: int | None = None,
        base_delay_ms: int | None = None,
        strategy: BackoffStrategy | str | None = None,
    ) -> RetryPolicy:
        return RetryPolicy(
            retry_count=self.retry_count if retry_count is None else retry_count,
            base_delay_ms=(
                self.base_delay_ms if base_delay_ms is None else base_delay_ms
            ),
            max_delay_ms=self.max_delay_ms,
            strategy=self.strategy if strategy is None else BackoffStrategy(strategy),
        )


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    """成功结果及实际尝试次数。"""

    value: T
    attempts: int


class RetryExhaustedError(Exception):
    """All attempts failed (or a non-retryable error stopped the loop)."""

    def __init__(self, last_error: BaseException, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Failed after {attempts} attempt(s): {last_error}")


def is_retryable(error: BaseException, _attempt: int = 0) -> bool:
    """默认可重试判断。

    异常可以通过 ``retryable`` 属性声明自身是否可重试；未声明的异常
    （超时、运行时错误等）视为临时性故障。
    """
    return bool(getattr(error, "retryable", True))


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    should_retry: RetryPredicate = is_retryable,
    sleep: SleepFunc = asyncio.sleep,
    label: str = "operation",
) -> RetryResult[T]:
    """执行操作，失败时按策略退避重试（tenacity.AsyncRetrying）。

    Raises:
        RetryExhaustedError: 所有尝试均失败，或遇到不可重试错误
    """

    def _retry(state: RetryCallState) -> bool:
        outcome = state.outcome
        if outcome is None or not outcome.failed:
            return False
        error = outcome.exception()
        # 取消等 BaseException 不重试，原样抛出
        return isinstance(error, Exception) and should_retry(
            error, state.attempt_number - 1
        )

    def _wait(state: RetryCallState) -> float:
        return policy.delay_ms(state.attempt_number - 1) / 1000

    def _log_retry(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        delay_ms = state.next_action.sleep * 1000 if state.next_action else 0
        logger.warning(
            f"[{label}] attempt {state.attempt_number}/{policy.retry_count + 1} failed: "
            f"{error}; retrying in {delay_ms:.0f}ms"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.retry_count + 1),
        wait=_wait,
        retry=_retry,
        before_sleep=_log_retry,
        sleep=sleep,
    )

    attempts = 0
    try:
        async for attempt in retrying:
            attempts = attempt.retry_state.attempt_number
            with attempt:
                value = await operation()
    except RetryError as exc:
        error = exc.last_attempt.exception()
        raise RetryExhaustedError(error, attempts) from error
    except Exception as exc:
        # 不可重试的错误由 tenacity 直接抛出
        raise RetryExhaustedError(exc, attempts) from exc

    return RetryResult(value=value, attempts=attempts)
