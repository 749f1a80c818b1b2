"""抓取错误处理：重试 + 分类 + 统计。

适配器抛出的异常都在这里被捕获：
- wrap(): 供“取数即返回”的路径使用，失败时返回 fallback，从不抛异常
- wrap_or_raise(): 记录后重新抛出，供需要按源报告成败的调用方使用
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import TypeVar

from loguru import logger

from hotboard.core.domain.clock import Clock, epoch_ms
from hotboard.core.infrastructure.logging import BusinessEvents
from hotboard.core.infrastructure.retry import (
    BackoffStrategy,
    RetryExhaustedError,
    RetryPolicy,
    SleepFunc,
    execute_with_retry,
)
from hotboard.modules.sources.domain.exceptions import FetchError, classify_error

T = TypeVar("T")


@dataclass
class ErrorStats:
    count: int = 0
    last_error_ms: int | None = None
    last_message: str | None = None
    error_kinds: dict[str, int] = field(default_factory=dict)

    def copy(self) -> ErrorStats:
        return replace(self, error_kinds=dict(self.error_kinds))


class ErrorHandler:
    """每个 source 的错误统计与统一重试入口。"""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        clock: Clock = epoch_ms,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._clock = clock
        self._sleep = sleep
        self._stats: dict[str, ErrorStats] = {}
        self._last_attempts: dict[str, int] = {}

    async def wrap(
        self,
        source_id: str,
        operation: Callable[[], Awaitable[T]],
        *,
        fallback: T,
        retry_count: int | None = None,
        retry_delay_ms: int | None = None,
        backoff: BackoffStrategy | str | None = None,
    ) -> T:
        """执行并在全部失败后返回 fallback。"""
        try:
            return await self.wrap_or_raise(
                source_id,
                operation,
                retry_count=retry_count,
                retry_delay_ms=retry_delay_ms,
                backoff=backoff,
            )
        except Exception:
            # 已在 wrap_or_raise 中记录
            return fallback

    async def wrap_or_raise(
        self,
        source_id: str,
        operation: Callable[[], Awaitable[T]],
        *,
        retry_count: int | None = None,
        retry_delay_ms: int | None = None,
        backoff: BackoffStrategy | str | None = None,
    ) -> T:
        """执行，失败时记录统计后抛出最后一次的原始异常。"""
        policy = self.policy.with_overrides(
            retry_count=retry_count,
            base_delay_ms=retry_delay_ms,
            strategy=backoff,
        )
        try:
            result = await execute_with_retry(
                operation, policy, sleep=self._sleep, label=source_id
            )
        except RetryExhaustedError as exhausted:
            self._last_attempts[source_id] = exhausted.attempts
            self.record_error(source_id, exhausted.last_error, attempts=exhausted.attempts)
            raise exhausted.last_error from None

        self._last_attempts[source_id] = result.attempts
        return result.value

    def record_error(
        self,
        source_id: str,
        error: BaseException,
        *,
        attempts: int | None = None,
    ) -> None:
        kind = classify_error(error)
        stats = self._stats.setdefault(source_id, ErrorStats())
        stats.count += 1
        stats.last_error_ms = self._clock()
        stats.last_message = str(error)
        stats.error_kinds[kind] = stats.error_kinds.get(kind, 0) + 1

        if isinstance(error, FetchError):
            status = f" (status {error.status_code})" if error.status_code else ""
            logger.error(f"Source {source_id} {kind} error: {error}{status}")
        else:
            logger.error(f"Source {source_id} unexpected error: {error!r}")
        BusinessEvents.source_fetch_failed(
            source_id=source_id,
            error=str(error),
            error_kind=kind,
            attempts=attempts,
        )

    def last_attempts(self, source_id: str) -> int | None:
        """最近一次 wrap 调用的实际尝试次数。"""
        return self._last_attempts.get(source_id)

    def get_stats(self, source_id: str | None = None) -> dict[str, ErrorStats]:
        if source_id is not None:
            stats = self._stats.get(source_id)
            return {source_id: stats.copy()} if stats else {}
        return {key: stats.copy() for key, stats in self._stats.items()}

    def clear_stats(self, source_id: str | None = None) -> None:
        if source_id is None:
            self._stats.clear()
            self._last_attempts.clear()
        else:
            self._stats.pop(source_id, None)
            self._last_attempts.pop(source_id, None)
