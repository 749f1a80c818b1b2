"""热榜读取服务（缓存组合层）。

读路径：
1. 非 force 时先查 CacheStore，按 CachePolicy 判断新鲜度，命中直接返回
2. 未命中：随机抖动后取数，超时竞速（超时的取数继续在后台运行，结果丢弃）
3. 成功结果回写缓存

批量读取走 PriorityTaskQueue，整体超时映射为 504。
流式读取逐个源输出 start / data / end / error 记录。
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from hotboard.core.application.concurrency import PriorityTaskQueue, race_with_timeout
from hotboard.core.domain.clock import Clock, epoch_ms
from hotboard.core.domain.exceptions import OrchestrationTimeoutError, ValidationError
from hotboard.core.infrastructure.logging import BusinessEvents
from hotboard.core.infrastructure.metrics import MetricsCollector
from hotboard.modules.sources.application.cache_store import CacheStore
from hotboard.modules.sources.application.registry import SourceRegistry
from hotboard.modules.sources.application.source_manager import SourceManager
from hotboard.modules.sources.domain.cache import CacheEntry, CachePolicy
from hotboard.modules.sources.domain.entities import HealthState, HotItem
from hotboard.modules.sources.domain.exceptions import (
    SourceNotFoundError,
    SourceUnavailableError,
)


@dataclass(frozen=True)
class HotListResult:
    source_id: str
    items: list[HotItem]
    cached: bool
    updated_at_ms: int
    success: bool = True
    stale: bool = False
    error: str | None = None

    @property
    def count(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class BatchItem:
    source_id: str
    success: bool
    items: list[HotItem] = field(default_factory=list)
    count: int = 0
    cached: bool = False
    error: str | None = None


@dataclass(frozen=True)
class BatchResult:
    items: dict[str, BatchItem]
    total: int
    succeeded: int
    failed: int
    duration_ms: float


@dataclass(frozen=True)
class WarmupReport:
    succeeded: int
    failed: int
    skipped: int


@dataclass(frozen=True)
class ServiceOptions:
    fetch_timeout_ms: int = 15_000
    jitter_ms: int = 300
    batch_priority: int = 100
    warmup_concurrency: int = 3
    warmup_delay_ms: int = 200
    warmup_batch_pause_ms: int = 1000
    warmup_timeout_ms: int = 30_000


class HotListService:
    """Read-through hot list service."""

    def __init__(
        self,
        manager: SourceManager,
        cache: CacheStore,
        metrics: MetricsCollector,
        *,
        policy: CachePolicy | None = None,
        options: ServiceOptions | None = None,
        clock: Clock = epoch_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.manager = manager
        self.cache = cache
        self.metrics = metrics
        self.policy = policy or CachePolicy()
        self.options = options or ServiceOptions()
        self._clock = clock
        self._sleep = sleep
        self._rng = rng

    @property
    def registry(self) -> SourceRegistry:
        return self.manager.registry

    # ============ 单源 ============

    async def get_hot_list(
        self,
        source_id: str,
        *,
        force: bool = False,
        limit: int | None = None,
    ) -> HotListResult:
        """读取单个数据源。

        Raises:
            SourceNotFoundError: 未注册
            SourceUnavailableError: 已禁用，或不健康且没有任何缓存
        """
        config = self.registry.get_config(source_id)
        if config is None:
            raise SourceNotFoundError(source_id)
        if not config.is_usable(self.registry.restricted):
            raise SourceUnavailableError(source_id, "source is disabled")

        cached = await self.cache.get(source_id)
        now = self._clock()
        if not force and cached is not None and self.policy.is_fresh(cached, now):
            self.metrics.record_cache_hit()
            return self._from_entry(cached, limit)
        self.metrics.record_cache_miss()

        health = self.registry.get_health(source_id)
        if health.status == HealthState.UNHEALTHY:
            if cached is None:
                raise SourceUnavailableError(source_id, health.reason or "unhealthy")
            logger.info(f"Source {source_id} unhealthy, serving stale cache")
            return self._from_entry(cached, limit, stale=True)

        return await self._fetch_and_store(source_id, limit)

    async def evict(self, source_id: str) -> bool:
        if not self.registry.has(source_id):
            raise SourceNotFoundError(source_id)
        return await self.cache.delete(source_id)

    # ============ 批量 ============

    async def get_batch(
        self,
        source_ids: Sequence[str],
        *,
        limit: int = 10,
        concurrency: int = 5,
        timeout_ms: int = 30_000,
    ) -> BatchResult:
        """批量读取，整体超时抛 OrchestrationTimeoutError。

        单个源的失败记录为 success=False，不中断其他源。
        """
        ids = list(dict.fromkeys(s.strip() for s in source_ids if s.strip()))
        if not ids:
            raise ValidationError("No source IDs provided")

        started = time.perf_counter()
        queue = PriorityTaskQueue(max_concurrent=concurrency)
        futures = [
            queue.add(self._batch_operation(source_id, limit), self.options.batch_priority)
            for source_id in ids
        ]

        try:
            settled = await race_with_timeout(
                asyncio.gather(*futures), timeout_ms / 1000
            )
        except TimeoutError:
            logger.warning(f"Batch of {len(ids)} sources timed out after {timeout_ms}ms")
            raise OrchestrationTimeoutError(
                timeout_ms, f"Batch request timeout ({timeout_ms}ms)"
            ) from None

        items = {item.source_id: item for item in settled}
        succeeded = sum(1 for item in settled if item.success)
        duration_ms = (time.perf_counter() - started) * 1000
        BusinessEvents.batch_completed(
            total=len(ids),
            succeeded=succeeded,
            failed=len(ids) - succeeded,
            duration_ms=duration_ms,
        )
        return BatchResult(
            items=items,
            total=len(ids),
            succeeded=succeeded,
            failed=len(ids) - succeeded,
            duration_ms=duration_ms,
        )

    def _batch_operation(self, source_id: str, limit: int):
        async def _operation() -> BatchItem:
            try:
                result = await self.get_hot_list(source_id, limit=limit)
            except Exception as exc:
                return BatchItem(source_id=source_id, success=False, error=str(exc))
            return BatchItem(
                source_id=source_id,
                success=result.success,
                items=result.items,
                count=result.count,
                cached=result.cached,
                error=result.error,
            )

        return _operation

    # ============ 流式 ============

    async def stream(
        self,
        source_ids: Sequence[str],
        *,
        chunk_size: int = 5,
        delay_ms: int = 500,
    ) -> AsyncIterator[dict[str, Any]]:
        """逐个源读取并分块产出记录。

        单个源失败只产出一条 error 记录，继续处理后续源。
        data 记录的 data 字段为 HotItem 列表，序列化由接口层负责。
        """
        for source_id in source_ids:
            config = self.registry.get_config(source_id)
            if config is None:
                yield {"type": "error", "sourceId": source_id, "message": "Source not found"}
                continue

            yield {
                "type": "start",
                "sourceId": source_id,
                "name": config.name,
                "timestamp": self._clock(),
            }
            try:
                result = await self.get_hot_list(source_id)
            except Exception as exc:
                yield {"type": "error", "sourceId": source_id, "message": str(exc)}
                continue
            if not result.success:
                yield {"type": "error", "sourceId": source_id, "message": result.error}
                continue

            items = result.items
            for index in range(0, len(items), chunk_size):
                chunk = items[index : index + chunk_size]
                yield {
                    "type": "data",
                    "sourceId": source_id,
                    "index": index,
                    "data": chunk,
                    "count": len(chunk),
                }
                if delay_ms > 0 and index + chunk_size < len(items):
                    await self._sleep(delay_ms / 1000)

            yield {
                "type": "end",
                "sourceId": source_id,
                "total": len(items),
                "timestamp": self._clock(),
            }

    # ============ 预热 ============

    async def warmup(self, source_ids: Sequence[str]) -> WarmupReport:
        """分批预热缓存，失败只计数不抛出。"""
        opts = self.options
        succeeded = failed = skipped = 0
        ids = list(source_ids)

        for offset in range(0, len(ids), opts.warmup_concurrency):
            batch = ids[offset : offset + opts.warmup_concurrency]
            outcomes = await asyncio.gather(
                *(
                    self._warmup_one(source_id, index * opts.warmup_delay_ms)
                    for index, source_id in enumerate(batch)
                )
            )
            for outcome in outcomes:
                if outcome is None:
                    skipped += 1
                elif outcome:
                    succeeded += 1
                else:
                    failed += 1

            if offset + opts.warmup_concurrency < len(ids):
                await self._sleep(opts.warmup_batch_pause_ms / 1000)

        BusinessEvents.warmup_completed(
            succeeded=succeeded, failed=failed, skipped=skipped
        )
        logger.info(
            f"Cache warmup finished: {succeeded} ok, {failed} failed, {skipped} skipped"
        )
        return WarmupReport(succeeded=succeeded, failed=failed, skipped=skipped)

    async def _warmup_one(self, source_id: str, delay_ms: int) -> bool | None:
        """返回 None 表示跳过（未注册或已禁用）。"""
        if self.registry.is_disabled(source_id):
            logger.info(f"Skipping warmup for {source_id}: not registered or disabled")
            return None

        await self._sleep(delay_ms / 1000)
        try:
            items = await race_with_timeout(
                self.manager.get_hot_list(source_id, raise_errors=True),
                self.options.warmup_timeout_ms / 1000,
            )
        except Exception as exc:
            logger.warning(f"Warmup failed for {source_id}: {exc!r}")
            return False

        await self.cache.set(source_id, items)
        logger.info(f"Warmed up {source_id} with {len(items)} items")
        return True

    # ============ 内部 ============

    async def _fetch_and_store(
        self, source_id: str, limit: int | None
    ) -> HotListResult:
        jitter_ms = self._rng() * self.options.jitter_ms
        if jitter_ms > 0:
            await self._sleep(jitter_ms / 1000)

        now = self._clock()
        try:
            items = await race_with_timeout(
                self.manager.get_hot_list(source_id, raise_errors=True),
                self.options.fetch_timeout_ms / 1000,
            )
        except TimeoutError:
            # 后台继续运行的取数结束时由 SourceManager 记录真实结果，这里不重复计数
            message = f"Request timeout ({self.options.fetch_timeout_ms}ms)"
            logger.warning(f"Fetch for {source_id} exceeded {self.options.fetch_timeout_ms}ms")
            return self._failure(source_id, now, message)
        except Exception as exc:
            return self._failure(source_id, now, str(exc))

        entry = await self.cache.set(source_id, items)
        return HotListResult(
            source_id=source_id,
            items=self._limited(list(entry.items), limit),
            cached=False,
            updated_at_ms=entry.updated_at_ms,
        )

    @staticmethod
    def _failure(source_id: str, now: int, message: str) -> HotListResult:
        return HotListResult(
            source_id=source_id,
            items=[],
            cached=False,
            updated_at_ms=now,
            success=False,
            error=message,
        )

    def _from_entry(
        self, entry: CacheEntry, limit: int | None, stale: bool = False
    ) -> HotListResult:
        return HotListResult(
            source_id=entry.source_id,
            items=self._limited(list(entry.items), limit),
            cached=True,
            updated_at_ms=entry.updated_at_ms,
            stale=stale,
        )

    @staticmethod
    def _limited(items: list[HotItem], limit: int | None) -> list[HotItem]:
        return items if limit is None else items[:limit]
