"""进程级应用上下文。

注册表、缓存、错误统计、指标等在这里一次性构建，由 FastAPI lifespan
持有并通过依赖注入传给路由；测试为每个用例构建新的上下文。
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

from loguru import logger

from hotboard.core.domain.clock import Clock, epoch_ms
from hotboard.core.infrastructure.health import HealthCheckRegistry
from hotboard.core.infrastructure.metrics import MetricsCollector
from hotboard.core.infrastructure.retry import RetryPolicy
from hotboard.modules.sources.application.cache_store import PERSIST_TTL_MS, CacheStore
from hotboard.modules.sources.application.error_handler import ErrorHandler
from hotboard.modules.sources.application.hot_list_service import (
    HotListService,
    ServiceOptions,
    WarmupReport,
)
from hotboard.modules.sources.application.registry import HealthThresholds, SourceRegistry
from hotboard.modules.sources.application.source_manager import SourceManager
from hotboard.modules.sources.domain.cache import CacheBackend, CachePolicy
from hotboard.modules.sources.domain.source import SourceDescriptor


@dataclass
class AppContext:
    registry: SourceRegistry
    cache: CacheStore
    error_handler: ErrorHandler
    metrics: MetricsCollector
    manager: SourceManager
    service: HotListService
    health_checks: HealthCheckRegistry
    warmup_sources: list[str] = field(default_factory=list)
    _warmup_task: asyncio.Task[WarmupReport] | None = field(default=None, repr=False)

    async def startup(self) -> None:
        """加载持久层缓存，并在后台启动预热（不阻塞启动）。"""
        await self.cache.initialize()
        if self.warmup_sources:
            logger.info(f"Scheduling cache warmup for {len(self.warmup_sources)} sources")
            self._warmup_task = asyncio.get_running_loop().create_task(
                self.service.warmup(self.warmup_sources)
            )

    async def wait_warmup(self) -> WarmupReport | None:
        if self._warmup_task is None:
            return None
        return await self._warmup_task

    async def shutdown(self) -> None:
        if self._warmup_task is not None and not self._warmup_task.done():
            self._warmup_task.cancel()
            try:
                await self._warmup_task
            except asyncio.CancelledError:
                pass
        await self.cache.close()


def build_context(
    descriptors: Iterable[SourceDescriptor] = (),
    *,
    backend: CacheBackend | None = None,
    restricted: bool = False,
    retry_policy: RetryPolicy | None = None,
    thresholds: HealthThresholds | None = None,
    cache_policy: CachePolicy | None = None,
    options: ServiceOptions | None = None,
    persist_ttl_ms: int = PERSIST_TTL_MS,
    flush_delay_sec: float = 5.0,
    metrics: MetricsCollector | None = None,
    warmup_sources: Iterable[str] = (),
    clock: Clock = epoch_ms,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> AppContext:
    """组装上下文。所有参数都有默认值，测试可只传需要替换的部分。"""
    registry = SourceRegistry(restricted=restricted, thresholds=thresholds, clock=clock)
    registry.register_batch(descriptors)

    metrics = metrics or MetricsCollector()
    error_handler = ErrorHandler(retry_policy, clock=clock, sleep=sleep)
    cache = CacheStore(
        backend,
        persist_ttl_ms=persist_ttl_ms,
        flush_delay_sec=flush_delay_sec,
        clock=clock,
    )
    manager = SourceManager(registry, error_handler, metrics)
    service = HotListService(
        manager,
        cache,
        metrics,
        policy=cache_policy,
        options=options,
        clock=clock,
        sleep=sleep,
        rng=rng,
    )
    return AppContext(
        registry=registry,
        cache=cache,
        error_handler=error_handler,
        metrics=metrics,
        manager=manager,
        service=service,
        health_checks=HealthCheckRegistry(),
        warmup_sources=list(warmup_sources),
    )
