"""数据源管理器。

组合注册表、错误处理、调度与指标，对外提供取数操作。
本层不查缓存，缓存组合在 HotListService 中完成。
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from loguru import logger

from hotboard.core.infrastructure.logging import BusinessEvents
from hotboard.core.infrastructure.metrics import MetricsCollector
from hotboard.modules.sources.application.error_handler import ErrorHandler
from hotboard.modules.sources.application.registry import SourceRegistry
from hotboard.modules.sources.domain.entities import HealthState, HotItem
from hotboard.modules.sources.domain.exceptions import ConfigError, SourceNotFoundError


@dataclass(frozen=True)
class HotListOutcome:
    """批量取数中单个源的结果。"""

    success: bool
    data: list[HotItem] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class SourceStats:
    total: int
    enabled: int
    health: dict[str, int]


class SourceManager:
    """Source manager facade."""

    def __init__(
        self,
        registry: SourceRegistry,
        error_handler: ErrorHandler,
        metrics: MetricsCollector | None = None,
        *,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.registry = registry
        self.error_handler = error_handler
        self.metrics = metrics
        self._timer = timer

    async def get_hot_list(
        self,
        source_id: str,
        *,
        raise_errors: bool = False,
    ) -> list[HotItem]:
        """获取单个数据源的当前条目。

        Raises:
            SourceNotFoundError: 数据源未注册
            Exception: 仅当 raise_errors=True 时，抛出适配器最终失败的异常
        """
        descriptor = self.registry.get(source_id)
        if descriptor is None:
            raise SourceNotFoundError(source_id)

        if self.registry.is_disabled(source_id):
            logger.warning(f"Source {source_id} is disabled, returning empty list")
            return []

        if descriptor.source is None:
            error = ConfigError(source_id, "no adapter registered")
            self.error_handler.record_error(source_id, error)
            self._record(source_id, 0.0, error)
            if raise_errors:
                raise error
            return []

        start = self._timer()
        try:
            items = await self.error_handler.wrap_or_raise(
                source_id, descriptor.source.fetch
            )
        except Exception as exc:
            self._record(source_id, (self._timer() - start) * 1000, exc)
            if raise_errors:
                raise
            return []

        duration_ms = (self._timer() - start) * 1000
        self._record(source_id, duration_ms, None)
        BusinessEvents.source_fetch_succeeded(
            source_id=source_id,
            items=len(items),
            duration_ms=duration_ms,
        )
        return list(items)

    async def get_hot_lists(
        self,
        source_ids: Iterable[str],
        *,
        concurrency: int = 5,
    ) -> dict[str, HotListOutcome]:
        """分批并发获取，单个源失败不影响其他源。

        结果按完成时写入，不依赖完成顺序；返回的 dict 保持请求顺序。
        """
        ids = list(dict.fromkeys(source_ids))
        results: dict[str, HotListOutcome] = {}

        for offset in range(0, len(ids), concurrency):
            batch = ids[offset : offset + concurrency]
            settled = await asyncio.gather(
                *(self.get_hot_list(source_id, raise_errors=True) for source_id in batch),
                return_exceptions=True,
            )
            for source_id, outcome in zip(batch, settled, strict=True):
                if isinstance(outcome, BaseException):
                    results[source_id] = HotListOutcome(success=False, error=str(outcome))
                else:
                    results[source_id] = HotListOutcome(success=True, data=outcome)

        return {source_id: results[source_id] for source_id in ids}

    def is_available(self, source_id: str) -> bool:
        """enabled、未禁用、且健康度为 healthy/degraded。"""
        if self.registry.is_disabled(source_id):
            return False
        health = self.registry.get_health(source_id)
        return health.status in (HealthState.HEALTHY, HealthState.DEGRADED)

    def get_stats(self) -> SourceStats:
        histogram = {state.value: 0 for state in HealthState}
        for config in self.registry.list_sources():
            histogram[self.registry.get_health(config.id).status] += 1
        return SourceStats(
            total=len(self.registry),
            enabled=len(self.registry.list_enabled()),
            health=histogram,
        )

    def _record(
        self,
        source_id: str,
        duration_ms: float,
        error: BaseException | None,
    ) -> None:
        self.registry.record_metrics(
            source_id, duration_ms, success=error is None, error=error
        )
        if self.metrics is not None:
            self.metrics.record_request(source_id, duration_ms, error)
