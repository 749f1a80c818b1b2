"""数据源注册表。

source id → 配置 + 适配器 的唯一事实来源，同时负责每个源的请求指标与健康度。
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from hotboard.core.domain.clock import Clock, epoch_ms
from hotboard.core.infrastructure.logging import BusinessEvents
from hotboard.modules.sources.domain.entities import (
    HealthState,
    SourceConfig,
    SourceHealth,
    SourceMetrics,
)
from hotboard.modules.sources.domain.source import SourceDescriptor


@dataclass(frozen=True)
class HealthThresholds:
    degraded_rate: float = 0.8
    unhealthy_rate: float = 0.5
    recent_error_window_ms: int = 5 * 60 * 1000


class SourceRegistry:
    """数据源注册表。

    register 从不抛异常；查询在找不到时返回 None。
    """

    def __init__(
        self,
        *,
        restricted: bool = False,
        thresholds: HealthThresholds | None = None,
        clock: Clock = epoch_ms,
    ):
        self.restricted = restricted
        self.thresholds = thresholds or HealthThresholds()
        self._clock = clock
        self._sources: dict[str, SourceDescriptor] = {}
        self._metrics: dict[str, SourceMetrics] = {}

    # ============ 注册 ============

    def register(self, descriptor: SourceDescriptor) -> None:
        """插入或覆盖一个数据源。覆盖只记录警告。"""
        source_id = descriptor.id
        overwritten = source_id in self._sources
        if overwritten:
            logger.warning(f"Source {source_id} already registered, overwriting")

        self._sources[source_id] = descriptor
        if source_id not in self._metrics:
            self._metrics[source_id] = SourceMetrics()

        logger.debug(f"Registered source: {descriptor.config.name} ({source_id})")
        BusinessEvents.source_registered(
            source_id=source_id,
            name=descriptor.config.name,
            overwritten=overwritten,
        )

    def register_batch(self, descriptors: Iterable[SourceDescriptor]) -> None:
        for descriptor in descriptors:
            self.register(descriptor)

    def unregister(self, source_id: str) -> bool:
        """移除数据源（指标保留，需显式 reset_metrics 清除）。"""
        return self._sources.pop(source_id, None) is not None

    # ============ 查询 ============

    def get(self, source_id: str) -> SourceDescriptor | None:
        return self._sources.get(source_id)

    def get_config(self, source_id: str) -> SourceConfig | None:
        descriptor = self._sources.get(source_id)
        return descriptor.config if descriptor else None

    def has(self, source_id: str) -> bool:
        return source_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    def list_sources(self, **filters: Any) -> list[SourceConfig]:
        """返回所有数据源配置，可按任意字段精确匹配过滤。

        Example:
            registry.list_sources(type=SourceType.NEWS, enabled=True)
        """
        configs = [descriptor.config for descriptor in self._sources.values()]
        if not filters:
            return configs
        return [
            config
            for config in configs
            if all(
                getattr(config, key, _MISSING) == value
                for key, value in filters.items()
            )
        ]

    def list_enabled(self) -> list[SourceConfig]:
        """enabled 且未禁用的数据源（受限部署下 conditional 也视为禁用）。"""
        return [
            config
            for config in self.list_sources(enabled=True)
            if not config.is_disabled(self.restricted)
        ]

    def is_disabled(self, source_id: str) -> bool:
        config = self.get_config(source_id)
        return config is None or not config.is_usable(self.restricted)

    # ============ 指标 ============

    def record_metrics(
        self,
        source_id: str,
        duration_ms: float,
        success: bool,
        error: BaseException | None = None,
    ) -> None:
        """记录一次请求结果。

        计数与平均值在同一段同步代码里完成更新，中间没有 await。
        """
        metric = self._metrics.get(source_id)
        if metric is None:
            logger.debug(f"Metrics ignored for unknown source: {source_id}")
            return

        now = self._clock()
        metric.total_requests += 1
        if success:
            metric.successful_requests += 1
            metric.last_success_ms = now
        else:
            metric.failed_requests += 1
            metric.last_error_ms = now
            error_type = type(error).__name__ if error is not None else "Unknown"
            metric.error_types[error_type] = metric.error_types.get(error_type, 0) + 1

        n = metric.total_requests
        metric.avg_response_time_ms = (
            metric.avg_response_time_ms * (n - 1) + duration_ms
        ) / n

    def get_metrics(self, source_id: str) -> SourceMetrics | None:
        metric = self._metrics.get(source_id)
        return metric.copy() if metric else None

    def get_all_metrics(self) -> dict[str, SourceMetrics]:
        return {source_id: metric.copy() for source_id, metric in self._metrics.items()}

    def reset_metrics(self, source_id: str | None = None) -> None:
        if source_id is None:
            for key in self._metrics:
                self._metrics[key] = SourceMetrics()
        elif source_id in self._metrics:
            self._metrics[source_id] = SourceMetrics()

    # ============ 健康度 ============

    def get_health(self, source_id: str) -> SourceHealth:
        """根据当前指标实时计算健康状态（不缓存）。"""
        metric = self._metrics.get(source_id)
        if metric is None or source_id not in self._sources:
            return SourceHealth(HealthState.UNKNOWN, "No metrics available")
        if metric.total_requests == 0:
            return SourceHealth(HealthState.UNKNOWN, "No requests yet")

        success_rate = metric.successful_requests / metric.total_requests
        recent_error = (
            metric.last_error_ms is not None
            and self._clock() - metric.last_error_ms
            < self.thresholds.recent_error_window_ms
        )

        if success_rate < self.thresholds.unhealthy_rate:
            return SourceHealth(
                HealthState.UNHEALTHY,
                f"Success rate too low: {success_rate * 100:.1f}%",
            )
        if success_rate < self.thresholds.degraded_rate:
            return SourceHealth(
                HealthState.DEGRADED,
                f"Success rate degraded: {success_rate * 100:.1f}%",
            )
        if recent_error:
            return SourceHealth(HealthState.DEGRADED, "Recent errors detected")
        return SourceHealth(HealthState.HEALTHY)


_MISSING = object()
