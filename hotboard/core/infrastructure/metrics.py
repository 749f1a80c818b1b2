"""进程内请求指标。

记录每次抓取的耗时与成败、缓存命中率，提供分位数和整体健康度。
仅保存在内存中，进程重启即清零。
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from loguru import logger


@dataclass
class _SourceCounters:
    success: int = 0
    failure: int = 0
    avg_time_ms: float = 0.0


@dataclass(frozen=True)
class OverallHealth:
    status: str
    uptime_ms: int
    error_rate: float
    message: str


def _percentile(sorted_values: list[float], fraction: float) -> float:
    if not sorted_values:
        return 0.0
    index = min(int(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


class MetricsCollector:
    """请求与缓存指标汇总。

    错误率 > unhealthy_error_rate 为 unhealthy，> degraded_error_rate 为 degraded。
    """

    def __init__(
        self,
        window_size: int = 1000,
        degraded_error_rate: float = 0.05,
        unhealthy_error_rate: float = 0.2,
    ):
        self.degraded_error_rate = degraded_error_rate
        self.unhealthy_error_rate = unhealthy_error_rate
        self.total_requests = 0
        self.total_errors = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self._sources: dict[str, _SourceCounters] = {}
        self._samples: deque[float] = deque(maxlen=window_size)
        self._started_at = time.monotonic()

    def record_request(
        self,
        source_id: str,
        duration_ms: float,
        error: BaseException | None = None,
    ) -> None:
        counters = self._sources.setdefault(source_id, _SourceCounters())
        self.total_requests += 1
        self._samples.append(duration_ms)
        if error is None:
            counters.success += 1
        else:
            self.total_errors += 1
            counters.failure += 1
            logger.warning(f"[Metrics] {source_id} failed: {error}")

        count = counters.success + counters.failure
        counters.avg_time_ms = (counters.avg_time_ms * (count - 1) + duration_ms) / count

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def record_cache_miss(self) -> None:
        self.cache_misses += 1

    @property
    def cache_hit_rate(self) -> float:
        """命中率（百分比）。"""
        total = self.cache_hits + self.cache_misses
        return self.cache_hits / total * 100 if total else 0.0

    @property
    def uptime_ms(self) -> int:
        return int((time.monotonic() - self._started_at) * 1000)

    def latency(self) -> dict[str, float]:
        ordered = sorted(self._samples)
        avg = sum(ordered) / len(ordered) if ordered else 0.0
        return {
            "avg": round(avg, 2),
            "p50": _percentile(ordered, 0.5),
            "p95": _percentile(ordered, 0.95),
            "p99": _percentile(ordered, 0.99),
        }

    def get_health(self) -> OverallHealth:
        error_rate = (
            self.total_errors / self.total_requests if self.total_requests else 0.0
        )
        if error_rate > self.unhealthy_error_rate:
            status, message = "unhealthy", f"Error rate too high ({error_rate:.2%})"
        elif error_rate > self.degraded_error_rate:
            status, message = "degraded", f"Error rate elevated ({error_rate:.2%})"
        else:
            status, message = "healthy", "OK"
        return OverallHealth(
            status=status,
            uptime_ms=self.uptime_ms,
            error_rate=error_rate,
            message=message,
        )

    def snapshot(self, detailed: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "totalRequests": self.total_requests,
            "totalErrors": self.total_errors,
            "responseTime": self.latency(),
            "cache": {
                "hits": self.cache_hits,
                "misses": self.cache_misses,
                "hitRate": round(self.cache_hit_rate, 2),
            },
            "uptimeMs": self.uptime_ms,
        }
        if detailed:
            data["sources"] = {
                source_id: {
                    "success": counters.success,
                    "failure": counters.failure,
                    "avgTimeMs": round(counters.avg_time_ms, 2),
                }
                for source_id, counters in self._sources.items()
            }
        return data

    def reset(self) -> None:
        self.total_requests = 0
        self.total_errors = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self._sources.clear()
        self._samples.clear()
        self._started_at = time.monotonic()
        logger.info("[Metrics] All metrics reset")
