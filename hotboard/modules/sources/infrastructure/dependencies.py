"""Source module infrastructure dependencies.

按配置组装 AppContext（组合根），并提供 FastAPI 依赖覆盖实现。
"""

from __future__ import annotations

import httpx
from fastapi import Request
from loguru import logger

from hotboard.core.config import Settings
from hotboard.core.infrastructure.health import ComponentHealthResult, HealthStatus
from hotboard.core.infrastructure.metrics import MetricsCollector
from hotboard.core.infrastructure.redis import RedisClient
from hotboard.core.infrastructure.retry import BackoffStrategy, RetryPolicy
from hotboard.modules.sources.application.context import AppContext, build_context
from hotboard.modules.sources.application.hot_list_service import ServiceOptions
from hotboard.modules.sources.application.registry import HealthThresholds
from hotboard.modules.sources.domain.cache import CacheBackend, CachePolicy
from hotboard.modules.sources.infrastructure.cache_backends import (
    FileCacheBackend,
    RedisCacheBackend,
)
from hotboard.modules.sources.infrastructure.catalog_provider import SourceCatalogProvider


def build_cache_backend(settings: Settings) -> FileCacheBackend | RedisCacheBackend | None:
    if settings.CACHE_BACKEND == "redis":
        return RedisCacheBackend(
            RedisClient(settings.REDIS_URL),
            ttl_sec=settings.CACHE_PERSIST_TTL_MS // 1000,
        )
    if settings.CACHE_BACKEND == "file":
        return FileCacheBackend(settings.CACHE_DIR)
    return None


def build_app_context(
    settings: Settings,
    *,
    client: httpx.AsyncClient | None = None,
    backend: CacheBackend | None = None,
) -> AppContext:
    """根据配置构建上下文：目录 → 注册表，缓存后端，重试/健康阈值，预热列表。"""
    descriptors = SourceCatalogProvider(settings, client=client).load_descriptors()
    if backend is None:
        backend = build_cache_backend(settings)

    context = build_context(
        descriptors,
        backend=backend,
        restricted=settings.RESTRICTED_DEPLOYMENT,
        retry_policy=RetryPolicy(
            retry_count=settings.RETRY_COUNT,
            base_delay_ms=settings.RETRY_DELAY_MS,
            max_delay_ms=settings.RETRY_MAX_DELAY_MS,
            strategy=BackoffStrategy(settings.RETRY_BACKOFF),
        ),
        thresholds=HealthThresholds(
            degraded_rate=settings.HEALTH_DEGRADED_RATE,
            unhealthy_rate=settings.HEALTH_UNHEALTHY_RATE,
            recent_error_window_ms=settings.HEALTH_RECENT_ERROR_WINDOW_MS,
        ),
        cache_policy=CachePolicy(
            fresh_ttl_ms=settings.CACHE_FRESH_TTL_MS,
            empty_ttl_ms=settings.CACHE_EMPTY_TTL_MS,
        ),
        options=ServiceOptions(
            fetch_timeout_ms=settings.FETCH_TIMEOUT_MS,
            jitter_ms=settings.FETCH_JITTER_MS,
            batch_priority=settings.BATCH_PRIORITY,
            warmup_concurrency=settings.WARMUP_CONCURRENCY,
            warmup_delay_ms=settings.WARMUP_DELAY_MS,
            warmup_batch_pause_ms=settings.WARMUP_BATCH_PAUSE_MS,
            warmup_timeout_ms=settings.WARMUP_TIMEOUT_MS,
        ),
        persist_ttl_ms=settings.CACHE_PERSIST_TTL_MS,
        flush_delay_sec=settings.CACHE_FLUSH_DELAY_SEC,
        metrics=MetricsCollector(
            window_size=settings.METRICS_WINDOW_SIZE,
            degraded_error_rate=settings.METRICS_DEGRADED_ERROR_RATE,
            unhealthy_error_rate=settings.METRICS_UNHEALTHY_ERROR_RATE,
        ),
        warmup_sources=settings.WARMUP_SOURCES if settings.WARMUP_ENABLED else (),
    )
    _register_health_checks(context, backend)
    logger.info(
        f"App context ready: {len(context.registry)} sources, "
        f"cache backend={backend.name if backend else 'memory'}"
    )
    return context


def _register_health_checks(context: AppContext, backend: CacheBackend | None) -> None:
    async def cache_check() -> ComponentHealthResult:
        stats = context.cache.stats()
        if not stats.persistent:
            return ComponentHealthResult(
                status=HealthStatus.DEGRADED if backend else HealthStatus.SKIPPED,
                connected=False,
                detail=f"memory-only, {stats.memory_entries} entries",
            )
        health_check = getattr(backend, "health_check", None)
        if health_check is None:
            return ComponentHealthResult(
                status=HealthStatus.OK, connected=True, detail=stats.backend
            )
        return await health_check()

    context.health_checks.register("cache", cache_check)


async def get_app_context(request: Request) -> AppContext:
    return request.app.state.context
