"""Tests for context assembly from settings."""

import pytest

from hotboard.core.config import Settings
from hotboard.core.infrastructure.health import HealthStatus
from hotboard.modules.sources.infrastructure.cache_backends import (
    FileCacheBackend,
    RedisCacheBackend,
)
from hotboard.modules.sources.infrastructure.dependencies import (
    build_app_context,
    build_cache_backend,
)

pytestmark = pytest.mark.anyio


def test_build_cache_backend_by_setting(test_settings: Settings) -> None:
    assert build_cache_backend(test_settings) is None

    file_settings = test_settings.model_copy(update={"CACHE_BACKEND": "file"})
    backend = build_cache_backend(file_settings)
    assert isinstance(backend, FileCacheBackend)
    assert backend.directory == test_settings.CACHE_DIR

    redis_settings = test_settings.model_copy(update={"CACHE_BACKEND": "redis"})
    redis_backend = build_cache_backend(redis_settings)
    assert isinstance(redis_backend, RedisCacheBackend)
    assert redis_backend.ttl_sec == 3600


async def test_build_app_context_registers_catalog(test_settings: Settings) -> None:
    context = build_app_context(test_settings)

    assert context.registry.has("weibo")
    assert context.warmup_sources == []
    assert context.cache.persistent is False

    results = await context.health_checks.run_all()
    assert results["cache"].status == HealthStatus.SKIPPED


async def test_restricted_deployment_disables_conditional_sources(
    test_settings: Settings,
) -> None:
    restricted = test_settings.model_copy(update={"RESTRICTED_DEPLOYMENT": True})
    context = build_app_context(restricted)

    enabled = {config.id for config in context.registry.list_enabled()}
    assert "36kr-quick" not in enabled
    assert "producthunt" not in enabled
    assert "weibo" in enabled


async def test_file_backend_context_reports_cache_health(test_settings: Settings) -> None:
    file_settings = test_settings.model_copy(
        update={"CACHE_BACKEND": "file", "WARMUP_ENABLED": True, "WARMUP_SOURCES": ["weibo"]}
    )
    context = build_app_context(file_settings)
    assert context.warmup_sources == ["weibo"]

    await context.cache.initialize()
    results = await context.health_checks.run_all()
    await context.cache.close()

    assert results["cache"].status == HealthStatus.OK
    assert context.cache.stats().backend == "file"
