"""Health / metrics / error statistics routes."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from hotboard.core.config import settings
from hotboard.core.infrastructure.health import HealthStatus
from hotboard.core.interfaces.http.response import ApiResponse
from hotboard.modules.sources.application.context import AppContext
from hotboard.modules.sources.application.dependencies import get_app_context
from hotboard.modules.sources.interfaces.schemas import ErrorStatsResponse

router = APIRouter(tags=["system"])


@router.get(
    "/health",
    response_model=ApiResponse[dict[str, Any]],
    summary="系统健康检查",
)
async def health(
    context: AppContext = Depends(get_app_context),
) -> ApiResponse[dict[str, Any]]:
    """整体健康状态。

    - 基于全局错误率给出 healthy / degraded / unhealthy
    - 任一组件检查失败时，healthy 降级为 degraded
    """
    components = await context.health_checks.run_all()
    overall = context.metrics.get_health()
    status = overall.status
    if status == "healthy" and any(
        result.status == HealthStatus.ERROR for result in components.values()
    ):
        status = "degraded"

    stats = context.manager.get_stats()
    registry = context.registry
    details = [
        {
            "id": config.id,
            "name": config.name,
            "available": context.manager.is_available(config.id),
            "health": registry.get_health(config.id).status,
        }
        for config in registry.list_sources()
    ]
    return ApiResponse.success(
        data={
            "status": status,
            "message": overall.message,
            "environment": settings.ENVIRONMENT,
            "uptimeMs": overall.uptime_ms,
            "errorRate": round(overall.error_rate, 4),
            "components": {
                name: result.to_dict() for name, result in components.items()
            },
            "sources": {
                "total": stats.total,
                "enabled": stats.enabled,
                "health": stats.health,
            },
            "details": details,
        }
    )


@router.get(
    "/metrics",
    response_model=ApiResponse[dict[str, Any]],
    summary="请求与缓存指标",
)
async def metrics(
    detailed: bool = Query(False, description="包含每个数据源的明细"),
    context: AppContext = Depends(get_app_context),
) -> ApiResponse[dict[str, Any]]:
    data = context.metrics.snapshot(detailed=detailed)
    cache_stats = context.cache.stats()
    data["cacheStore"] = {
        "backend": cache_stats.backend,
        "persistent": cache_stats.persistent,
        "entries": cache_stats.memory_entries,
        "dirty": cache_stats.dirty_entries,
    }
    if detailed:
        data["health"] = context.manager.get_stats().health
    return ApiResponse.success(data=data)


@router.get(
    "/errors",
    response_model=ApiResponse[list[ErrorStatsResponse]],
    summary="数据源错误统计",
)
async def errors(
    source: str | None = Query(None, description="仅查看指定数据源"),
    context: AppContext = Depends(get_app_context),
) -> ApiResponse[list[ErrorStatsResponse]]:
    handler = context.error_handler
    stats = handler.get_stats(source)
    return ApiResponse.success(
        data=[
            ErrorStatsResponse(
                source_id=source_id,
                count=item.count,
                last_error=item.last_error_ms,
                last_message=item.last_message,
                error_kinds=item.error_kinds,
                last_attempts=handler.last_attempts(source_id),
            )
            for source_id, item in stats.items()
        ],
        meta={
            "sourceId": source or "all",
            "totalErrors": sum(item.count for item in stats.values()),
        },
    )
