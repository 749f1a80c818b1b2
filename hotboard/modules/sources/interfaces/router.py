"""Source / hot list API routes."""

import json
from collections.abc import AsyncIterator, Sequence

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from hotboard.core.config import settings
from hotboard.core.domain.exceptions import ValidationError
from hotboard.core.interfaces.http.response import ApiResponse
from hotboard.modules.sources.application.dependencies import (
    get_hot_list_service,
    get_source_manager,
)
from hotboard.modules.sources.application.hot_list_service import (
    BatchItem,
    HotListResult,
    HotListService,
)
from hotboard.modules.sources.application.source_manager import SourceManager
from hotboard.modules.sources.domain.entities import HotItem, SourceConfig, SourceType
from hotboard.modules.sources.domain.exceptions import SourceNotFoundError
from hotboard.modules.sources.interfaces.schemas import (
    BatchItemResponse,
    CacheEvictResponse,
    HotItemResponse,
    HotListResponse,
    SourceDetailResponse,
    SourceHealthResponse,
    SourceMetricsResponse,
    SourceResponse,
)

router = APIRouter(tags=["sources"])


def _to_source_response(config: SourceConfig, manager: SourceManager) -> SourceResponse:
    return SourceResponse(
        id=config.id,
        name=config.name,
        title=config.title,
        type=config.type,
        home_url=config.home_url,
        column=config.column,
        color=config.color,
        desc=config.desc,
        refresh_interval_ms=config.refresh_interval_ms,
        enabled=config.enabled,
        disabled=config.disabled,
        available=manager.is_available(config.id),
    )


def _to_item_responses(items: list[HotItem]) -> list[HotItemResponse]:
    return [
        HotItemResponse(
            id=item.id,
            title=item.title,
            url=item.url,
            published_at=item.published_at,
            extra=item.extra,
        )
        for item in items
    ]


def _to_hot_list_response(result: HotListResult) -> HotListResponse:
    return HotListResponse(
        source_id=result.source_id,
        success=result.success,
        cached=result.cached,
        stale=result.stale,
        updated=result.updated_at_ms,
        count=result.count,
        items=_to_item_responses(result.items),
        error=result.error,
    )


def _to_batch_item_response(item: BatchItem) -> BatchItemResponse:
    return BatchItemResponse(
        id=item.source_id,
        success=item.success,
        cached=item.cached,
        count=item.count,
        items=_to_item_responses(item.items),
        error=item.error,
    )


@router.get(
    "/sources",
    response_model=ApiResponse[list[SourceResponse]],
    summary="获取数据源列表",
)
async def list_sources(
    type: SourceType | None = Query(None, description="数据类型过滤"),
    enabled_only: bool = Query(False, description="仅返回可用的数据源"),
    manager: SourceManager = Depends(get_source_manager),
) -> ApiResponse[list[SourceResponse]]:
    registry = manager.registry
    configs = registry.list_enabled() if enabled_only else registry.list_sources()
    if type is not None:
        configs = [config for config in configs if config.type == type]
    stats = manager.get_stats()
    return ApiResponse.success(
        data=[_to_source_response(config, manager) for config in configs],
        meta={"total": stats.total, "enabled": stats.enabled, "returned": len(configs)},
    )


@router.get(
    "/sources/{source_id}",
    response_model=ApiResponse[SourceDetailResponse],
    summary="获取数据源详情",
)
async def get_source(
    source_id: str,
    manager: SourceManager = Depends(get_source_manager),
) -> ApiResponse[SourceDetailResponse]:
    registry = manager.registry
    config = registry.get_config(source_id)
    if config is None:
        raise SourceNotFoundError(source_id)

    health = registry.get_health(source_id)
    metrics = registry.get_metrics(source_id)
    return ApiResponse.success(
        data=SourceDetailResponse(
            source=_to_source_response(config, manager),
            health=SourceHealthResponse(
                id=source_id, status=health.status, reason=health.reason
            ),
            metrics=(
                SourceMetricsResponse(
                    total_requests=metrics.total_requests,
                    successful_requests=metrics.successful_requests,
                    failed_requests=metrics.failed_requests,
                    success_rate=metrics.success_rate,
                    avg_response_time_ms=round(metrics.avg_response_time_ms, 2),
                    last_success=metrics.last_success_ms,
                    last_error=metrics.last_error_ms,
                    error_types=metrics.error_types,
                )
                if metrics
                else None
            ),
        )
    )


@router.get(
    "/sources/{source_id}/health",
    response_model=ApiResponse[SourceHealthResponse],
    summary="获取数据源健康状态",
)
async def get_source_health(
    source_id: str,
    manager: SourceManager = Depends(get_source_manager),
) -> ApiResponse[SourceHealthResponse]:
    if not manager.registry.has(source_id):
        raise SourceNotFoundError(source_id)
    health = manager.registry.get_health(source_id)
    return ApiResponse.success(
        data=SourceHealthResponse(id=source_id, status=health.status, reason=health.reason),
        meta={"available": manager.is_available(source_id)},
    )


@router.get(
    "/hot",
    response_model=ApiResponse[dict[str, BatchItemResponse]],
    summary="批量获取热榜",
)
async def get_hot_lists(
    ids: str = Query(..., min_length=1, description="逗号分隔的数据源ID"),
    limit: int = Query(settings.BATCH_DEFAULT_LIMIT, ge=1, le=50, description="每个源返回条数"),
    concurrency: int = Query(
        settings.BATCH_DEFAULT_CONCURRENCY,
        ge=1,
        le=settings.BATCH_MAX_CONCURRENCY,
        description="并发数",
    ),
    timeout: int = Query(
        settings.BATCH_TIMEOUT_MS, ge=1000, le=60000, description="整体超时（毫秒）"
    ),
    service: HotListService = Depends(get_hot_list_service),
) -> ApiResponse[dict[str, BatchItemResponse]]:
    source_ids = [s.strip() for s in ids.split(",") if s.strip()]
    if not source_ids:
        raise ValidationError("No source IDs provided")

    result = await service.get_batch(
        source_ids, limit=limit, concurrency=concurrency, timeout_ms=timeout
    )
    return ApiResponse.success(
        data={
            source_id: _to_batch_item_response(item)
            for source_id, item in result.items.items()
        },
        meta={
            "total": result.total,
            "success": result.succeeded,
            "failed": result.failed,
            "durationMs": round(result.duration_ms),
        },
    )


@router.get(
    "/hot/{source_id}",
    response_model=ApiResponse[HotListResponse],
    summary="获取单个数据源热榜",
)
async def get_hot_list(
    source_id: str,
    force: bool = Query(False, description="跳过缓存强制刷新"),
    limit: int | None = Query(None, ge=1, le=100, description="返回条数"),
    service: HotListService = Depends(get_hot_list_service),
) -> ApiResponse[HotListResponse]:
    result = await service.get_hot_list(source_id, force=force, limit=limit)
    return ApiResponse.success(data=_to_hot_list_response(result))


@router.delete(
    "/cache/{source_id}",
    response_model=ApiResponse[CacheEvictResponse],
    summary="清除数据源缓存",
)
async def evict_cache(
    source_id: str,
    service: HotListService = Depends(get_hot_list_service),
) -> ApiResponse[CacheEvictResponse]:
    evicted = await service.evict(source_id)
    return ApiResponse.success(
        data=CacheEvictResponse(source_id=source_id, evicted=evicted)
    )


async def _ndjson_lines(
    service: HotListService,
    source_ids: Sequence[str],
    chunk_size: int,
    delay_ms: int,
) -> AsyncIterator[str]:
    async for record in service.stream(source_ids, chunk_size=chunk_size, delay_ms=delay_ms):
        if record["type"] == "data":
            record = {
                **record,
                "data": [
                    item.model_dump(mode="json", by_alias=True)
                    for item in _to_item_responses(record["data"])
                ],
            }
        yield json.dumps(record, ensure_ascii=False) + "\n"


@router.get(
    "/stream",
    response_class=StreamingResponse,
    summary="流式获取热榜（NDJSON）",
)
async def stream_hot_lists(
    sources: str = Query(..., min_length=1, description="逗号分隔的数据源ID"),
    chunk_size: int = Query(5, alias="chunkSize", ge=1, le=100, description="每批条目数"),
    delay: int = Query(500, ge=0, le=10000, description="批间延迟（毫秒）"),
    service: HotListService = Depends(get_hot_list_service),
) -> StreamingResponse:
    source_ids = [s.strip() for s in sources.split(",") if s.strip()]
    if not source_ids:
        raise ValidationError("sources parameter is required")

    return StreamingResponse(
        _ndjson_lines(service, source_ids, chunk_size, delay),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache"},
    )
