"""Source API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hotboard.modules.sources.domain.entities import HealthState, SourceType


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HotItemResponse(_CamelModel):
    """Hot list item."""

    id: str | int = Field(..., description="条目ID")
    title: str = Field(..., description="标题")
    url: str = Field(..., description="原文URL")
    published_at: datetime | None = Field(None, alias="publishedAt", description="发布时间")
    extra: dict[str, Any] | None = Field(None, description="附加信息")


class SourceResponse(_CamelModel):
    """Source config response."""

    id: str = Field(..., description="数据源ID")
    name: str = Field(..., description="数据源名称")
    title: str | None = Field(None, description="副标题")
    type: SourceType = Field(..., description="数据类型")
    home_url: str = Field(..., alias="homeUrl", description="主页URL")
    column: str | None = Field(None, description="栏目分类")
    color: str | None = Field(None, description="颜色主题")
    desc: str | None = Field(None, description="描述")
    refresh_interval_ms: int = Field(..., alias="refreshIntervalMs", description="刷新间隔")
    enabled: bool = Field(..., description="是否启用")
    disabled: bool | str = Field(..., description="是否禁用（conditional 为受限部署禁用）")
    available: bool = Field(..., description="当前是否可用")


class SourceHealthResponse(_CamelModel):
    """Source health classification."""

    id: str
    status: HealthState
    reason: str | None = None


class SourceMetricsResponse(_CamelModel):
    """Per-source request metrics."""

    total_requests: int = Field(..., alias="totalRequests")
    successful_requests: int = Field(..., alias="successfulRequests")
    failed_requests: int = Field(..., alias="failedRequests")
    success_rate: float | None = Field(None, alias="successRate")
    avg_response_time_ms: float = Field(..., alias="avgResponseTimeMs")
    last_success: int | None = Field(None, alias="lastSuccess")
    last_error: int | None = Field(None, alias="lastError")
    error_types: dict[str, int] = Field(default_factory=dict, alias="errorTypes")


class SourceDetailResponse(_CamelModel):
    """Source detail: config + health + metrics."""

    source: SourceResponse
    health: SourceHealthResponse
    metrics: SourceMetricsResponse | None = None


class HotListResponse(_CamelModel):
    """Single source hot list."""

    source_id: str = Field(..., alias="sourceId")
    success: bool
    cached: bool
    stale: bool = False
    updated: int = Field(..., description="数据更新时间（毫秒）")
    count: int
    items: list[HotItemResponse]
    error: str | None = None


class BatchItemResponse(_CamelModel):
    id: str
    success: bool
    cached: bool = False
    count: int = 0
    items: list[HotItemResponse] = Field(default_factory=list)
    error: str | None = None


class CacheEvictResponse(_CamelModel):
    source_id: str = Field(..., alias="sourceId")
    evicted: bool


class ErrorStatsResponse(_CamelModel):
    source_id: str = Field(..., alias="sourceId")
    count: int
    last_error: int | None = Field(None, alias="lastError")
    last_message: str | None = Field(None, alias="lastMessage")
    error_kinds: dict[str, int] = Field(default_factory=dict, alias="errorKinds")
    last_attempts: int | None = Field(None, alias="lastAttempts")
