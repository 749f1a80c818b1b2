"""Source domain entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

CONDITIONAL = "conditional"

DisabledFlag = bool | Literal["conditional"]


class SourceType(StrEnum):
    """数据源类型。"""

    REALTIME = "realtime"
    HOTSPOT = "hotspot"
    NEWS = "news"


class HealthState(StrEnum):
    """数据源健康状态。"""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class HotItem(BaseModel):
    """一条热榜条目（值对象，生成后不可修改）。"""

    model_config = ConfigDict(frozen=True)

    id: str | int = Field(..., description="条目ID（源内唯一）")
    title: str = Field(..., min_length=1, description="标题")
    url: str = Field(..., description="原文URL")
    published_at: datetime | None = Field(default=None, description="发布时间")
    extra: dict[str, Any] | None = Field(
        default=None, description="附加信息（rank / score / info / icon）"
    )

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"url must be an absolute http(s) URL: {value!r}")
        return value


class SourceConfig(BaseModel):
    """数据源配置：身份与策略。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="数据源唯一标识")
    name: str = Field(..., description="数据源名称")
    home_url: str = Field(..., description="主页URL")
    type: SourceType = Field(default=SourceType.HOTSPOT, description="数据类型")
    refresh_interval_ms: int = Field(default=600_000, ge=0, description="刷新间隔（毫秒）")
    enabled: bool = Field(default=True, description="是否启用")
    disabled: DisabledFlag = Field(
        default=False, description="是否禁用，conditional 表示仅在受限部署环境禁用"
    )
    title: str | None = Field(default=None, description="副标题")
    column: str | None = Field(default=None, description="栏目分类")
    color: str | None = Field(default=None, description="颜色主题")
    desc: str | None = Field(default=None, description="描述")

    def is_disabled(self, restricted: bool = False) -> bool:
        """restricted 为 True 时 conditional 视为禁用。"""
        if self.disabled == CONDITIONAL:
            return restricted
        return bool(self.disabled)

    def is_usable(self, restricted: bool = False) -> bool:
        return self.enabled and not self.is_disabled(restricted)


@dataclass
class SourceMetrics:
    """单个数据源的滚动计数。

    total_requests == successful_requests + failed_requests 恒成立。
    """

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    avg_response_time_ms: float = 0.0
    last_success_ms: int | None = None
    last_error_ms: int | None = None
    error_types: dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float | None:
        if self.total_requests == 0:
            return None
        return self.successful_requests / self.total_requests

    def copy(self) -> SourceMetrics:
        return SourceMetrics(
            total_requests=self.total_requests,
            successful_requests=self.successful_requests,
            failed_requests=self.failed_requests,
            avg_response_time_ms=self.avg_response_time_ms,
            last_success_ms=self.last_success_ms,
            last_error_ms=self.last_error_ms,
            error_types=dict(self.error_types),
        )


@dataclass(frozen=True)
class SourceHealth:
    status: HealthState
    reason: str | None = None
