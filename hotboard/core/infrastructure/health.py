"""统一的健康检查类型定义。

所有基础设施组件的健康检查都使用这些类型，确保类型安全和一致性。
"""

from collections.abc import Awaitable, Callable
from enum import Enum

from loguru import logger
from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """健康检查状态枚举。"""

    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"
    DEGRADED = "degraded"


class ComponentHealthResult(BaseModel):
    """单个组件的健康检查结果。"""

    status: HealthStatus = Field(..., description="健康状态")
    connected: bool = Field(..., description="是否可用")
    detail: str | None = Field(None, description="附加信息")
    error: str | None = Field(None, description="错误信息")

    def to_dict(self) -> dict[str, str | bool | None]:
        """转换为字典（用于 API 响应）。"""
        return self.model_dump(mode="json", exclude_none=False)


HealthCheck = Callable[[], Awaitable[ComponentHealthResult]]


class HealthCheckRegistry:
    """命名的组件健康检查集合，由 /health 端点统一执行。"""

    def __init__(self) -> None:
        self._checks: dict[str, HealthCheck] = {}
        self._last_results: dict[str, ComponentHealthResult] = {}

    def register(self, name: str, check: HealthCheck) -> None:
        self._checks[name] = check

    async def run_all(self) -> dict[str, ComponentHealthResult]:
        results: dict[str, ComponentHealthResult] = {}
        for name, check in self._checks.items():
            try:
                result = await check()
            except Exception as e:
                logger.error(f"[HealthCheck] {name} error: {e}")
                result = ComponentHealthResult(
                    status=HealthStatus.ERROR, connected=False, error=str(e)
                )
            if result.status == HealthStatus.ERROR:
                logger.warning(f"[HealthCheck] {name} check failed")
            results[name] = result
        self._last_results = results
        return results

    @property
    def last_results(self) -> dict[str, ComponentHealthResult]:
        return dict(self._last_results)

    def overall_ok(self) -> bool:
        return bool(self._last_results) and all(
            r.status in (HealthStatus.OK, HealthStatus.SKIPPED, HealthStatus.DEGRADED)
            for r in self._last_results.values()
        )
