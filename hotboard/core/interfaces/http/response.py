"""Standard API response models.

所有响应都带 apiVersion + timestamp（毫秒）信封。
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from hotboard.core.config import settings
from hotboard.core.domain.clock import epoch_ms

T = TypeVar("T")


class Envelope(BaseModel):
    """Response envelope base."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    api_version: str = Field(default=settings.API_VERSION, alias="apiVersion")
    timestamp: int = Field(default_factory=epoch_ms)


class ApiResponse(Envelope, Generic[T]):
    """Standard API response model."""

    data: T | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def success(
        cls,
        data: T = None,
        meta: dict[str, Any] | None = None,
    ) -> "ApiResponse[T]":
        return cls(data=data, meta=meta)


class ErrorResponse(Envelope):
    """Error response model."""

    error: dict[str, Any]

    @classmethod
    def create(
        cls,
        code: str,
        message: str,
        details: Any = None,
    ) -> "ErrorResponse":
        error_dict: dict[str, Any] = {"code": code, "message": message}
        if details:
            error_dict["details"] = details
        return cls(error=error_dict)
