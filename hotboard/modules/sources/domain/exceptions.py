"""Source domain exceptions.

两类异常：
- DomainException 子类：映射为 HTTP 响应（404 / 503）
- FetchError 家族：适配器抓取失败的分类（Network / Parse / Config），
  由 ErrorHandler 统一捕获、重试、统计
"""

from enum import StrEnum

from hotboard.core.domain.exceptions import EntityNotFoundError, ServiceUnavailableError


class SourceNotFoundError(EntityNotFoundError):
    """Raised when source is not registered."""

    error_code = "SOURCE_NOT_FOUND"

    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__("Source", source_id)


class SourceUnavailableError(ServiceUnavailableError):
    """Raised when a source is disabled or unhealthy."""

    error_code = "SOURCE_UNAVAILABLE"

    def __init__(self, source_id: str, reason: str):
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"Source '{source_id}' temporarily unavailable: {reason}")


class ErrorKind(StrEnum):
    """抓取错误分类。"""

    NETWORK = "network"
    PARSE = "parse"
    CONFIG = "config"
    UNKNOWN = "unknown"


class FetchError(Exception):
    """Base class for source fetch failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        source_id: str,
        message: str,
        *,
        status_code: int | None = None,
    ):
        self.source_id = source_id
        self.status_code = status_code
        super().__init__(f"[{source_id}] {message}")

    @property
    def retryable(self) -> bool:
        return False


class NetworkError(FetchError):
    """Transport or HTTP-layer failure.

    5xx / 无状态码（连接失败、超时）可重试，4xx 不重试。
    """

    kind = ErrorKind.NETWORK

    def __init__(
        self,
        source_id: str,
        url: str,
        *,
        status_code: int | None = None,
        reason: str | None = None,
    ):
        self.url = url
        message = f"Network request failed: {url}"
        if status_code is not None:
            message = f"{message} (HTTP {status_code})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(source_id, message, status_code=status_code)

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code >= 500

    @property
    def temporary(self) -> bool:
        return self.status_code in (429, 503)


class ParseError(FetchError):
    """Upstream payload did not have the expected shape."""

    kind = ErrorKind.PARSE

    def __init__(self, source_id: str, message: str):
        super().__init__(source_id, f"Parse error: {message}")


class ConfigError(FetchError):
    """Source configuration is invalid."""

    kind = ErrorKind.CONFIG

    def __init__(self, source_id: str, message: str):
        super().__init__(source_id, f"Configuration error: {message}")


def classify_error(error: BaseException) -> ErrorKind:
    """将任意异常归入错误分类。"""
    if isinstance(error, FetchError):
        return error.kind
    return ErrorKind.UNKNOWN
