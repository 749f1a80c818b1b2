"""Logging configuration with structlog integration.

提供两种日志记录方式：
1. loguru: 用于一般调试日志
2. structlog: 用于关键业务事件的结构化日志
"""

import sys
from typing import Any

import structlog
from loguru import logger

from hotboard.core.config import settings


def setup_logging() -> None:
    """Configure application logging with structlog and loguru."""
    _configure_structlog()
    _configure_loguru()

    logger.info(f"Logging configured with level: {settings.LOG_LEVEL}")


def _configure_structlog() -> None:
    """配置 structlog 处理器链。"""
    if settings.ENVIRONMENT == "local":
        # 本地开发使用人类可读格式
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _get_log_level_number(settings.LOG_LEVEL)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _configure_loguru() -> None:
    """配置 loguru。"""
    logger.remove()

    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    if settings.ENVIRONMENT != "local":
        logger.add(
            f"{settings.LOG_DIR}/hotboard_{{time:YYYY-MM-DD}}.log",
            rotation="00:00",
            retention="14 days",
            level="INFO",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )


def _get_log_level_number(level: str) -> int:
    """将日志级别字符串转换为数字。"""
    levels = {
        "DEBUG": 10,
        "INFO": 20,
        "WARNING": 30,
        "ERROR": 40,
        "CRITICAL": 50,
    }
    return levels.get(level.upper(), 20)


# ============================================================================
# 业务事件日志记录器
# ============================================================================


class BusinessEvents:
    """业务事件日志助手类。

    提供统一的业务事件日志记录接口，确保事件格式一致。

    Usage:
        from hotboard.core.infrastructure.logging import BusinessEvents

        BusinessEvents.source_fetch_succeeded(source_id="weibo", items=50, duration_ms=320)
    """

    _log = structlog.get_logger("business.events")

    @classmethod
    def source_registered(
        cls,
        source_id: str,
        name: str,
        overwritten: bool,
        **extra: Any,
    ) -> None:
        """记录数据源注册事件。"""
        cls._log.info(
            "source_registered",
            event_type="registry",
            source_id=source_id,
            name=name,
            overwritten=overwritten,
            **extra,
        )

    @classmethod
    def source_fetch_succeeded(
        cls,
        source_id: str,
        items: int,
        duration_ms: float,
        **extra: Any,
    ) -> None:
        """记录源抓取成功事件。"""
        cls._log.info(
            "source_fetch_succeeded",
            event_type="fetch",
            source_id=source_id,
            items=items,
            duration_ms=round(duration_ms, 1),
            **extra,
        )

    @classmethod
    def source_fetch_failed(
        cls,
        source_id: str,
        error: str,
        error_kind: str,
        attempts: int | None = None,
        **extra: Any,
    ) -> None:
        """记录源抓取失败事件。"""
        cls._log.warning(
            "source_fetch_failed",
            event_type="fetch_error",
            source_id=source_id,
            error=error,
            error_kind=error_kind,
            attempts=attempts,
            **extra,
        )

    @classmethod
    def cache_persist_failed(
        cls,
        source_id: str,
        operation: str,
        error: str,
        **extra: Any,
    ) -> None:
        """记录持久层缓存读写失败事件。"""
        cls._log.warning(
            "cache_persist_failed",
            event_type="cache",
            source_id=source_id,
            operation=operation,
            error=error,
            **extra,
        )

    @classmethod
    def batch_completed(
        cls,
        total: int,
        succeeded: int,
        failed: int,
        duration_ms: float,
        **extra: Any,
    ) -> None:
        """记录批量抓取完成事件。"""
        cls._log.info(
            "batch_completed",
            event_type="batch",
            total=total,
            succeeded=succeeded,
            failed=failed,
            duration_ms=round(duration_ms, 1),
            **extra,
        )

    @classmethod
    def warmup_completed(
        cls,
        succeeded: int,
        failed: int,
        skipped: int,
        **extra: Any,
    ) -> None:
        """记录缓存预热完成事件。"""
        cls._log.info(
            "warmup_completed",
            event_type="warmup",
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            **extra,
        )

    @classmethod
    def feature_degraded(
        cls,
        feature: str,
        reason: str,
        **extra: Any,
    ) -> None:
        """记录功能降级事件。"""
        cls._log.warning(
            "feature_degraded",
            event_type="degradation",
            feature=feature,
            reason=reason,
            **extra,
        )
