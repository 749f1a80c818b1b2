"""Application configuration."""

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, HttpUrl, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_csv(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "hotboard"
    API_VERSION: str = "1.0"
    SERVER_PORT: int = 8000
    ROOTPATH: str = ""
    API_V1_STR: str = "/api/v1"
    FRONTEND_HOST: str = "http://localhost:3000"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_csv)
    ] = []

    @computed_field
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    # Sentry
    SENTRY_DSN: HttpUrl | None = None

    # 受限部署环境（如 Cloudflare Workers）下，disabled="conditional" 的源视为禁用
    RESTRICTED_DEPLOYMENT: bool = False

    # Source catalog
    SOURCE_CATALOG_PATH: Path = (
        Path(__file__).resolve().parents[1] / "resources" / "sources" / "catalog.json"
    )

    # NewsNow compatible upstream
    NEWSNOW_API_BASE_URL: str = "https://newsnow.busiyi.world"
    NEWSNOW_API_PATH: str = "/api/s"
    FETCHER_USER_AGENT: str = (
        "Mozilla/5.0 (compatible; hotboard/0.1; +https://github.com/hotboard)"
    )
    FETCH_TIMEOUT_MS: int = 15_000  # 单源抓取超时
    FETCH_JITTER_MS: int = 300  # 抓取前随机延迟上限，避免同时打满上游

    # Cache
    CACHE_BACKEND: Literal["file", "redis", "memory"] = "file"
    CACHE_DIR: Path = Path("data") / "cache"
    CACHE_FRESH_TTL_MS: int = 3_600_000  # 有数据：1 小时
    CACHE_EMPTY_TTL_MS: int = 60_000  # 空结果：1 分钟
    CACHE_PERSIST_TTL_MS: int = 3_600_000  # 持久层条目独立过期
    CACHE_FLUSH_DELAY_SEC: float = 5.0

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Batch / scheduler
    BATCH_DEFAULT_CONCURRENCY: int = 5
    BATCH_MAX_CONCURRENCY: int = 10
    BATCH_DEFAULT_LIMIT: int = 10
    BATCH_TIMEOUT_MS: int = 30_000
    BATCH_PRIORITY: int = 100

    # Retry
    RETRY_COUNT: int = 0
    RETRY_DELAY_MS: int = 1000
    RETRY_MAX_DELAY_MS: int = 30_000
    RETRY_BACKOFF: Literal["fixed", "linear", "exponential"] = "fixed"

    # Health policy
    HEALTH_DEGRADED_RATE: float = 0.8
    HEALTH_UNHEALTHY_RATE: float = 0.5
    HEALTH_RECENT_ERROR_WINDOW_MS: int = 5 * 60 * 1000

    # Metrics
    METRICS_WINDOW_SIZE: int = 1000
    METRICS_DEGRADED_ERROR_RATE: float = 0.05
    METRICS_UNHEALTHY_ERROR_RATE: float = 0.2

    # Warmup（启动时后台预热热门源）
    WARMUP_ENABLED: bool = True
    WARMUP_SOURCES: Annotated[list[str] | str, BeforeValidator(parse_csv)] = [
        "weibo",
        "zhihu",
        "baidu",
        "bilibili-hot-search",
        "douyin",
        "github-trending-today",
    ]
    WARMUP_CONCURRENCY: int = 3
    WARMUP_DELAY_MS: int = 200
    WARMUP_BATCH_PAUSE_MS: int = 1000
    WARMUP_TIMEOUT_MS: int = 30_000


settings = Settings()
