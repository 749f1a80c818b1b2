"""
pytest 配置和共享 fixtures。

测试分层：
- unit/: 单元测试（不依赖外部服务，网络通过 httpx.MockTransport 模拟）
- integration/: HTTP API 测试（ASGITransport + 测试用 AppContext）

使用方法：
    # 运行所有测试
    pytest

    # 只运行单元测试
    pytest tests/unit/
"""

from collections.abc import AsyncGenerator, Callable

import pytest
from httpx import ASGITransport, AsyncClient

from hotboard.core.config import Settings
from hotboard.core.infrastructure.retry import RetryPolicy
from hotboard.modules.sources.application.context import AppContext, build_context
from hotboard.modules.sources.domain.entities import HotItem, SourceConfig, SourceType
from hotboard.modules.sources.domain.exceptions import NetworkError
from hotboard.modules.sources.domain.source import SourceDescriptor


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """测试环境配置。"""
    return Settings(
        ENVIRONMENT="local",
        CACHE_BACKEND="memory",
        CACHE_DIR=tmp_path / "cache",
        WARMUP_ENABLED=False,
        FETCH_JITTER_MS=0,
        NEWSNOW_API_BASE_URL="https://newsnow.test",
    )


class FakeClock:
    """可手动推进的毫秒时钟。"""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


async def no_sleep(_seconds: float) -> None:
    return None


def make_item(item_id: str, title: str | None = None) -> HotItem:
    return HotItem(
        id=item_id,
        title=title or f"Title {item_id}",
        url=f"https://example.com/{item_id}",
    )


def make_config(source_id: str, **overrides) -> SourceConfig:
    values = {
        "id": source_id,
        "name": source_id.capitalize(),
        "home_url": f"https://{source_id}.example.com",
    }
    values.update(overrides)
    return SourceConfig(**values)


def make_descriptor(
    source_id: str,
    handler: Callable | None = None,
    **overrides,
) -> SourceDescriptor:
    config = make_config(source_id, **overrides)
    if handler is None:
        return SourceDescriptor(config=config)
    return SourceDescriptor.from_handler(config, handler)


# ============================================
# HTTP Client Fixtures
# ============================================


async def sample_items() -> list[HotItem]:
    return [make_item("1", "First"), make_item("2", "Second"), make_item("3", "Third")]


async def failing_fetch() -> list[HotItem]:
    raise NetworkError("down", "https://down.example.com", status_code=500)


@pytest.fixture
def app_context(clock: FakeClock) -> AppContext:
    """测试用应用上下文：alpha 正常、down 失败、off 禁用。"""
    return build_context(
        [
            make_descriptor("alpha", sample_items, type=SourceType.NEWS),
            make_descriptor("down", failing_fetch),
            make_descriptor("off", sample_items, disabled=True),
        ],
        retry_policy=RetryPolicy(retry_count=0),
        clock=clock,
        sleep=no_sleep,
        rng=lambda: 0.0,
    )


@pytest.fixture
async def async_client(app_context: AppContext) -> AsyncGenerator[AsyncClient, None]:
    """异步 HTTP 客户端（用于 API 测试）。"""
    from hotboard.modules.sources.application.dependencies import get_app_context
    from main import app

    original_overrides = dict(app.dependency_overrides)
    app.dependency_overrides[get_app_context] = lambda: app_context

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    # 恢复依赖覆盖
    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)
