"""Tests for persistent cache backends."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from hotboard.core.infrastructure.health import HealthStatus
from hotboard.core.infrastructure.redis import RedisClient, RedisKeys
from hotboard.modules.sources.infrastructure.cache_backends import (
    FileCacheBackend,
    RedisCacheBackend,
)

pytestmark = pytest.mark.anyio


class TestFileCacheBackend:
    async def test_write_read_delete(self, tmp_path: Path) -> None:
        backend = FileCacheBackend(tmp_path / "cache")
        await backend.initialize()

        await backend.write("weibo", {"id": "weibo", "items": [], "updated": 1, "title": "微博"})

        assert await backend.read("weibo") == {
            "id": "weibo",
            "items": [],
            "updated": 1,
            "title": "微博",
        }
        assert await backend.list_keys() == ["weibo"]
        assert not list((tmp_path / "cache").glob("*.tmp"))

        await backend.delete("weibo")
        assert await backend.read("weibo") is None
        # 重复删除不报错
        await backend.delete("weibo")

    async def test_list_keys_on_missing_directory(self, tmp_path: Path) -> None:
        assert await FileCacheBackend(tmp_path / "missing").list_keys() == []

    @pytest.mark.parametrize("key", ["../etc/passwd", "a/b", "", ".hidden"])
    async def test_rejects_unsafe_keys(self, tmp_path: Path, key: str) -> None:
        backend = FileCacheBackend(tmp_path)

        with pytest.raises(ValueError):
            await backend.read(key)

    async def test_health_check(self, tmp_path: Path) -> None:
        backend = FileCacheBackend(tmp_path)
        result = await backend.health_check()

        assert result.status == HealthStatus.OK
        assert result.connected is True


class TestRedisCacheBackend:
    @pytest.fixture
    def redis_client(self) -> AsyncMock:
        client = AsyncMock(spec=RedisClient)
        client.ping.return_value = True
        return client

    async def test_initialize_requires_ping(self, redis_client: AsyncMock) -> None:
        backend = RedisCacheBackend(redis_client)
        await backend.initialize()

        redis_client.ping.return_value = False
        with pytest.raises(ConnectionError):
            await backend.initialize()

    async def test_operations_use_namespaced_keys(self, redis_client: AsyncMock) -> None:
        backend = RedisCacheBackend(redis_client, ttl_sec=3600)
        payload = {"id": "zhihu", "items": [], "updated": 1}
        redis_client.get_json.return_value = payload

        await backend.write("zhihu", payload)
        assert await backend.read("zhihu") == payload
        await backend.delete("zhihu")

        redis_client.set_json.assert_awaited_once_with("hotcache:zhihu", payload, ex=3600)
        redis_client.get_json.assert_awaited_once_with("hotcache:zhihu")
        redis_client.delete.assert_awaited_once_with("hotcache:zhihu")

    async def test_list_keys_scans_prefix(self, redis_client: AsyncMock) -> None:
        async def scan(pattern: str):
            assert pattern == RedisKeys.hot_cache_pattern()
            for key in ("hotcache:weibo", "hotcache:zhihu"):
                yield key

        redis_client.scan_keys = scan
        backend = RedisCacheBackend(redis_client)

        assert await backend.list_keys() == ["weibo", "zhihu"]


def test_redis_keys() -> None:
    assert RedisKeys.hot_cache("weibo") == "hotcache:weibo"
    assert RedisKeys.hot_cache_pattern() == "hotcache:*"
    assert RedisKeys.source_id_from_hot_cache("hotcache:36kr-quick") == "36kr-quick"
