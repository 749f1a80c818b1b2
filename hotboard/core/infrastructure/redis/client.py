"""Redis 客户端封装。

热榜快照持久层使用的最小接口：
- 连接延迟建立，首次访问时才创建连接池
- ping / 健康检查
- JSON 快照读写、删除、按前缀 SCAN
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import redis.asyncio as aioredis
from loguru import logger

if TYPE_CHECKING:
    from redis.asyncio import Redis

from hotboard.core.config import settings
from hotboard.core.infrastructure.health import ComponentHealthResult, HealthStatus


class RedisClient:
    """Async Redis wrapper (decode_responses=True，值均为 str)。"""

    def __init__(self, url: str | None = None):
        self._url = url or settings.REDIS_URL
        self._client: Redis | None = None

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = aioredis.from_url(
                self._url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=10.0,
                socket_connect_timeout=5.0,
                retry_on_timeout=True,
            )
        return self._client

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def ping(self) -> bool:
        """连接可用返回 True；任何错误都视为不可用。"""
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning(f"Redis ping to {self._url} failed: {e}")
            return False

    async def health_check(self) -> ComponentHealthResult:
        if not await self.ping():
            return ComponentHealthResult(
                status=HealthStatus.ERROR,
                connected=False,
                error="ping failed",
            )
        try:
            info = await self.client.info("server")
        except Exception as e:
            return ComponentHealthResult(
                status=HealthStatus.DEGRADED, connected=True, error=str(e)
            )
        return ComponentHealthResult(
            status=HealthStatus.OK,
            connected=True,
            detail=f"redis {info.get('redis_version', 'unknown')}",
        )

    # ============ 基础操作 ============

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ex: int | timedelta | None = None) -> bool:
        """写入字符串值，ex 为过期时间（秒或 timedelta），None 表示不过期。"""
        return bool(await self.client.set(key, value, ex=ex))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self.client.delete(*keys)

    async def scan_keys(self, pattern: str) -> AsyncIterator[str]:
        """按模式遍历 key（SCAN，不阻塞服务端）。"""
        async for key in self.client.scan_iter(match=pattern, count=100):
            yield key

    # ============ JSON 快照 ============

    async def get_json(self, key: str) -> Any | None:
        raw = await self.get(key)
        return None if raw is None else json.loads(raw)

    async def set_json(
        self, key: str, value: Any, ex: int | timedelta | None = None
    ) -> bool:
        return await self.set(key, json.dumps(value, ensure_ascii=False), ex=ex)
