"""持久层缓存后端实现。

- FileCacheBackend: 每个 source 一个 JSON 文件（默认）
- RedisCacheBackend: hotcache:{source_id}，SCAN 做启动预加载
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from pathlib import Path
from typing import Any

from loguru import logger

from hotboard.core.infrastructure.health import ComponentHealthResult, HealthStatus
from hotboard.core.infrastructure.redis import RedisClient, RedisKeys

_SAFE_KEY = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


class FileCacheBackend:
    """JSON 文件持久层。

    文件 I/O 放在线程中执行，写入先写临时文件再原子替换。
    """

    name = "file"

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid cache key: {key!r}")
        return self.directory / f"{key}.json"

    async def initialize(self) -> None:
        await asyncio.to_thread(self.directory.mkdir, parents=True, exist_ok=True)

    async def read(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)

        def _read() -> dict[str, Any] | None:
            try:
                text = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            return json.loads(text)

        return await asyncio.to_thread(_read)

    async def write(self, key: str, payload: dict[str, Any]) -> None:
        path = self._path(key)
        data = json.dumps(payload, ensure_ascii=False)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(data, encoding="utf-8")
            os.replace(tmp, path)

        await asyncio.to_thread(_write)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    async def list_keys(self) -> list[str]:
        def _list() -> list[str]:
            if not self.directory.exists():
                return []
            return sorted(p.stem for p in self.directory.glob("*.json"))

        return await asyncio.to_thread(_list)

    async def close(self) -> None:
        return None

    async def health_check(self) -> ComponentHealthResult:
        writable = await asyncio.to_thread(os.access, self.directory, os.W_OK)
        return ComponentHealthResult(
            status=HealthStatus.OK if writable else HealthStatus.ERROR,
            connected=writable,
            detail=str(self.directory),
            error=None if writable else "cache directory not writable",
        )


class RedisCacheBackend:
    """Redis 持久层。

    过期由调用方（CacheStore）按 updated 时间判断；这里额外设置
    key TTL，避免长期无人读取的快照堆积。
    """

    name = "redis"

    def __init__(self, client: RedisClient, ttl_sec: int | None = None):
        self.client = client
        self.ttl_sec = ttl_sec

    async def initialize(self) -> None:
        if not await self.client.ping():
            raise ConnectionError("Redis is not reachable")

    async def read(self, key: str) -> dict[str, Any] | None:
        return await self.client.get_json(RedisKeys.hot_cache(key))

    async def write(self, key: str, payload: dict[str, Any]) -> None:
        await self.client.set_json(RedisKeys.hot_cache(key), payload, ex=self.ttl_sec)

    async def delete(self, key: str) -> None:
        await self.client.delete(RedisKeys.hot_cache(key))

    async def list_keys(self) -> list[str]:
        keys = [
            RedisKeys.source_id_from_hot_cache(key)
            async for key in self.client.scan_keys(RedisKeys.hot_cache_pattern())
        ]
        logger.debug(f"Redis cache scan found {len(keys)} keys")
        return keys

    async def close(self) -> None:
        await self.client.close()

    async def health_check(self) -> ComponentHealthResult:
        return await self.client.health_check()
