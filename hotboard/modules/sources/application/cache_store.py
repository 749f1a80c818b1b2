"""两级热榜缓存：内存 → 持久层。

- get: 内存优先；未命中时读持久层，未过期则回填内存
- set: 同步写内存，持久化由去抖的单飞 flush 任务异步完成
- 持久层任何 I/O 错误都只记录日志，不影响调用方
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from loguru import logger

from hotboard.core.domain.clock import Clock, epoch_ms
from hotboard.core.infrastructure.logging import BusinessEvents
from hotboard.modules.sources.domain.cache import CacheBackend, CacheEntry
from hotboard.modules.sources.domain.entities import HotItem

PERSIST_TTL_MS = 3_600_000


@dataclass(frozen=True)
class CacheStats:
    memory_entries: int
    dirty_entries: int
    backend: str
    persistent: bool
    flush_pending: bool


class CacheStore:
    """Per-source 缓存。

    所有 dict 的读-改-写都在同一段同步代码里完成。
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        *,
        persist_ttl_ms: int = PERSIST_TTL_MS,
        flush_delay_sec: float = 5.0,
        clock: Clock = epoch_ms,
    ):
        self._backend = backend
        self._persist_ttl_ms = persist_ttl_ms
        self._flush_delay_sec = flush_delay_sec
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}
        self._dirty: set[str] = set()
        self._flush_task: asyncio.Task[None] | None = None

    @property
    def persistent(self) -> bool:
        return self._backend is not None

    async def initialize(self) -> int:
        """扫描持久层，把未过期条目载入内存。

        失败时降级为纯内存模式，不阻断启动。返回载入条目数。
        """
        if self._backend is None:
            logger.info("Cache store running in memory-only mode")
            return 0

        try:
            await self._backend.initialize()
            keys = await self._backend.list_keys()
        except Exception as e:
            logger.warning(f"Cache backend {self._backend.name} unavailable: {e}")
            BusinessEvents.feature_degraded(
                feature="persistent_cache", reason=str(e)
            )
            self._backend = None
            return 0

        loaded = 0
        for key in keys:
            entry = await self._load(key)
            if entry is not None:
                self._memory[key] = entry
                loaded += 1
        logger.info(f"Cache store loaded {loaded}/{len(keys)} entries from {self._backend.name}")
        return loaded

    async def get(self, source_id: str) -> CacheEntry | None:
        entry = self._memory.get(source_id)
        if entry is not None:
            return entry
        if self._backend is None:
            return None

        entry = await self._load(source_id)
        if entry is not None:
            # await 期间可能已有新值写入内存，以内存为准
            entry = self._memory.setdefault(source_id, entry)
        return entry

    async def set(self, source_id: str, items: Sequence[HotItem]) -> CacheEntry:
        entry = CacheEntry(
            source_id=source_id,
            items=tuple(items),
            updated_at_ms=self._clock(),
        )
        self._memory[source_id] = entry
        if self._backend is not None:
            self._dirty.add(source_id)
            self._schedule_flush()
        return entry

    async def get_many(self, source_ids: Iterable[str]) -> list[CacheEntry]:
        """顺序读取，缺失的条目直接跳过。"""
        entries: list[CacheEntry] = []
        for source_id in source_ids:
            entry = await self.get(source_id)
            if entry is not None:
                entries.append(entry)
        return entries

    async def delete(self, source_id: str) -> bool:
        """移除条目，持久层删除尽力而为。返回内存中是否存在该条目。"""
        existed = self._memory.pop(source_id, None) is not None
        self._dirty.discard(source_id)
        if self._backend is not None:
            try:
                await self._backend.delete(source_id)
            except Exception as e:
                logger.warning(f"Failed to delete persisted cache for {source_id}: {e}")
                BusinessEvents.cache_persist_failed(
                    source_id=source_id, operation="delete", error=str(e)
                )
        return existed

    def stats(self) -> CacheStats:
        return CacheStats(
            memory_entries=len(self._memory),
            dirty_entries=len(self._dirty),
            backend=self._backend.name if self._backend else "memory",
            persistent=self._backend is not None,
            flush_pending=self._flush_task is not None and not self._flush_task.done(),
        )

    async def flush(self) -> int:
        """立即把脏条目写入持久层，返回写入成功数。"""
        if self._backend is None or not self._dirty:
            return 0

        # 写完（或写失败）之后才清除脏标记，被取消的写入留给下一次 flush
        written = 0
        for key in list(self._dirty):
            entry = self._memory.get(key)
            if entry is None:
                self._dirty.discard(key)
                continue
            try:
                await self._backend.write(key, entry.to_payload())
                written += 1
            except Exception as e:
                logger.warning(f"Failed to persist cache for {key}: {e}")
                BusinessEvents.cache_persist_failed(
                    source_id=key, operation="write", error=str(e)
                )
            # 写入期间有更新的值则保持脏状态
            if self._memory.get(key) is entry:
                self._dirty.discard(key)
        return written

    async def close(self) -> None:
        """取消待执行的 flush，同步写出剩余脏数据并关闭后端。"""
        if self._flush_task is not None and not self._flush_task.done():
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
        self._flush_task = None
        await self.flush()
        if self._backend is not None:
            try:
                await self._backend.close()
            except Exception as e:
                logger.warning(f"Failed to close cache backend: {e}")

    def _schedule_flush(self) -> None:
        # 单飞：已有待执行的 flush 时不重复调度
        if self._flush_task is not None and not self._flush_task.done():
            return
        self._flush_task = asyncio.get_running_loop().create_task(
            self._flush_after_delay()
        )

    async def _flush_after_delay(self) -> None:
        # flush 期间的新写入不会另起任务，由本循环继续处理
        while True:
            await asyncio.sleep(self._flush_delay_sec)
            await self.flush()
            if not self._dirty:
                return

    async def _load(self, key: str) -> CacheEntry | None:
        """读持久层条目；过期条目在读取时删除。"""
        assert self._backend is not None
        try:
            payload = await self._backend.read(key)
        except Exception as e:
            logger.warning(f"Failed to read persisted cache for {key}: {e}")
            return None
        if payload is None:
            return None

        try:
            entry = CacheEntry.from_payload(payload)
        except ValueError as e:
            logger.warning(f"Corrupt cache entry for {key}: {e}")
            await self._delete_persisted(key)
            return None

        if entry.age_ms(self._clock()) > self._persist_ttl_ms:
            await self._delete_persisted(key)
            return None
        return entry

    async def _delete_persisted(self, key: str) -> None:
        if self._backend is None:
            return
        try:
            await self._backend.delete(key)
        except Exception as e:
            logger.debug(f"Failed to delete expired cache for {key}: {e}")
