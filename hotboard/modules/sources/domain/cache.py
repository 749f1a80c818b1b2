"""Hot list cache domain models and ports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from hotboard.modules.sources.domain.entities import HotItem

FRESH_TTL_MS = 3_600_000
EMPTY_TTL_MS = 60_000


@dataclass(frozen=True)
class CacheEntry:
    """一个数据源的缓存快照，items 顺序即源排名顺序。"""

    source_id: str
    items: tuple[HotItem, ...]
    updated_at_ms: int

    @property
    def is_empty(self) -> bool:
        return not self.items

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.updated_at_ms

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.source_id,
            "items": [item.model_dump(mode="json") for item in self.items],
            "updated": self.updated_at_ms,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> CacheEntry:
        if not isinstance(payload, dict):
            raise ValueError("Cache payload must be a JSON object")
        source_id = payload.get("id")
        updated = payload.get("updated")
        items_raw = payload.get("items")
        if not isinstance(source_id, str) or not isinstance(updated, int):
            raise ValueError("Cache payload missing id/updated")
        if not isinstance(items_raw, list):
            raise ValueError("Cache payload missing items list")
        return cls(
            source_id=source_id,
            items=tuple(HotItem.model_validate(raw) for raw in items_raw),
            updated_at_ms=updated,
        )


@dataclass(frozen=True)
class CachePolicy:
    """新鲜度策略（由调用方应用，而非缓存本身）。

    有数据的条目 1 小时内新鲜；空结果只保留 1 分钟，
    以便从临时性空结果中快速恢复又不至于频繁请求上游。
    """

    fresh_ttl_ms: int = FRESH_TTL_MS
    empty_ttl_ms: int = EMPTY_TTL_MS

    def ttl_for(self, entry: CacheEntry) -> int:
        return self.empty_ttl_ms if entry.is_empty else self.fresh_ttl_ms

    def is_fresh(self, entry: CacheEntry, now_ms: int) -> bool:
        return entry.age_ms(now_ms) < self.ttl_for(entry)

    def is_stale(self, entry: CacheEntry, now_ms: int) -> bool:
        return not self.is_fresh(entry, now_ms)


class CacheBackend(Protocol):
    """Port: 持久层 key → JSON blob 存储（每个 source 一个 blob）。"""

    name: str

    async def initialize(self) -> None: ...

    async def read(self, key: str) -> dict[str, Any] | None: ...

    async def write(self, key: str, payload: dict[str, Any]) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list_keys(self) -> list[str]: ...

    async def close(self) -> None: ...
