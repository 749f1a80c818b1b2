"""Tests for the two-tier CacheStore and staleness policy."""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from hotboard.modules.sources.application.cache_store import CacheStore
from hotboard.modules.sources.domain.cache import CacheEntry, CachePolicy
from hotboard.modules.sources.infrastructure.cache_backends import FileCacheBackend
from tests.conftest import FakeClock, make_item

pytestmark = pytest.mark.anyio


def _store(tmp_path: Path, clock: FakeClock, **kwargs) -> CacheStore:
    return CacheStore(FileCacheBackend(tmp_path), clock=clock, flush_delay_sec=60, **kwargs)


async def test_set_then_get_preserves_content_and_order(clock: FakeClock) -> None:
    store = CacheStore(clock=clock)
    items = [make_item("3"), make_item("1"), make_item("2")]

    await store.set("alpha", items)
    entry = await store.get("alpha")

    assert entry is not None
    assert list(entry.items) == items
    assert entry.updated_at_ms == clock()


async def test_get_missing_returns_none(clock: FakeClock) -> None:
    store = CacheStore(clock=clock)
    assert await store.get("nothing") is None


async def test_flush_writes_payload_to_backend(tmp_path: Path, clock: FakeClock) -> None:
    store = _store(tmp_path, clock)
    await store.initialize()

    await store.set("alpha", [make_item("1")])
    assert store.stats().dirty_entries == 1

    written = await store.flush()
    assert written == 1

    payload = json.loads((tmp_path / "alpha.json").read_text(encoding="utf-8"))
    assert payload["id"] == "alpha"
    assert payload["updated"] == clock()
    assert payload["items"][0]["url"] == "https://example.com/1"
    await store.close()


async def test_initialize_loads_persisted_entries(tmp_path: Path, clock: FakeClock) -> None:
    first = _store(tmp_path, clock)
    await first.initialize()
    await first.set("alpha", [make_item("1")])
    await first.set("beta", [])
    await first.close()

    second = _store(tmp_path, clock)
    loaded = await second.initialize()

    assert loaded == 2
    assert second.stats().memory_entries == 2
    entry = await second.get("alpha")
    assert [item.id for item in entry.items] == ["1"]


async def test_expired_persisted_entry_is_deleted_on_read(
    tmp_path: Path, clock: FakeClock
) -> None:
    first = _store(tmp_path, clock)
    await first.initialize()
    await first.set("alpha", [make_item("1")])
    await first.close()

    clock.advance(3_600_001)
    second = _store(tmp_path, clock)

    assert await second.get("alpha") is None
    assert not (tmp_path / "alpha.json").exists()


async def test_backend_hit_is_promoted_into_memory(tmp_path: Path, clock: FakeClock) -> None:
    first = _store(tmp_path, clock)
    await first.initialize()
    await first.set("alpha", [make_item("1")])
    await first.close()

    second = _store(tmp_path, clock)
    assert await second.get("alpha") is not None

    (tmp_path / "alpha.json").unlink()
    entry = await second.get("alpha")
    assert entry is not None
    assert second.stats().memory_entries == 1


async def test_get_many_skips_absent_entries(clock: FakeClock) -> None:
    store = CacheStore(clock=clock)
    await store.set("a", [make_item("1")])
    await store.set("c", [make_item("2")])

    entries = await store.get_many(["a", "b", "c"])
    assert [entry.source_id for entry in entries] == ["a", "c"]


async def test_delete_removes_memory_and_file(tmp_path: Path, clock: FakeClock) -> None:
    store = _store(tmp_path, clock)
    await store.initialize()
    await store.set("alpha", [make_item("1")])
    await store.flush()

    assert await store.delete("alpha") is True
    assert await store.get("alpha") is None
    assert not (tmp_path / "alpha.json").exists()
    # 不存在的条目删除不报错
    assert await store.delete("alpha") is False
    await store.close()


async def test_initialize_failure_degrades_to_memory_only(clock: FakeClock) -> None:
    backend = AsyncMock()
    backend.name = "broken"
    backend.initialize.side_effect = OSError("disk gone")
    store = CacheStore(backend, clock=clock)

    assert await store.initialize() == 0
    assert store.persistent is False

    await store.set("alpha", [make_item("1")])
    assert (await store.get("alpha")) is not None
    backend.write.assert_not_awaited()


async def test_persist_errors_are_swallowed(clock: FakeClock) -> None:
    backend = AsyncMock()
    backend.name = "flaky"
    backend.write.side_effect = OSError("read-only")
    backend.read.side_effect = OSError("read-only")
    backend.delete.side_effect = OSError("read-only")
    store = CacheStore(backend, clock=clock, flush_delay_sec=60)

    await store.set("alpha", [make_item("1")])
    assert await store.flush() == 0
    assert await store.get("missing") is None
    assert await store.delete("alpha") is True
    await store.close()


async def test_flush_is_debounced_and_single_flight(clock: FakeClock) -> None:
    backend = AsyncMock()
    backend.name = "mock"
    store = CacheStore(backend, clock=clock, flush_delay_sec=0.01)

    await store.set("a", [make_item("1")])
    first_task = store._flush_task
    await store.set("b", [make_item("2")])
    await store.set("a", [make_item("3")])
    assert store._flush_task is first_task
    assert store.stats().flush_pending is True

    await asyncio.wait_for(first_task, timeout=1)

    assert backend.write.await_count == 2
    written = {call.args[0]: call.args[1] for call in backend.write.await_args_list}
    assert written["a"]["items"][0]["id"] == "3"
    assert store.stats().dirty_entries == 0


class _SlowBackend:
    name = "slow"

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.stored: dict[str, dict] = {}

    async def initialize(self) -> None:
        return None

    async def list_keys(self) -> list[str]:
        return list(self.stored)

    async def read(self, key: str) -> dict | None:
        return self.stored.get(key)

    async def write(self, key: str, payload: dict) -> None:
        await asyncio.sleep(self.delay)
        self.stored[key] = payload

    async def delete(self, key: str) -> None:
        self.stored.pop(key, None)

    async def close(self) -> None:
        return None


async def test_close_during_flush_persists_every_dirty_entry(clock: FakeClock) -> None:
    backend = _SlowBackend(delay=0.05)
    store = CacheStore(backend, clock=clock, flush_delay_sec=0)
    await store.initialize()

    await store.set("a", [make_item("1")])
    await store.set("b", [make_item("2")])
    await asyncio.sleep(0.01)
    assert store.stats().flush_pending is True

    await store.close()

    assert sorted(backend.stored) == ["a", "b"]
    assert store.stats().dirty_entries == 0


async def test_update_during_write_stays_dirty(clock: FakeClock) -> None:
    backend = _SlowBackend(delay=0.02)
    store = CacheStore(backend, clock=clock, flush_delay_sec=60)

    await store.set("a", [make_item("1")])
    flushing = asyncio.ensure_future(store.flush())
    await asyncio.sleep(0.005)
    await store.set("a", [make_item("2")])
    await flushing

    assert store.stats().dirty_entries == 1
    await store.flush()
    assert backend.stored["a"]["items"][0]["id"] == "2"
    await store.close()


async def test_corrupt_persisted_entry_is_dropped(tmp_path: Path, clock: FakeClock) -> None:
    (tmp_path / "alpha.json").write_text('{"id": "alpha"}', encoding="utf-8")
    store = _store(tmp_path, clock)

    assert await store.get("alpha") is None
    assert not (tmp_path / "alpha.json").exists()


def test_policy_staleness_thresholds() -> None:
    policy = CachePolicy()
    start = 1_000_000
    empty = CacheEntry("a", (), start)
    full = CacheEntry("a", (make_item("1"),), start)

    assert policy.is_fresh(empty, start + 59_999)
    assert policy.is_stale(empty, start + 60_000)
    assert policy.is_fresh(full, start + 3_599_999)
    assert policy.is_stale(full, start + 3_600_000)


def test_entry_payload_rejects_bad_shape() -> None:
    with pytest.raises(ValueError, match="JSON object"):
        CacheEntry.from_payload([])
    with pytest.raises(ValueError, match="items"):
        CacheEntry.from_payload({"id": "a", "updated": 1})
