"""Tests for SourceRegistry."""

import pytest

from hotboard.modules.sources.application.registry import SourceRegistry
from hotboard.modules.sources.domain.entities import HealthState, SourceType
from hotboard.modules.sources.domain.exceptions import NetworkError
from tests.conftest import FakeClock, make_descriptor


@pytest.fixture
def registry(clock: FakeClock) -> SourceRegistry:
    return SourceRegistry(clock=clock)


def test_register_and_get(registry: SourceRegistry) -> None:
    registry.register(make_descriptor("alpha"))

    assert registry.has("alpha")
    assert registry.get("alpha").config.name == "Alpha"
    assert registry.get("missing") is None
    assert registry.get_config("missing") is None


def test_register_overwrites_existing_entry(registry: SourceRegistry) -> None:
    registry.register(make_descriptor("alpha", name="Old"))
    registry.record_metrics("alpha", 10, True)

    registry.register(make_descriptor("alpha", name="New"))

    assert len(registry) == 1
    assert registry.get_config("alpha").name == "New"
    # 覆盖不会清空已有指标
    assert registry.get_metrics("alpha").total_requests == 1


def test_register_batch(registry: SourceRegistry) -> None:
    registry.register_batch([make_descriptor("a"), make_descriptor("b")])
    assert {c.id for c in registry.list_sources()} == {"a", "b"}


def test_list_sources_filters_by_exact_match(registry: SourceRegistry) -> None:
    registry.register_batch(
        [
            make_descriptor("a", type=SourceType.NEWS),
            make_descriptor("b", type=SourceType.REALTIME),
            make_descriptor("c", type=SourceType.NEWS, enabled=False),
        ]
    )

    assert [c.id for c in registry.list_sources(type=SourceType.NEWS)] == ["a", "c"]
    assert [c.id for c in registry.list_sources(type=SourceType.NEWS, enabled=True)] == ["a"]
    assert registry.list_sources(unknown_field="x") == []


def test_list_enabled_excludes_disabled_sources(clock: FakeClock) -> None:
    descriptors = [
        make_descriptor("on"),
        make_descriptor("off", enabled=False),
        make_descriptor("blocked", disabled=True),
        make_descriptor("cf", disabled="conditional"),
    ]

    open_registry = SourceRegistry(clock=clock)
    open_registry.register_batch(descriptors)
    assert [c.id for c in open_registry.list_enabled()] == ["on", "cf"]

    restricted = SourceRegistry(restricted=True, clock=clock)
    restricted.register_batch(descriptors)
    assert [c.id for c in restricted.list_enabled()] == ["on"]
    assert restricted.is_disabled("cf")
    assert restricted.is_disabled("missing")


def test_record_metrics_keeps_counts_consistent(registry: SourceRegistry) -> None:
    registry.register(make_descriptor("alpha"))

    outcomes = [True, False, True, True, False]
    for index, success in enumerate(outcomes):
        registry.record_metrics(
            "alpha",
            100 * (index + 1),
            success,
            None if success else NetworkError("alpha", "https://x", status_code=502),
        )
        metrics = registry.get_metrics("alpha")
        assert metrics.total_requests == (
            metrics.successful_requests + metrics.failed_requests
        )

    metrics = registry.get_metrics("alpha")
    assert metrics.total_requests == 5
    assert metrics.failed_requests == 2
    assert metrics.avg_response_time_ms == pytest.approx(300.0)
    assert metrics.error_types == {"NetworkError": 2}


def test_record_metrics_without_error_counts_unknown(registry: SourceRegistry) -> None:
    registry.register(make_descriptor("alpha"))
    registry.record_metrics("alpha", 5, False)
    assert registry.get_metrics("alpha").error_types == {"Unknown": 1}


def test_record_metrics_ignores_unknown_source(registry: SourceRegistry) -> None:
    registry.record_metrics("ghost", 10, True)
    assert registry.get_metrics("ghost") is None


def test_get_metrics_returns_copy(registry: SourceRegistry) -> None:
    registry.register(make_descriptor("alpha"))
    snapshot = registry.get_metrics("alpha")
    snapshot.total_requests = 99
    assert registry.get_metrics("alpha").total_requests == 0


def _record(registry: SourceRegistry, source_id: str, successes: int, failures: int) -> None:
    for _ in range(successes):
        registry.record_metrics(source_id, 10, True)
    for _ in range(failures):
        registry.record_metrics(source_id, 10, False)


def test_health_unknown_without_requests(registry: SourceRegistry) -> None:
    registry.register(make_descriptor("alpha"))
    assert registry.get_health("alpha").status == HealthState.UNKNOWN
    assert registry.get_health("missing").status == HealthState.UNKNOWN


def test_health_degraded_at_sixty_percent(registry: SourceRegistry) -> None:
    registry.register(make_descriptor("alpha"))
    _record(registry, "alpha", successes=6, failures=4)
    assert registry.get_health("alpha").status == HealthState.DEGRADED


def test_health_unhealthy_at_thirty_percent(registry: SourceRegistry) -> None:
    registry.register(make_descriptor("alpha"))
    _record(registry, "alpha", successes=3, failures=7)
    health = registry.get_health("alpha")
    assert health.status == HealthState.UNHEALTHY
    assert "30.0%" in health.reason


def test_health_recent_error_degrades_then_recovers(
    registry: SourceRegistry, clock: FakeClock
) -> None:
    registry.register(make_descriptor("alpha"))
    _record(registry, "alpha", successes=9, failures=1)
    assert registry.get_health("alpha").status == HealthState.DEGRADED

    clock.advance(5 * 60 * 1000)
    assert registry.get_health("alpha").status == HealthState.HEALTHY


def test_reset_metrics(registry: SourceRegistry) -> None:
    registry.register_batch([make_descriptor("a"), make_descriptor("b")])
    _record(registry, "a", 1, 1)
    _record(registry, "b", 1, 0)

    registry.reset_metrics("a")
    assert registry.get_metrics("a").total_requests == 0
    assert registry.get_metrics("b").total_requests == 1

    registry.reset_metrics()
    assert registry.get_metrics("b").total_requests == 0
