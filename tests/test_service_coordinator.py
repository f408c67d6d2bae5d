from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Mapping
from typing import Any

import pytest

from pyboot.config import BootConfig
from pyboot.exceptions import (
    BootConfigError,
    CircularDependencyError,
    DependencyFailedError,
    LoadTimeoutError,
    ServiceFailedError,
    ServiceLoadError,
    ServiceNotLoadedError,
    ServiceNotRegisteredError,
    StateWaitTimeoutError,
    UnknownDependencyError,
)
from pyboot.loader.loader import PriorityLoader
from pyboot.loader.priority import LoadPriority
from pyboot.services.coordinator import ServiceCoordinator
from pyboot.services.models import ServiceStatus
from pyboot.state.events import MISSING
from pyboot.state.store import StateStore


class _Service:
    def __init__(self, name: str) -> None:
        self.name = name


def _coordinator(**config: Any) -> tuple[ServiceCoordinator, StateStore]:
    store = StateStore()
    coordinator = ServiceCoordinator(store, PriorityLoader(), config=BootConfig(**config))
    return coordinator, store


def test_load_order_puts_dependencies_first() -> None:
    coordinator, _ = _coordinator()
    coordinator.register("ui", lambda: _Service("ui"), dependencies=["api"])
    coordinator.register("api", lambda: _Service("api"), dependencies=["database"])
    coordinator.register("database", lambda: _Service("database"))

    order = coordinator.compute_load_order()

    assert order == ["database", "api", "ui"]
    for name in order:
        for dependency in coordinator.descriptor(name).dependencies:
            assert order.index(dependency) < order.index(name)


@pytest.mark.asyncio
async def test_cycle_is_rejected_before_any_factory_runs() -> None:
    coordinator, _ = _coordinator()
    calls: list[str] = []
    coordinator.register("a", lambda: calls.append("a"), dependencies=["b"])
    coordinator.register("b", lambda: calls.append("b"), dependencies=["a"])

    with pytest.raises(CircularDependencyError):
        await coordinator.load("a")
    with pytest.raises(CircularDependencyError):
        await coordinator.load_all()

    assert calls == []


@pytest.mark.asyncio
async def test_unknown_names_are_configuration_errors() -> None:
    coordinator, _ = _coordinator()
    coordinator.register("api", lambda: _Service("api"), dependencies=["database"])

    with pytest.raises(UnknownDependencyError):
        await coordinator.load("api")
    with pytest.raises(ServiceNotRegisteredError):
        await coordinator.load("missing")


@pytest.mark.parametrize(
    ("name", "kwargs"),
    [
        ("", {}),
        ("a.b", {}),
        ("*", {}),
        ("api", {"priority": 9}),
        ("api", {"dependencies": ["bad.name"]}),
    ],
)
def test_invalid_registration_raises_config_error(name: str, kwargs: dict[str, Any]) -> None:
    coordinator, _ = _coordinator()

    with pytest.raises(BootConfigError):
        coordinator.register(name, lambda: None, **kwargs)


def test_register_normalizes_dependencies() -> None:
    coordinator, _ = _coordinator()

    descriptor = coordinator.register("api", lambda: None, dependencies="database", priority=1)

    assert descriptor.dependencies == ("database",)
    assert descriptor.priority is LoadPriority.CRITICAL
    assert "api" in coordinator


def test_re_registration_replaces_descriptor_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    coordinator, _ = _coordinator()
    coordinator.register("api", lambda: "old")

    with caplog.at_level(logging.WARNING, logger="pyboot.services.coordinator"):
        coordinator.register("api", lambda: "new", priority=LoadPriority.HIGH)

    assert coordinator.descriptor("api").priority is LoadPriority.HIGH
    assert "Re-registering service api" in caplog.text


@pytest.mark.asyncio
async def test_concurrent_loads_create_singleton_once() -> None:
    coordinator, _ = _coordinator()
    calls = 0

    async def _factory() -> _Service:
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return _Service("database")

    coordinator.register("database", _factory)

    first, second = await asyncio.gather(coordinator.load("database"), coordinator.load("database"))

    assert calls == 1
    assert first is second
    assert coordinator.get("database") is first
    assert await coordinator.load("database") is first


@pytest.mark.asyncio
async def test_load_publishes_lifecycle_state() -> None:
    coordinator, store = _coordinator()
    loading_seen: list[Any] = []
    store.subscribe("services.api.loading", lambda value, old: loading_seen.append(value))
    coordinator.register("api", lambda: _Service("api"))

    instance = await coordinator.load("api")

    assert loading_seen == [True, False]
    assert store.get("services.api.ready") is True
    assert store.get("services.api.instance") is instance
    assert store.get("services.api.error") is MISSING
    assert coordinator.status("api") is ServiceStatus.READY


@pytest.mark.asyncio
async def test_load_all_runs_tiers_in_order_and_isolates_failures() -> None:
    coordinator, store = _coordinator()
    events: list[str] = []

    async def _database() -> _Service:
        await asyncio.sleep(0.01)
        events.append("database")
        return _Service("database")

    def _broken() -> _Service:
        events.append("broken")
        raise RuntimeError("no cache backend")

    def _api() -> _Service:
        events.append("api")
        return _Service("api")

    coordinator.register("api", _api, dependencies=["database"], priority=LoadPriority.NORMAL)
    coordinator.register("database", _database, priority=LoadPriority.CRITICAL)
    coordinator.register("cache", _broken, priority=LoadPriority.CRITICAL)

    outcomes = await coordinator.load_all()

    assert list(outcomes) == ["database", "api", "cache"]
    assert outcomes["database"].ok
    assert outcomes["api"].ok
    assert isinstance(outcomes["cache"].error, ServiceLoadError)
    # Both CRITICAL services settle before the NORMAL tier starts.
    assert events[-1] == "api"
    assert events.count("broken") == 2
    assert store.get("services.cache.error") == "no cache backend"
    assert coordinator.status("cache") is ServiceStatus.FAILED

    stats = coordinator.stats()
    assert stats.registered == 3
    assert stats.loaded == 2
    assert stats.failed == 1
    assert stats.services["cache"].error == "no cache backend"


@pytest.mark.asyncio
async def test_failed_service_stays_failed_until_reload() -> None:
    coordinator, store = _coordinator(retry=False)
    healthy = False

    def _factory() -> _Service:
        if not healthy:
            raise RuntimeError("boom")
        return _Service("api")

    coordinator.register("api", _factory)

    with pytest.raises(ServiceLoadError) as excinfo:
        await coordinator.load("api")
    assert isinstance(excinfo.value.__cause__, RuntimeError)

    healthy = True
    with pytest.raises(ServiceFailedError):
        await coordinator.load("api")

    instance = await coordinator.reload("api")

    assert isinstance(instance, _Service)
    assert coordinator.status("api") is ServiceStatus.READY
    assert store.get("services.api.error") is MISSING


@pytest.mark.asyncio
async def test_dependency_failure_fails_the_dependent() -> None:
    coordinator, store = _coordinator(retry=False)
    api_calls: list[str] = []

    def _database() -> None:
        raise RuntimeError("database down")

    coordinator.register("database", _database)
    coordinator.register("api", lambda: api_calls.append("api"), dependencies=["database"])

    with pytest.raises(DependencyFailedError) as excinfo:
        await coordinator.load("api")

    assert excinfo.value.dependency == "database"
    assert api_calls == []
    assert coordinator.status("api") is ServiceStatus.FAILED
    assert "database" in store.get("services.api.error")


@pytest.mark.asyncio
async def test_load_timeout_fails_the_service() -> None:
    coordinator, _ = _coordinator(load_timeout=0.05)

    async def _hangs() -> None:
        await asyncio.sleep(5)

    coordinator.register("slow", _hangs)

    with pytest.raises(LoadTimeoutError):
        await coordinator.load("slow")

    assert coordinator.status("slow") is ServiceStatus.FAILED


@pytest.mark.asyncio
async def test_reload_creates_a_fresh_instance() -> None:
    coordinator, _ = _coordinator()
    counter = 0

    def _factory() -> _Service:
        nonlocal counter
        counter += 1
        return _Service(f"api-{counter}")

    coordinator.register("api", _factory)

    first = await coordinator.load("api")
    second = await coordinator.reload("api")

    assert first is not second
    assert second.name == "api-2"
    assert coordinator.get("api") is second


@pytest.mark.asyncio
async def test_wait_for_resolves_when_another_caller_loads() -> None:
    coordinator, _ = _coordinator()
    coordinator.register("api", lambda: _Service("api"))

    waiter = asyncio.create_task(coordinator.wait_for("api", timeout=1.0))
    await asyncio.sleep(0)
    loaded = await coordinator.load("api")

    assert await waiter is loaded


@pytest.mark.asyncio
async def test_wait_for_times_out_when_nobody_loads() -> None:
    coordinator, _ = _coordinator()
    coordinator.register("api", lambda: _Service("api"))

    with pytest.raises(StateWaitTimeoutError):
        await coordinator.wait_for("api", timeout=0.05)


@pytest.mark.asyncio
async def test_get_requires_a_loaded_singleton() -> None:
    coordinator, _ = _coordinator()
    coordinator.register("api", lambda: _Service("api"))
    coordinator.register("request", lambda: _Service("request"), singleton=False)

    with pytest.raises(ServiceNotLoadedError):
        coordinator.get("api")

    first = await coordinator.load("request")
    second = await coordinator.load("request")

    assert first is not second
    with pytest.raises(ServiceNotLoadedError):
        coordinator.get("request")


@pytest.mark.asyncio
async def test_instance_hooks_run_on_load_and_clear() -> None:
    coordinator, store = _coordinator()
    events: list[str] = []

    class _Hooked:
        def __init__(self, name: str) -> None:
            self.name = name
            self.ready = False

        async def load(self) -> None:
            self.ready = True
            events.append(f"load:{self.name}")

        def destroy(self) -> None:
            events.append(f"destroy:{self.name}")

    coordinator.register("database", lambda: _Hooked("database"))
    coordinator.register("api", lambda: _Hooked("api"), dependencies=["database"])

    api = await coordinator.load("api")
    assert api.ready

    await coordinator.clear()

    assert events == ["load:database", "load:api", "destroy:api", "destroy:database"]
    assert store.get("services") is MISSING
    assert "api" not in coordinator
    assert coordinator.stats().registered == 0


@pytest.mark.asyncio
async def test_clear_continues_after_destroy_error() -> None:
    coordinator, _ = _coordinator()
    destroyed: list[str] = []

    class _Fragile:
        def destroy(self) -> None:
            raise RuntimeError("teardown failed")

    class _Sturdy:
        def destroy(self) -> None:
            destroyed.append("sturdy")

    coordinator.register("sturdy", _Sturdy)
    coordinator.register("fragile", _Fragile)
    await coordinator.load_all()

    await coordinator.clear()

    assert destroyed == ["sturdy"]


@pytest.mark.asyncio
async def test_mapping_instances_are_published_by_reference() -> None:
    coordinator, store = _coordinator()

    class _Settings(Mapping[str, str]):
        def __init__(self) -> None:
            self._data = {"url": "db://"}

        def __getitem__(self, key: str) -> str:
            return self._data[key]

        def __iter__(self) -> Iterator[str]:
            return iter(self._data)

        def __len__(self) -> int:
            return len(self._data)

    coordinator.register("settings", _Settings)
    coordinator.register("flags", lambda: {"beta": True})

    settings = await coordinator.load("settings")
    flags = await coordinator.load("flags")

    assert store.get("services.settings.instance") is settings
    assert store.get("services.flags.instance") is flags
    assert store.get("services.flags.instance.beta") is MISSING
    assert await coordinator.wait_for("flags") is flags
