"""Service coordinator.

Keeps the registry of named services, orders them by dependency, loads
them through the :class:`~pyboot.loader.loader.PriorityLoader` and
publishes each service's lifecycle under ``services.<name>`` in the
:class:`~pyboot.state.store.StateStore`:

``services.<name>.loading``
    ``True`` while the factory/initializer runs.
``services.<name>.ready``
    ``True`` once the instance is available.
``services.<name>.error``
    Message of the last failure.
``services.<name>.instance``
    The resolved instance.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import math
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import ValidationError

from pyboot._constants import SERVICES_ROOT, service_key, service_path
from pyboot.config import BootConfig
from pyboot.exceptions import (
    BootConfigError,
    BootError,
    DependencyFailedError,
    ServiceFailedError,
    ServiceLoadError,
    ServiceNotLoadedError,
    ServiceNotRegisteredError,
)
from pyboot.loader.loader import PriorityLoader
from pyboot.loader.models import LoadOutcome
from pyboot.loader.priority import LoadPriority
from pyboot.services.graph import DependencyGraph
from pyboot.services.hooks import ServiceHooks
from pyboot.services.models import CoordinatorStats, ServiceDescriptor, ServiceReport, ServiceStatus
from pyboot.state.store import StateStore

_logger = logging.getLogger(__name__)


class ServiceCoordinator:
    """Dependency-ordered, priority-tiered service bootstrapper.

    Usage::

        coordinator = ServiceCoordinator(store, loader)
        coordinator.register("database", connect_db, priority=LoadPriority.CRITICAL)
        coordinator.register("api", make_api, dependencies=["database"])
        await coordinator.load_all()
        api = coordinator.get("api")
    """

    def __init__(
        self,
        store: StateStore,
        loader: PriorityLoader,
        *,
        config: BootConfig | None = None,
    ) -> None:
        self._store = store
        self._loader = loader
        self._config = config or BootConfig()
        self._descriptors: dict[str, ServiceDescriptor] = {}
        self._graph = DependencyGraph()
        self._instances: dict[str, Any] = {}
        self._hooks: dict[str, ServiceHooks] = {}
        self._failures: dict[str, BaseException] = {}
        self._load_order: list[str] | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        factory: Callable[[], Any],
        *,
        dependencies: Iterable[str] | str = (),
        priority: LoadPriority | int = LoadPriority.NORMAL,
        singleton: bool = True,
    ) -> ServiceDescriptor:
        """Register a service. Replaces any earlier registration of *name*."""
        try:
            descriptor = ServiceDescriptor(
                name=name,
                factory=factory,
                dependencies=dependencies,
                priority=priority,
                singleton=singleton,
            )
        except ValidationError as exc:
            raise BootConfigError(f"Invalid registration for service {name!r}: {exc}") from exc

        if descriptor.name in self._descriptors:
            _logger.warning("Re-registering service %s", descriptor.name)
        self._descriptors[descriptor.name] = descriptor
        self._graph.add_node(descriptor.name, descriptor.dependencies)
        self._load_order = None
        _logger.debug(
            "Registered service %s (priority=%s, dependencies=%s)",
            descriptor.name,
            descriptor.priority.name,
            list(descriptor.dependencies),
        )
        return descriptor

    def descriptor(self, name: str) -> ServiceDescriptor:
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise ServiceNotRegisteredError(name)
        return descriptor

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def compute_load_order(self) -> list[str]:
        """Return service names with every dependency before its dependents.

        Raises
        ------
        CircularDependencyError
            If the dependency graph has a cycle.
        UnknownDependencyError
            If a service depends on an unregistered name.
        """
        if self._load_order is None:
            _logger.debug("Computing service load order")
            self._load_order = self._graph.topological_order()
            _logger.debug("Load order computed: %s", self._load_order)
        return list(self._load_order)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, name: str) -> Any:
        """Load *name* and its dependencies, returning the instance.

        Singleton instances are created at most once; concurrent callers
        share the same in-flight creation.

        Raises
        ------
        BootConfigError
            The service is unknown or the graph is invalid. Raised before
            any factory runs.
        ServiceFailedError
            The service failed earlier and has not been reloaded.
        DependencyFailedError
            A dependency could not be loaded.
        LoadTimeoutError
            Creation exceeded ``BootConfig.load_timeout``.
        ServiceLoadError
            The factory or the instance's ``load()`` raised.
        """
        if name in self._instances:
            return self._instances[name]

        descriptor = self.descriptor(name)
        self.compute_load_order()

        failure = self._failures.get(name)
        if failure is not None:
            raise ServiceFailedError(name) from failure

        await self._load_dependencies(descriptor)
        if name in self._instances:
            return self._instances[name]

        key = service_key(name)
        if not self._loader.is_loading(key):
            self._store.set(service_path(name, "loading"), True)

        load_timeout = self._config.load_timeout
        try:
            return await self._loader.load(
                descriptor.priority,
                key,
                functools.partial(self._create, descriptor),
                retry=self._config.retry,
                cache=descriptor.singleton,
                timeout=load_timeout if load_timeout is not None else math.inf,
            )
        except BootError as exc:
            self._mark_failed(name, exc)
            raise
        except Exception as exc:
            self._mark_failed(name, exc)
            raise ServiceLoadError(name, f"Failed to load service {name}: {exc}") from exc

    async def load_all(self) -> dict[str, LoadOutcome]:
        """Load every registered service, one priority tier at a time.

        Tiers run in ascending order (``CRITICAL`` first); services inside a
        tier load concurrently. A failing service is recorded in its
        outcome and never stops the run. Configuration errors still raise.
        """
        order = self.compute_load_order()
        tiers: dict[LoadPriority, list[str]] = {}
        for name in order:
            tiers.setdefault(self._descriptors[name].priority, []).append(name)

        _logger.debug("Loading all services: %s", order)
        outcomes: dict[str, LoadOutcome] = {}
        for priority in sorted(tiers):
            names = tiers[priority]
            _logger.debug("Loading %s services: %s", priority.name, names)
            results = await asyncio.gather(*(self.load(name) for name in names), return_exceptions=True)
            for name, result in zip(names, results, strict=True):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    _logger.warning("Failed to load service %s: %s", name, result)
                    outcomes[name] = LoadOutcome(key=name, error=result)
                else:
                    outcomes[name] = LoadOutcome(key=name, value=result)

        failed = sum(1 for outcome in outcomes.values() if not outcome.ok)
        _logger.debug("All services processed: %d loaded, %d failed", len(outcomes) - failed, failed)
        return {name: outcomes[name] for name in order}

    async def _load_dependencies(self, descriptor: ServiceDescriptor) -> None:
        dependencies = descriptor.dependencies
        if not dependencies:
            return
        _logger.debug("Loading dependencies for %s: %s", descriptor.name, list(dependencies))
        results = await asyncio.gather(*(self.load(dep) for dep in dependencies), return_exceptions=True)
        for dependency, result in zip(dependencies, results, strict=True):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                error = DependencyFailedError(descriptor.name, dependency)
                self._mark_failed(descriptor.name, error)
                raise error from result

    async def _create(self, descriptor: ServiceDescriptor) -> Any:
        name = descriptor.name
        _logger.debug("Creating %s instance", name)
        instance = descriptor.factory()
        if inspect.isawaitable(instance):
            instance = await instance

        hooks = ServiceHooks.of(instance)
        if hooks.load is not None:
            _logger.debug("Initializing %s", name)
            await hooks.run_load()

        # Cache before publishing ready so waiters can get() immediately.
        if descriptor.singleton:
            self._instances[name] = instance
            self._hooks[name] = hooks
        self._failures.pop(name, None)
        self._store.delete(service_path(name, "error"))
        self._store.set(service_path(name, "instance"), instance, expand=False)
        self._store.set(service_path(name, "ready"), True)
        self._store.set(service_path(name, "loading"), False)
        _logger.debug("Service loaded: %s", name)
        return instance

    def _mark_failed(self, name: str, exc: BaseException) -> None:
        if self._failures.get(name) is exc:
            return
        self._failures[name] = exc
        self._store.set(service_path(name, "error"), str(exc) or type(exc).__name__)
        self._store.set(service_path(name, "loading"), False)
        _logger.warning("Service %s failed: %s", name, exc)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, name: str) -> Any:
        """Return a resolved singleton instance."""
        if name not in self._instances:
            raise ServiceNotLoadedError(name)
        return self._instances[name]

    def is_loaded(self, name: str) -> bool:
        return name in self._instances

    async def wait_for(self, name: str, timeout: float | None = None) -> Any:
        """Wait until *name* is ready and return its instance.

        Does not start loading; some other caller must ``load`` it.

        Raises
        ------
        StateWaitTimeoutError
            If the service is not ready within *timeout* seconds.
        """
        if self.is_loaded(name):
            return self.get(name)
        _logger.debug("Waiting for service: %s", name)
        effective_timeout = timeout if timeout is not None else self._config.wait_timeout
        await self._store.wait_for(service_path(name, "ready"), effective_timeout)
        return self.get(name)

    def status(self, name: str) -> ServiceStatus:
        if name not in self._descriptors:
            return ServiceStatus.UNREGISTERED
        if name in self._failures:
            return ServiceStatus.FAILED
        if name in self._instances or self._store.get(service_path(name, "ready")) is True:
            return ServiceStatus.READY
        if self._loader.is_loading(service_key(name)):
            return ServiceStatus.LOADING
        return ServiceStatus.REGISTERED

    def stats(self) -> CoordinatorStats:
        reports: dict[str, ServiceReport] = {}
        for name, descriptor in self._descriptors.items():
            failure = self._failures.get(name)
            reports[name] = ServiceReport(
                name=name,
                status=self.status(name),
                priority=descriptor.priority,
                dependencies=descriptor.dependencies,
                singleton=descriptor.singleton,
                error=str(failure) if failure is not None else None,
            )
        statuses = [report.status for report in reports.values()]
        return CoordinatorStats(
            registered=len(reports),
            loaded=len(self._instances),
            loading=statuses.count(ServiceStatus.LOADING),
            failed=statuses.count(ServiceStatus.FAILED),
            services=reports,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def reload(self, name: str) -> Any:
        """Discard *name*'s instance, state and failure record, then load it again.

        Dependents keep the instance they were built with until they are
        reloaded themselves.
        """
        self.descriptor(name)
        _logger.debug("Reloading service: %s", name)
        dependents = [dep for dep in self._graph.dependents_of(name) if dep in self._instances]
        if dependents:
            _logger.debug("Dependents of %s keep their current instance: %s", name, dependents)

        self._instances.pop(name, None)
        self._hooks.pop(name, None)
        self._failures.pop(name, None)
        self._loader.evict(service_key(name))
        self._store.delete(service_path(name))
        return await self.load(name)

    async def clear(self) -> None:
        """Destroy cached instances and forget every registration.

        ``destroy()`` runs in reverse creation order; errors are logged and
        do not stop the remaining teardown.
        """
        _logger.debug("Clearing all services")
        for name, instance in reversed(list(self._instances.items())):
            hooks = self._hooks.get(name) or ServiceHooks.of(instance)
            if hooks.destroy is None:
                continue
            try:
                await hooks.run_destroy()
            except Exception:
                _logger.warning("Error destroying service %s", name, exc_info=True)

        for name in self._descriptors:
            self._loader.evict(service_key(name))
        self._instances.clear()
        self._hooks.clear()
        self._failures.clear()
        self._descriptors.clear()
        self._graph.clear()
        self._load_order = None
        self._store.delete(SERVICES_ROOT)
