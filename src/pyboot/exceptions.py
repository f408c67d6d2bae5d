"""Custom exception hierarchy for pyboot."""

from __future__ import annotations

from collections.abc import Sequence


class BootError(Exception):
    """Base exception for all pyboot errors."""


class BootConfigError(BootError):
    """Invalid configuration or service graph.

    Raised for programming mistakes; never retried.
    """


class CircularDependencyError(BootConfigError):
    """The service dependency graph contains a cycle."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


class UnknownDependencyError(BootConfigError):
    """A service names a dependency that was never registered."""

    def __init__(self, name: str, dependency: str) -> None:
        self.name = name
        self.dependency = dependency
        super().__init__(f"Unknown dependency: {dependency} required by {name}")


class ServiceNotRegisteredError(BootConfigError):
    """A service was requested by name but never registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Service not registered: {name}")


class InvalidPathError(BootError, ValueError):
    """A state path is empty or malformed."""

    def __init__(self, path: object, reason: str) -> None:
        self.path = path
        super().__init__(f"Invalid state path {path!r}: {reason}")


class BootTimeoutError(BootError, TimeoutError):
    """An operation exceeded its time bound."""


class LoadTimeoutError(BootTimeoutError):
    """A loader task did not settle within its timeout.

    Timeouts are never retried.
    """

    def __init__(self, key: str, timeout: float) -> None:
        self.key = key
        self.timeout = timeout
        super().__init__(f"Loading {key} timed out after {timeout:g}s")


class StateWaitTimeoutError(BootTimeoutError):
    """A state path was not populated within the wait bound."""

    def __init__(self, path: str, timeout: float) -> None:
        self.path = path
        self.timeout = timeout
        super().__init__(f"Timeout waiting for state: {path} ({timeout:g}s)")


class ServiceLoadError(BootError):
    """A service factory or initializer failed."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"Failed to load service: {name}")


class DependencyFailedError(ServiceLoadError):
    """A service could not load because one of its dependencies failed."""

    def __init__(self, name: str, dependency: str) -> None:
        self.dependency = dependency
        super().__init__(name, f"Service {name} cannot load: dependency {dependency} failed")


class ServiceFailedError(ServiceLoadError):
    """The service is in the failed state; only ``reload`` recovers it."""

    def __init__(self, name: str) -> None:
        super().__init__(name, f"Service {name} previously failed; call reload() to retry")


class ServiceNotLoadedError(BootError):
    """``get`` was called for a service that has not resolved yet."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Service not loaded: {name}")


class AllLoadsFailedError(BootError):
    """Every task awaited by a priority wait failed."""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors = tuple(errors)
        super().__init__(f"All resources failed to load ({len(self.errors)} failed)")
