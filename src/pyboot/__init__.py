"""pyboot - Async bootstrap orchestration: dependency-ordered services, priority loading, reactive state."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyboot")
except PackageNotFoundError:
    __version__ = "0+local"
from pyboot.config import BootConfig
from pyboot.context import BootContext
from pyboot.exceptions import (
    AllLoadsFailedError,
    BootConfigError,
    BootError,
    BootTimeoutError,
    CircularDependencyError,
    DependencyFailedError,
    InvalidPathError,
    LoadTimeoutError,
    ServiceFailedError,
    ServiceLoadError,
    ServiceNotLoadedError,
    ServiceNotRegisteredError,
    StateWaitTimeoutError,
    UnknownDependencyError,
)
from pyboot.loader.loader import PriorityLoader
from pyboot.loader.models import LoaderStats, LoadOutcome, LoadRequest, TierReport
from pyboot.loader.priority import LoadPriority
from pyboot.services.coordinator import ServiceCoordinator
from pyboot.services.models import CoordinatorStats, ServiceDescriptor, ServiceReport, ServiceStatus
from pyboot.state.computed import ComputedValue
from pyboot.state.events import MISSING, ChangeKind, StateChange
from pyboot.state.store import StateStore, StoreStats

__all__ = [
    "__version__",
    "MISSING",
    "AllLoadsFailedError",
    "BootConfig",
    "BootConfigError",
    "BootContext",
    "BootError",
    "BootTimeoutError",
    "ChangeKind",
    "CircularDependencyError",
    "ComputedValue",
    "CoordinatorStats",
    "DependencyFailedError",
    "InvalidPathError",
    "LoadOutcome",
    "LoadPriority",
    "LoadRequest",
    "LoadTimeoutError",
    "LoaderStats",
    "PriorityLoader",
    "ServiceCoordinator",
    "ServiceDescriptor",
    "ServiceFailedError",
    "ServiceLoadError",
    "ServiceNotLoadedError",
    "ServiceNotRegisteredError",
    "ServiceReport",
    "ServiceStatus",
    "StateChange",
    "StateStore",
    "StateWaitTimeoutError",
    "StoreStats",
    "TierReport",
    "UnknownDependencyError",
]
