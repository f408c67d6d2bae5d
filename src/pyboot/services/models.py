"""Service descriptors and lifecycle reporting models."""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyboot._constants import PATH_SEPARATOR, WILDCARD_PATH
from pyboot.loader.priority import LoadPriority


class ServiceStatus(StrEnum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


def _validate_service_name(value: str) -> str:
    name = value.strip()
    if not name:
        raise ValueError("service name must be non-empty")
    if PATH_SEPARATOR in name or name == WILDCARD_PATH:
        raise ValueError(f"service name {name!r} cannot be used as a state path segment")
    return name


class ServiceDescriptor(BaseModel):
    """Registration record for a service. Immutable once registered."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    factory: Callable[[], Any] = Field(..., description="Zero-arg callable returning the instance or an awaitable")
    dependencies: tuple[str, ...] = ()
    priority: LoadPriority = LoadPriority.NORMAL
    singleton: bool = True

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return _validate_service_name(value)

    @field_validator("dependencies", mode="before")
    @classmethod
    def _normalize_dependencies(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = (value,)
        # Keep declaration order; it drives the deterministic load order.
        return tuple(dict.fromkeys(_validate_service_name(dep) for dep in value))

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> LoadPriority:
        return LoadPriority.coerce(value)


class ServiceReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    status: ServiceStatus
    priority: LoadPriority
    dependencies: tuple[str, ...] = ()
    singleton: bool = True
    error: str | None = None


class CoordinatorStats(BaseModel):
    """Point-in-time summary of every registered service."""

    model_config = ConfigDict(frozen=True)

    registered: int = 0
    loaded: int = 0
    loading: int = 0
    failed: int = 0
    services: dict[str, ServiceReport] = Field(default_factory=dict)
