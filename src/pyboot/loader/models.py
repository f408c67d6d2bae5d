"""Request and result types for the priority loader."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pyboot.loader.priority import LoadPriority

LoaderFn = Callable[[], Awaitable[Any] | Any]
"""Zero-argument callable returning a value or an awaitable."""


@dataclass(frozen=True, slots=True)
class LoadRequest:
    """One entry for :meth:`PriorityLoader.load_many`.

    ``timeout`` of ``None`` means the loader's default applies.
    """

    priority: LoadPriority | int
    key: str
    loader: LoaderFn
    retry: bool = True
    cache: bool = True
    timeout: float | None = None


@dataclass(frozen=True, slots=True)
class LoadOutcome:
    """Settled result of a load: exactly one of ``value``/``error`` is meaningful."""

    key: str
    value: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the value or raise the recorded error."""
        if self.error is not None:
            raise self.error
        return self.value


class TierReport(BaseModel):
    """Summary of a :meth:`PriorityLoader.wait_for_priority` call."""

    model_config = ConfigDict(frozen=True)

    max_priority: LoadPriority
    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


class LoaderStats(BaseModel):
    """Point-in-time counters for a :class:`PriorityLoader`."""

    model_config = ConfigDict(frozen=True)

    loaded: int = 0
    loading: int = 0
    errors: int = 0
    tiers: dict[str, int] = Field(default_factory=dict, description="Tasks ever scheduled per tier name")
