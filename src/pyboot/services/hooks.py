"""Optional lifecycle hooks exposed by service instances.

A service instance may provide a zero-argument ``load()`` (awaited once
before the service is marked ready) and a zero-argument ``destroy()``
(called when the coordinator is cleared). Either may be a plain method or
a coroutine function. Presence is captured once, when the instance is
created.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

Hook = Callable[[], Awaitable[Any] | Any]


def _bound_hook(instance: Any, name: str) -> Hook | None:
    method = getattr(instance, name, None)
    return method if callable(method) else None


async def _call(hook: Hook) -> None:
    result = hook()
    if inspect.isawaitable(result):
        await result


@dataclass(frozen=True, slots=True)
class ServiceHooks:
    load: Hook | None = None
    destroy: Hook | None = None

    @classmethod
    def of(cls, instance: Any) -> ServiceHooks:
        return cls(load=_bound_hook(instance, "load"), destroy=_bound_hook(instance, "destroy"))

    async def run_load(self) -> None:
        if self.load is not None:
            await _call(self.load)

    async def run_destroy(self) -> None:
        if self.destroy is not None:
            await _call(self.destroy)
