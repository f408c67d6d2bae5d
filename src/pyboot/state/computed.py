"""Values derived from several state paths."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from pyboot._redact import redact_for_log

if TYPE_CHECKING:
    from pyboot.state.store import StateStore, Unsubscribe

_logger = logging.getLogger(__name__)


class ComputedValue:
    """Re-evaluates ``compute`` whenever one of its dependency paths changes.

    ``compute`` receives a ``{path: value}`` mapping (``MISSING`` for empty
    paths). ``on_change(new, old)`` is only called when the result differs
    from the previous one. Call :meth:`close` to release the subscriptions.
    """

    def __init__(
        self,
        store: StateStore,
        dependencies: Iterable[str],
        compute: Callable[[dict[str, Any]], Any],
        on_change: Callable[[Any, Any], None] | None = None,
    ) -> None:
        self._store = store
        self._dependencies = tuple(dict.fromkeys(dependencies))
        self._compute = compute
        self._on_change = on_change
        self._closed = False
        self._value: Any = compute(self._read())
        self._unsubscribers: list[Unsubscribe] = [
            store.subscribe(path, self._on_dependency_change) for path in self._dependencies
        ]

    @property
    def value(self) -> Any:
        return self._value

    @property
    def dependencies(self) -> tuple[str, ...]:
        return self._dependencies

    @property
    def closed(self) -> bool:
        return self._closed

    def recompute(self) -> Any:
        """Force a re-evaluation; notifies ``on_change`` if the result changed."""
        new_value = self._compute(self._read())
        old_value = self._value
        self._value = new_value
        if self._on_change is not None and new_value != old_value:
            self._on_change(new_value, old_value)
        return new_value

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._closed = True

    def _read(self) -> dict[str, Any]:
        return {path: self._store.get(path) for path in self._dependencies}

    def _on_dependency_change(self, _value: Any, _old_value: Any) -> None:
        self.recompute()
        _logger.debug("Computed value over %s is now %s", self._dependencies, redact_for_log(self._value))
