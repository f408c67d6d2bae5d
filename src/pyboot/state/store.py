"""Reactive in-memory state store.

The store keeps a tree of nodes addressed by dot-separated paths. Every
mutation synchronously notifies three groups of subscribers, in order:

1. subscribers of the exact path, with ``(value, old_value)``;
2. subscribers of each ancestor path (nearest first), with the value of
   the ancestor itself before and after the change;
3. wildcard (``"*"``) subscribers, with the :class:`StateChange`.

Mutations made from inside a callback are applied to the tree at once,
but their notifications are queued and delivered after the current round.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import logging
from collections import deque
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from pyboot._constants import DEFAULT_WAIT_TIMEOUT, PATH_SEPARATOR
from pyboot._redact import redact_for_log
from pyboot.exceptions import StateWaitTimeoutError
from pyboot.state.events import MISSING, ChangeKind, StateChange
from pyboot.state.paths import Segments, ancestors, join_path, parse_path, parse_subscription_path

if TYPE_CHECKING:
    from pyboot.state.computed import ComputedValue

_logger = logging.getLogger(__name__)

StateListener = Callable[[Any, Any], None]
"""Path subscriber: called with ``(value, old_value)`` at its own path."""

WildcardListener = Callable[[StateChange], None]
"""Wildcard subscriber: called with the change description."""

Unsubscribe = Callable[[], None]


class _Node:
    """A branch (``children`` is a dict) or a leaf holding ``value``."""

    __slots__ = ("children", "value")

    def __init__(self, value: Any = MISSING, children: dict[str, _Node] | None = None) -> None:
        self.value = value
        self.children = children

    @property
    def is_branch(self) -> bool:
        return self.children is not None


def _expandable(value: Any) -> bool:
    # Only plain dicts; Mapping subclasses and other objects stay opaque leaves.
    if type(value) is not dict:
        return False
    return all(isinstance(key, str) and key and PATH_SEPARATOR not in key for key in value)


def _build_node(value: Any) -> _Node:
    if _expandable(value):
        return _Node(children={key: _build_node(child) for key, child in value.items()})
    return _Node(value=value)


def _materialize(node: _Node | None) -> Any:
    if node is None:
        return MISSING
    if node.children is None:
        return node.value
    return {key: _materialize(child) for key, child in node.children.items()}


def _walk(node: _Node, prefix: Segments = ()) -> Iterator[tuple[Segments, _Node]]:
    """Pre-order walk over every node below *node*."""
    if node.children is None:
        return
    for key, child in node.children.items():
        segments = (*prefix, key)
        yield segments, child
        yield from _walk(child, segments)


def _is_populated(value: Any) -> bool:
    return value is not MISSING and value is not None


@dataclass(eq=False, slots=True)
class _Subscription:
    path: str
    callback: Callable[..., None]
    active: bool = True


@dataclass(slots=True)
class _Notification:
    change: StateChange
    segments: Segments
    ancestor_values: list[tuple[Segments, Any, Any]] = field(default_factory=list)


class StoreStats(BaseModel):
    """Point-in-time counters for a :class:`StateStore`."""

    model_config = ConfigDict(frozen=True)

    path_count: int = 0
    listener_count: int = 0
    wildcard_listener_count: int = 0
    listener_paths: list[str] = Field(default_factory=list)
    pending_updates: int = 0
    listener_failures: int = 0


class StateStore:
    """Hierarchical key/value store with path-scoped subscriptions.

    Values are read and written only through the store: reading a branch
    returns a fresh ``dict`` built from the tree, so mutating it has no
    effect on stored state.
    """

    def __init__(
        self,
        *,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        trace_updates: bool = False,
        log_value_max_length: int = 200,
    ) -> None:
        self._root = _Node(children={})
        self._listeners: dict[Segments, list[_Subscription]] = {}
        self._wildcard: list[_Subscription] = []
        self._pending: dict[str, Any] = {}
        self._queue: deque[_Notification] = deque()
        self._draining = False
        self._listener_failures = 0
        self._wait_timeout = wait_timeout
        self._trace_updates = trace_updates
        self._log_value_max_length = log_value_max_length

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: str | None = None) -> Any:
        """Return the value at *path*, the whole tree if omitted, or ``MISSING``."""
        if path is None:
            return _materialize(self._root)
        return _materialize(self._find(parse_path(path)))

    def has(self, path: str) -> bool:
        return self._find(parse_path(path)) is not None

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the whole tree as plain dicts."""
        return copy.deepcopy(_materialize(self._root))

    def _find(self, segments: Segments) -> _Node | None:
        return self._find_in(self._root, segments)

    @staticmethod
    def _find_in(root: _Node, segments: Segments) -> _Node | None:
        node = root
        for segment in segments:
            if node.children is None or segment not in node.children:
                return None
            node = node.children[segment]
        return node

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, path: str, value: Any, *, expand: bool = True) -> None:
        """Replace the value at *path*, creating intermediate branches.

        A plain ``dict`` is expanded into addressable branches unless
        *expand* is false, in which case it is stored as one leaf and read
        back by reference.
        """
        segments = parse_path(path)
        old_ancestors = self._capture_ancestors(segments)

        parent = self._root
        for depth, segment in enumerate(segments[:-1], start=1):
            assert parent.children is not None  # noqa: S101
            child = parent.children.get(segment)
            if child is None or not child.is_branch:
                if child is not None:
                    _logger.debug("Replacing leaf at %s with a branch", join_path(segments[:depth]))
                child = _Node(children={})
                parent.children[segment] = child
            parent = child

        assert parent.children is not None  # noqa: S101
        old_value = _materialize(parent.children.get(segments[-1]))
        parent.children[segments[-1]] = _build_node(value) if expand else _Node(value=value)

        if self._trace_updates:
            _logger.debug(
                "State updated: %s = %s",
                path,
                redact_for_log(value, max_string=self._log_value_max_length),
            )
        self._publish(
            StateChange(path=path, value=value, old_value=old_value, kind=ChangeKind.SET),
            segments,
            old_ancestors,
        )

    def delete(self, path: str) -> bool:
        """Remove the node at *path*. Returns ``False`` if nothing was there."""
        segments = parse_path(path)
        parent = self._find(segments[:-1])
        if parent is None or parent.children is None or segments[-1] not in parent.children:
            return False

        old_ancestors = self._capture_ancestors(segments)
        removed = parent.children.pop(segments[-1])

        if self._trace_updates:
            _logger.debug("State deleted: %s", path)
        self._publish(
            StateChange(path=path, value=MISSING, old_value=_materialize(removed), kind=ChangeKind.DELETE),
            segments,
            old_ancestors,
        )
        return True

    def clear(self) -> None:
        """Empty the tree and notify every path that existed."""
        old_root = self._root
        self._root = _Node(children={})
        if self._trace_updates:
            _logger.debug("Clearing all state")

        for segments, node in _walk(old_root):
            ancestor_values = [
                (ancestor, MISSING, _materialize(self._find_in(old_root, ancestor)))
                for ancestor in ancestors(segments)
                if ancestor in self._listeners
            ]
            change = StateChange(
                path=join_path(segments),
                value=MISSING,
                old_value=_materialize(node),
                kind=ChangeKind.CLEAR,
            )
            self._enqueue(_Notification(change=change, segments=segments, ancestor_values=ancestor_values))

    async def batch_update(self, updates: Mapping[str, Any]) -> list[str]:
        """Apply *updates* after yielding one loop turn.

        Batches issued during the same turn are coalesced and applied by
        whichever call resumes first; each path still gets its own
        notification. Returns the paths applied by this call.
        """
        for path in updates:
            parse_path(path)
        _logger.debug("Batching state updates: %s", list(updates))
        self._pending.update(updates)

        await asyncio.sleep(0)

        pending, self._pending = self._pending, {}
        for path, value in pending.items():
            self.set(path, value)
        if pending:
            _logger.debug("Batch update complete: %s", list(pending))
        return list(pending)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, path: str, callback: StateListener | WildcardListener) -> Unsubscribe:
        """Register *callback* for changes at or below *path* (``"*"`` for all).

        Returns a function that removes this subscription; calling it more
        than once is harmless.
        """
        segments = parse_subscription_path(path)
        subscription = _Subscription(path=path, callback=callback)
        if segments is None:
            self._wildcard.append(subscription)
        else:
            self._listeners.setdefault(segments, []).append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            if segments is None:
                with contextlib.suppress(ValueError):
                    self._wildcard.remove(subscription)
                return
            bucket = self._listeners.get(segments)
            if bucket is None:
                return
            with contextlib.suppress(ValueError):
                bucket.remove(subscription)
            if not bucket:
                del self._listeners[segments]

        return unsubscribe

    def listener_count(self, path: str | None = None) -> int:
        """Number of live subscriptions on *path*, or in total if omitted."""
        if path is None:
            return sum(len(bucket) for bucket in self._listeners.values()) + len(self._wildcard)
        segments = parse_subscription_path(path)
        if segments is None:
            return len(self._wildcard)
        return len(self._listeners.get(segments, ()))

    async def wait_for(self, path: str, timeout: float | None = None) -> Any:
        """Wait until *path* holds a value other than ``MISSING`` or ``None``.

        Parameters
        ----------
        path
            Path to watch. Writes to descendants count, since they change
            the value at *path* too.
        timeout
            Seconds to wait. Falls back to the store's default.

        Raises
        ------
        StateWaitTimeoutError
            If the path is still empty after *timeout* seconds.
        """
        current = self.get(path)
        if _is_populated(current):
            return current

        effective_timeout = timeout if timeout is not None else self._wait_timeout
        loop = asyncio.get_running_loop()
        fut: asyncio.Future[Any] = loop.create_future()

        def _on_change(value: Any, _old_value: Any) -> None:
            if _is_populated(value) and not fut.done():
                fut.set_result(value)

        unsubscribe = self.subscribe(path, _on_change)
        try:
            return await asyncio.wait_for(fut, effective_timeout)
        except TimeoutError:
            raise StateWaitTimeoutError(path, effective_timeout) from None
        finally:
            unsubscribe()

    def computed(
        self,
        dependencies: Iterable[str],
        compute: Callable[[dict[str, Any]], Any],
        on_change: Callable[[Any, Any], None] | None = None,
    ) -> ComputedValue:
        """Derive a value from several paths; see :class:`ComputedValue`."""
        from pyboot.state.computed import ComputedValue

        return ComputedValue(self, dependencies, compute, on_change)

    def stats(self) -> StoreStats:
        return StoreStats(
            path_count=sum(1 for _ in _walk(self._root)),
            listener_count=sum(len(bucket) for bucket in self._listeners.values()),
            wildcard_listener_count=len(self._wildcard),
            listener_paths=sorted(join_path(segments) for segments in self._listeners),
            pending_updates=len(self._pending),
            listener_failures=self._listener_failures,
        )

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def _capture_ancestors(self, segments: Segments) -> list[tuple[Segments, Any]]:
        """Values of subscribed ancestors, taken before a mutation."""
        return [
            (ancestor, _materialize(self._find(ancestor)))
            for ancestor in ancestors(segments)
            if ancestor in self._listeners
        ]

    def _publish(
        self,
        change: StateChange,
        segments: Segments,
        old_ancestors: list[tuple[Segments, Any]],
    ) -> None:
        ancestor_values = [
            (ancestor, _materialize(self._find(ancestor)), old_value) for ancestor, old_value in old_ancestors
        ]
        self._enqueue(_Notification(change=change, segments=segments, ancestor_values=ancestor_values))

    def _enqueue(self, notification: _Notification) -> None:
        self._queue.append(notification)
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                self._deliver(self._queue.popleft())
        finally:
            self._draining = False

    def _deliver(self, notification: _Notification) -> None:
        change = notification.change
        for subscription in list(self._listeners.get(notification.segments, ())):
            self._invoke(subscription, change.value, change.old_value)

        for ancestor, value, old_value in notification.ancestor_values:
            for subscription in list(self._listeners.get(ancestor, ())):
                self._invoke(subscription, value, old_value)

        for subscription in list(self._wildcard):
            self._invoke(subscription, change)

    def _invoke(self, subscription: _Subscription, *args: Any) -> None:
        if not subscription.active:
            return
        try:
            subscription.callback(*args)
        except Exception:
            self._listener_failures += 1
            _logger.warning("State listener for %s failed", subscription.path, exc_info=True)
