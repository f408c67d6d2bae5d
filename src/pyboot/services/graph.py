"""Service dependency graph and topological ordering."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from pyboot.exceptions import CircularDependencyError, UnknownDependencyError


class DependencyGraph:
    """Directed graph of service names to the names they depend on.

    Uses a depth-first topological sort to determine load order.
    Iteration follows insertion order, so the result is deterministic for a
    fixed registration sequence.
    """

    def __init__(self) -> None:
        self._edges: dict[str, tuple[str, ...]] = {}

    def add_node(self, name: str, dependencies: Iterable[str] = ()) -> None:
        """Add or replace *name* with its dependencies."""
        self._edges[name] = tuple(dependencies)

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        return self._edges.get(name, ())

    def dependents_of(self, name: str) -> list[str]:
        """Nodes that list *name* as a direct dependency."""
        return [node for node, deps in self._edges.items() if name in deps]

    def clear(self) -> None:
        self._edges.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._edges

    def __iter__(self) -> Iterator[str]:
        return iter(self._edges)

    def __len__(self) -> int:
        return len(self._edges)

    def topological_order(self) -> list[str]:
        """Return every node with dependencies before dependents.

        Raises
        ------
        CircularDependencyError
            When a node is reached again while still on the recursion stack.
        UnknownDependencyError
            When a node depends on a name that is not in the graph.
        """
        visited: set[str] = set()
        stack: list[str] = []
        on_stack: set[str] = set()
        order: list[str] = []

        def visit(name: str) -> None:
            if name in on_stack:
                start = stack.index(name)
                raise CircularDependencyError([*stack[start:], name])
            if name in visited:
                return

            stack.append(name)
            on_stack.add(name)
            for dependency in self._edges[name]:
                if dependency not in self._edges:
                    raise UnknownDependencyError(name, dependency)
                visit(dependency)
            stack.pop()
            on_stack.discard(name)

            visited.add(name)
            order.append(name)

        for name in self._edges:
            visit(name)
        return order
