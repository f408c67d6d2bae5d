from __future__ import annotations

import pytest

from pyboot.exceptions import BootConfigError, CircularDependencyError, UnknownDependencyError
from pyboot.services.graph import DependencyGraph


def _graph(edges: dict[str, tuple[str, ...]]) -> DependencyGraph:
    graph = DependencyGraph()
    for name, deps in edges.items():
        graph.add_node(name, deps)
    return graph


def test_dependencies_come_before_dependents() -> None:
    graph = _graph({"ui": ("api",), "api": ("database",), "database": ()})

    assert graph.topological_order() == ["database", "api", "ui"]


def test_order_is_deterministic_for_independent_nodes() -> None:
    graph = _graph({"b": (), "a": (), "c": ("a",)})

    assert graph.topological_order() == ["b", "a", "c"]
    assert graph.topological_order() == graph.topological_order()


def test_shared_dependency_appears_once() -> None:
    graph = _graph({"d": ("b", "c"), "b": ("a",), "c": ("a",), "a": ()})

    order = graph.topological_order()

    assert order == ["a", "b", "c", "d"]


def test_cycle_reports_the_path() -> None:
    graph = _graph({"a": ("b",), "b": ("a",)})

    with pytest.raises(CircularDependencyError) as excinfo:
        graph.topological_order()

    assert excinfo.value.cycle == ("a", "b", "a")
    assert "a -> b -> a" in str(excinfo.value)
    assert isinstance(excinfo.value, BootConfigError)


def test_self_dependency_is_a_cycle() -> None:
    graph = _graph({"a": ("a",)})

    with pytest.raises(CircularDependencyError):
        graph.topological_order()


def test_unknown_dependency_is_reported() -> None:
    graph = _graph({"api": ("database",)})

    with pytest.raises(UnknownDependencyError) as excinfo:
        graph.topological_order()

    assert excinfo.value.name == "api"
    assert excinfo.value.dependency == "database"


def test_dependents_and_membership() -> None:
    graph = _graph({"database": (), "api": ("database",), "ui": ("api", "database")})

    assert graph.dependents_of("database") == ["api", "ui"]
    assert graph.dependencies_of("ui") == ("api", "database")
    assert "api" in graph
    assert len(graph) == 3
    assert list(graph) == ["database", "api", "ui"]

    graph.clear()
    assert list(graph) == []
