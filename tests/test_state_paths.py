from __future__ import annotations

import pytest

from pyboot.exceptions import InvalidPathError
from pyboot.state.paths import ancestors, join_path, parse_path, parse_subscription_path


def test_parse_path_splits_on_dots() -> None:
    assert parse_path("services.api.ready") == ("services", "api", "ready")
    assert join_path(("services", "api")) == "services.api"


def test_parse_path_rejects_non_strings() -> None:
    with pytest.raises(InvalidPathError):
        parse_path(None)  # type: ignore[arg-type]


def test_wildcard_is_only_valid_for_subscriptions() -> None:
    assert parse_subscription_path("*") is None
    with pytest.raises(InvalidPathError):
        parse_path("*")


def test_ancestors_are_nearest_first_and_segment_aligned() -> None:
    assert list(ancestors(("a", "b", "c"))) == [("a", "b"), ("a",)]
    assert list(ancestors(("abc",))) == []
