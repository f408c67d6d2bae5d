"""Change events emitted by the state store.

Every ``set``, ``delete`` and ``clear`` is described by a
:class:`StateChange`. Wildcard subscribers receive it as-is; path
subscribers receive the values it carries.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field


class _MissingType:
    """Type of the :data:`MISSING` sentinel."""

    _instance: _MissingType | None = None

    def __new__(cls) -> _MissingType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _MissingType:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _MissingType:
        return self

    def __reduce__(self) -> str:
        return "MISSING"


MISSING: Final = _MissingType()
"""Returned for paths that hold no value. Distinct from ``None``."""


class ChangeKind(StrEnum):
    SET = "set"
    DELETE = "delete"
    CLEAR = "clear"


class StateChange(BaseModel):
    """A single mutation of the state tree."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    path: str = Field(..., description="Dot-separated path that changed")
    value: Any = Field(default=MISSING, description="New value, MISSING when removed")
    old_value: Any = Field(default=MISSING, description="Previous value, MISSING when new")
    kind: ChangeKind = ChangeKind.SET

    @property
    def created(self) -> bool:
        return self.old_value is MISSING and self.value is not MISSING

    @property
    def removed(self) -> bool:
        return self.value is MISSING
