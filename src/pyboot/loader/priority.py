"""Priority tiers for scheduled loads."""

from __future__ import annotations

import enum


class LoadPriority(enum.IntEnum):
    """Urgency tiers; lower values are scheduled and awaited first."""

    CRITICAL = 1  # theme, core layout, essential configuration
    HIGH = 2  # global services (header, footer, SEO)
    NORMAL = 3  # page content, main components
    LOW = 4  # analytics, non-critical features
    LAZY = 5  # deferred content

    @classmethod
    def coerce(cls, value: int | LoadPriority) -> LoadPriority:
        """Return the tier for *value*, raising ``ValueError`` if out of range."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Invalid load priority {value!r}; expected {cls.CRITICAL}..{cls.LAZY}") from None
