"""Shared constants for pyboot."""

from __future__ import annotations

#: Default loader timeout in seconds.
DEFAULT_LOAD_TIMEOUT: float = 30.0

#: Default bound for ``wait_for`` calls in seconds.
DEFAULT_WAIT_TIMEOUT: float = 10.0

#: Separator between path segments.
PATH_SEPARATOR = "."

#: Subscription path that receives every change.
WILDCARD_PATH = "*"

#: Root of the coordinator-owned state subtree.
SERVICES_ROOT = "services"

#: Prefix of loader keys used for services.
SERVICE_KEY_PREFIX = "service:"


def service_path(name: str, field: str | None = None) -> str:
    """Return the state path for a service, optionally for one status field."""
    base = f"{SERVICES_ROOT}{PATH_SEPARATOR}{name}"
    if field is None:
        return base
    return f"{base}{PATH_SEPARATOR}{field}"


def service_key(name: str) -> str:
    """Return the loader cache key for a service."""
    return f"{SERVICE_KEY_PREFIX}{name}"
