"""Bootstrap configuration for pyboot."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyboot._constants import DEFAULT_LOAD_TIMEOUT, DEFAULT_WAIT_TIMEOUT
from pyboot.exceptions import BootConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class BootConfig:
    """Bootstrap configuration.

    Parameters
    ----------
    load_timeout : float or None
        Seconds a service factory (plus its initializer) may take before
        the load fails with :class:`~pyboot.exceptions.LoadTimeoutError`.
        ``None`` disables the bound.
    wait_timeout : float
        Default bound in seconds for ``wait_for`` on the store and the
        coordinator.
    retry : bool
        Retry a failed service load once (timeouts are never retried).
    trace_state_updates : bool
        Emit a DEBUG record for every state write and delete.
    log_value_max_length : int
        Longest string kept verbatim in traced values before truncation.
    """

    load_timeout: float | None = DEFAULT_LOAD_TIMEOUT
    wait_timeout: float = DEFAULT_WAIT_TIMEOUT
    retry: bool = True
    trace_state_updates: bool = False
    log_value_max_length: int = 200

    def __post_init__(self) -> None:
        if self.load_timeout is not None and self.load_timeout <= 0:
            raise BootConfigError(f"load_timeout must be positive or None, got {self.load_timeout!r}")
        if self.wait_timeout <= 0:
            raise BootConfigError(f"wait_timeout must be positive, got {self.wait_timeout!r}")
        if self.log_value_max_length <= 0:
            raise BootConfigError(f"log_value_max_length must be positive, got {self.log_value_max_length!r}")

    @classmethod
    def from_env(cls, **overrides: Any) -> BootConfig:
        """Create configuration from environment variables.

        Reads optional ``PYBOOT_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        BootConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        load_timeout_env = env.get("PYBOOT_LOAD_TIMEOUT")
        if load_timeout_env is not None and "load_timeout" not in overrides:
            stripped = load_timeout_env.strip().lower()
            config_kwargs["load_timeout"] = None if stripped in {"", "none", "off"} else float(stripped)

        wait_timeout_env = env.get("PYBOOT_WAIT_TIMEOUT")
        if wait_timeout_env is not None and "wait_timeout" not in overrides:
            config_kwargs["wait_timeout"] = float(wait_timeout_env)

        if "retry" not in overrides:
            config_kwargs["retry"] = _env_bool(env.get("PYBOOT_RETRY"), True)

        if "trace_state_updates" not in overrides:
            config_kwargs["trace_state_updates"] = _env_bool(
                env.get("PYBOOT_TRACE_STATE_UPDATES"),
                False,
            )

        max_length_env = env.get("PYBOOT_LOG_VALUE_MAX_LENGTH")
        if max_length_env is not None and "log_value_max_length" not in overrides:
            config_kwargs["log_value_max_length"] = int(max_length_env)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
