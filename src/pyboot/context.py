"""Bootstrap context wiring the store, loader and coordinator together."""

from __future__ import annotations

import logging
from typing import Any

from pyboot.config import BootConfig
from pyboot.loader.loader import PriorityLoader
from pyboot.loader.models import LoadOutcome
from pyboot.services.coordinator import ServiceCoordinator
from pyboot.state.store import StateStore

_logger = logging.getLogger(__name__)


class BootContext:
    """One store, one loader and one coordinator for an application.

    Construct it once at startup and hand it (or its parts) to the code
    that needs them.

    Usage::

        async with BootContext(BootConfig.from_env()) as boot:
            boot.services.register("database", connect_db, priority=LoadPriority.CRITICAL)
            await boot.start()
            db = boot.services.get("database")
    """

    def __init__(
        self,
        config: BootConfig | None = None,
        *,
        store: StateStore | None = None,
        loader: PriorityLoader | None = None,
    ) -> None:
        self.config = config or BootConfig()
        self.store = store or StateStore(
            wait_timeout=self.config.wait_timeout,
            trace_updates=self.config.trace_state_updates,
            log_value_max_length=self.config.log_value_max_length,
        )
        self.loader = loader or PriorityLoader(default_timeout=self.config.load_timeout)
        self.services = ServiceCoordinator(self.store, self.loader, config=self.config)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BootContext:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def start(self) -> dict[str, LoadOutcome]:
        """Load every registered service; see :meth:`ServiceCoordinator.load_all`."""
        outcomes = await self.services.load_all()
        failed = [name for name, outcome in outcomes.items() if not outcome.ok]
        if failed:
            _logger.warning("Bootstrap finished with failed services: %s", failed)
        else:
            _logger.debug("Bootstrap finished: %d services ready", len(outcomes))
        return outcomes

    async def close(self) -> None:
        """Cancel pending loads, destroy services and drop all cached state."""
        # Loads still running must not create instances after teardown.
        await self.loader.aclose()
        await self.services.clear()
        self.loader.clear()
        self.store.clear()
