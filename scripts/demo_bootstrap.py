#!/usr/bin/env python3
"""Walk through a three-service bootstrap with pyboot.

Registers ``database`` (CRITICAL), ``api`` (HIGH, depends on database) and
``ui`` (NORMAL, depends on api), preloads a couple of resources, then
prints the load order, every state change and the final service report.

Usage
-----
::

    python scripts/demo_bootstrap.py
    python scripts/demo_bootstrap.py --fail api --verbose

Options::

    --fail NAME          Make the named service's factory raise
    --delay SECONDS      Simulated latency of each factory (default: 0.1)
    --json               Print the final report as JSON
    --verbose, -v        Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyboot import BootConfig, BootContext, LoadPriority, StateChange  # noqa: E402

# ── helpers ──────────────────────────────────────────────────


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


class _DemoService:
    def __init__(self, name: str, teardown: list[str], *deps: Any) -> None:
        self.name = name
        self.deps = deps
        self.connected = False
        self._teardown = teardown

    async def load(self) -> None:
        self.connected = True

    def destroy(self) -> None:
        self._teardown.append(self.name)

    def __repr__(self) -> str:
        return f"<{self.name} connected={self.connected}>"


def _factory(
    boot: BootContext,
    name: str,
    deps: list[str],
    teardown: list[str],
    *,
    delay: float,
    fail: str | None,
) -> Any:
    async def create() -> _DemoService:
        await asyncio.sleep(delay)
        if name == fail:
            raise RuntimeError(f"{name} refused to start")
        return _DemoService(name, teardown, *(boot.services.get(dep) for dep in deps))

    return create


def _print_change(change: StateChange) -> None:
    value = "<missing>" if change.removed else repr(change.value)
    if change.created:
        value += "  (new)"
    print(f"  {change.kind.value:<6} {change.path} = {value}")


# ── main ─────────────────────────────────────────────────────


async def main() -> None:
    parser = argparse.ArgumentParser(description="Demonstrate a dependency-ordered pyboot bootstrap.")
    parser.add_argument("--fail", choices=["database", "api", "ui"], help="Make this service's factory raise")
    parser.add_argument("--delay", type=float, default=0.1, help="Simulated factory latency in seconds")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Print the final report as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = BootConfig.from_env(trace_state_updates=args.verbose)
    services = {
        "database": ([], LoadPriority.CRITICAL),
        "api": (["database"], LoadPriority.HIGH),
        "ui": (["api"], LoadPriority.NORMAL),
    }

    teardown: list[str] = []
    async with BootContext(config) as boot:
        if not args.json_mode:
            print(_section("STATE CHANGES"))
            boot.store.subscribe("*", _print_change)

        for name, (deps, priority) in services.items():
            boot.services.register(
                name,
                _factory(boot, name, deps, teardown, delay=args.delay, fail=args.fail),
                dependencies=deps,
                priority=priority,
            )

        boot.loader.preload(LoadPriority.CRITICAL, "theme", lambda: {"mode": "dark"})
        boot.loader.preload(LoadPriority.LOW, "analytics", lambda: asyncio.sleep(args.delay, result="ok"))
        await boot.loader.wait_for_priority(LoadPriority.CRITICAL)

        order = boot.services.compute_load_order()
        outcomes = await boot.start()
        stats = boot.services.stats()

        if args.json_mode:
            report = {
                "load_order": order,
                "services": {name: item.model_dump(mode="json") for name, item in stats.services.items()},
                "loader": boot.loader.stats().model_dump(mode="json"),
            }
            print(json.dumps(report, indent=2))
            return

        print(_section("SERVICES"))
        print(f"  order     : {' -> '.join(order)}")
        for name, outcome in outcomes.items():
            detail = repr(outcome.value) if outcome.ok else f"FAILED ({outcome.error})"
            print(f"  {name:<10}: {detail}")
        print(f"  loaded    : {stats.loaded}/{stats.registered}")

    if not args.json_mode:
        print(_section("TEARDOWN"))
        for name in teardown:
            print(f"  destroyed : {name}")


if __name__ == "__main__":
    asyncio.run(main())
