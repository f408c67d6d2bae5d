"""Priority-aware, deduplicated async loader.

A load is identified by a string key. While a key is in flight every
caller shares the same task, so the loader function never runs twice
concurrently for one key. Successful results are cached per key until
evicted.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import math
from collections.abc import Iterable
from typing import Any

from pyboot._constants import DEFAULT_LOAD_TIMEOUT
from pyboot.exceptions import AllLoadsFailedError, LoadTimeoutError
from pyboot.loader.models import LoaderFn, LoaderStats, LoadOutcome, LoadRequest, TierReport
from pyboot.loader.priority import LoadPriority

_logger = logging.getLogger(__name__)


class PriorityLoader:
    """Run keyed loads once, cache their results and bound their duration.

    Parameters
    ----------
    default_timeout
        Seconds applied when ``load`` is called without ``timeout``.
        ``None``, ``0`` or ``inf`` disable the bound.
    """

    def __init__(self, *, default_timeout: float | None = DEFAULT_LOAD_TIMEOUT) -> None:
        self._default_timeout = default_timeout
        self._results: dict[str, Any] = {}
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._errors: dict[str, BaseException] = {}
        self._tiers: dict[LoadPriority, dict[str, asyncio.Task[Any]]] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(
        self,
        priority: LoadPriority | int,
        key: str,
        loader: LoaderFn,
        *,
        retry: bool = True,
        cache: bool = True,
        timeout: float | None = None,
    ) -> Any:
        """Load *key* through *loader*, sharing in-flight work and cached results.

        Parameters
        ----------
        priority
            Tier the task is registered under for :meth:`wait_for_priority`.
        key
            Cache and deduplication key.
        loader
            Zero-argument callable returning a value or an awaitable.
        retry
            Run the loader once more after a failure. Timeouts are never
            retried.
        cache
            Read and write the result cache. With ``cache=False`` the
            loader runs unless the key is already in flight.
        timeout
            Seconds before :class:`LoadTimeoutError`. ``None`` uses the
            loader default; ``0`` or ``inf`` mean unbounded.
        """
        task = self._acquire(priority, key, loader, retry=retry, cache=cache, timeout=timeout)
        if task is None:
            return self._results[key]
        # A cancelled caller must not cancel the work other callers share.
        return await asyncio.shield(task)

    async def load_many(self, requests: Iterable[LoadRequest]) -> list[LoadOutcome]:
        """Load every request concurrently; never short-circuits on failure."""
        items = list(requests)
        _logger.debug("Loading %d resources in parallel", len(items))
        results = await asyncio.gather(
            *(
                self.load(
                    item.priority,
                    item.key,
                    item.loader,
                    retry=item.retry,
                    cache=item.cache,
                    timeout=item.timeout,
                )
                for item in items
            ),
            return_exceptions=True,
        )
        outcomes: list[LoadOutcome] = []
        for item, result in zip(items, results, strict=True):
            if isinstance(result, BaseException):
                outcomes.append(LoadOutcome(key=item.key, error=result))
            else:
                outcomes.append(LoadOutcome(key=item.key, value=result))
        return outcomes

    def preload(
        self,
        priority: LoadPriority | int,
        key: str,
        loader: LoaderFn,
        *,
        retry: bool = True,
        cache: bool = True,
        timeout: float | None = None,
    ) -> asyncio.Future[Any]:
        """Start a load without waiting for it. Failures are only logged.

        The task is registered before this returns, so a following
        :meth:`wait_for_priority` includes it. Returns the shared load task,
        or a finished future on a cache hit.
        """
        task = self._acquire(priority, key, loader, retry=retry, cache=cache, timeout=timeout)
        if task is None:
            done: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
            done.set_result(self._results[key])
            return done
        task.add_done_callback(functools.partial(self._on_preload_done, key))
        return task

    async def wait_for_priority(self, max_priority: LoadPriority | int) -> TierReport:
        """Wait for every task registered so far at tier ``<= max_priority``.

        Tasks scheduled after this call starts are not awaited.

        Raises
        ------
        AllLoadsFailedError
            If at least one task was awaited and all of them failed.
        """
        tier = LoadPriority.coerce(max_priority)
        tasks = [
            task
            for priority, bucket in sorted(self._tiers.items())
            if priority <= tier
            for task in bucket.values()
        ]
        if not tasks:
            _logger.debug("No resources to wait for at %s and higher", tier.name)
            return TierReport(max_priority=tier)

        _logger.debug("Waiting for %d resources at %s and higher", len(tasks), tier.name)
        results = await asyncio.gather(*(asyncio.shield(task) for task in tasks), return_exceptions=True)
        errors = [result for result in results if isinstance(result, BaseException)]
        report = TierReport(max_priority=tier, succeeded=len(results) - len(errors), failed=len(errors))
        _logger.debug("Priority wait complete: %d succeeded, %d failed", report.succeeded, report.failed)

        if errors and report.succeeded == 0:
            raise AllLoadsFailedError(errors)
        return report

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def evict(self, key: str) -> None:
        """Forget the cached result and error for *key*; in-flight work continues."""
        _logger.debug("Evicting %s from cache", key)
        self._results.pop(key, None)
        self._errors.pop(key, None)

    def clear(self) -> None:
        """Forget all cached results and errors; in-flight work continues."""
        _logger.debug("Clearing all cached resources")
        self._results.clear()
        self._errors.clear()

    async def aclose(self) -> None:
        """Cancel every in-flight load and wait for the cancellations to settle."""
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def is_loaded(self, key: str) -> bool:
        return key in self._results

    def is_loading(self, key: str) -> bool:
        return key in self._in_flight

    def get_error(self, key: str) -> BaseException | None:
        return self._errors.get(key)

    def stats(self) -> LoaderStats:
        return LoaderStats(
            loaded=len(self._results),
            loading=len(self._in_flight),
            errors=len(self._errors),
            tiers={priority.name: len(bucket) for priority, bucket in sorted(self._tiers.items())},
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_timeout(self, timeout: float | None) -> float | None:
        effective = self._default_timeout if timeout is None else timeout
        if effective is None or effective <= 0 or math.isinf(effective):
            return None
        return effective

    def _acquire(
        self,
        priority: LoadPriority | int,
        key: str,
        loader: LoaderFn,
        *,
        retry: bool,
        cache: bool,
        timeout: float | None,
    ) -> asyncio.Task[Any] | None:
        """Return the task serving *key*, or ``None`` on a cache hit."""
        tier = LoadPriority.coerce(priority)

        if cache and key in self._results:
            _logger.debug("Cache hit: %s", key)
            return None

        task = self._in_flight.get(key)
        if task is not None:
            _logger.debug("Already loading: %s", key)
            return task
        return self._schedule(tier, key, loader, retry=retry, cache=cache, timeout=self._resolve_timeout(timeout))

    def _schedule(
        self,
        tier: LoadPriority,
        key: str,
        loader: LoaderFn,
        *,
        retry: bool,
        cache: bool,
        timeout: float | None,
    ) -> asyncio.Task[Any]:
        _logger.debug("Loading [%s] %s", tier.name, key)
        task = asyncio.get_running_loop().create_task(
            self._run(tier, key, loader, retry=retry, cache=cache, timeout=timeout),
            name=f"pyboot-load:{key}",
        )
        self._in_flight[key] = task
        self._tiers.setdefault(tier, {})[key] = task
        task.add_done_callback(functools.partial(self._on_settled, key))
        return task

    async def _run(
        self,
        tier: LoadPriority,
        key: str,
        loader: LoaderFn,
        *,
        retry: bool,
        cache: bool,
        timeout: float | None,
    ) -> Any:
        try:
            result = await self._attempt(key, loader, timeout)
        except LoadTimeoutError as exc:
            self._errors[key] = exc
            _logger.warning("Failed [%s] %s: %s", tier.name, key, exc)
            raise
        except Exception as exc:
            self._errors[key] = exc
            if not retry:
                _logger.warning("Failed [%s] %s: %s", tier.name, key, exc)
                raise
            _logger.warning("Failed [%s] %s: %s; retrying once", tier.name, key, exc)
            try:
                result = await self._attempt(key, loader, timeout)
            except Exception as retry_exc:
                self._errors[key] = retry_exc
                _logger.warning("Retry failed [%s] %s: %s", tier.name, key, retry_exc)
                raise

        if cache:
            self._results[key] = result
        self._errors.pop(key, None)
        _logger.debug("Loaded [%s] %s", tier.name, key)
        return result

    @staticmethod
    async def _attempt(key: str, loader: LoaderFn, timeout: float | None) -> Any:
        result = loader()
        if not inspect.isawaitable(result):
            return result
        if timeout is None:
            return await result
        try:
            async with asyncio.timeout(timeout) as scope:
                return await result
        except TimeoutError:
            if scope.expired():
                raise LoadTimeoutError(key, timeout) from None
            raise

    def _on_settled(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved; callers observe it through shield().
            task.exception()

    def _on_preload_done(self, key: str, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.warning("Preload failed for %s: %s", key, exc)
