"""Bounded-concurrency execution of work units.

This module provides the BoundedExecutor that runs a list of tasks or chunks
against a slow upstream with a concurrency ceiling, a per-unit timeout and
cache short-circuiting, and reports one outcome per unit.

Architecture:
    Worker pool over a shared cursor. ``min(max_concurrency, len(units))``
    workers each pull the next unit index, run it, store the result at that
    index and pull again. The pool size is the concurrency ceiling; a worker
    refills its slot as soon as its unit settles.

Design Decisions:
    - Results are stored by input index, so the returned list preserves input
      order regardless of completion order
    - The cache is checked when a unit is dispatched (not when the run
      starts), so a unit can reuse what an earlier unit of the same run wrote
    - Failures are captured as Failure outcomes, never raised; there is no
      automatic retry
    - Timeouts cancel the upstream call by default; with
      ``cancel_on_timeout=False`` the call keeps running detached and its
      result is discarded
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from time import perf_counter
from typing import Any

from ...cache.store import DEFAULT_CATEGORY, CacheStore
from ...core.config import PipelineConfig
from ...core.exceptions import ConfigurationError, TaskExecutionError, TaskTimeoutError
from .definitions import ChunkResult, Failure, Success, WorkUnit
from .telemetry import log_execution_complete, log_unit_completed, log_unit_error

logger = logging.getLogger(__name__)

ExecuteFn = Callable[[Any], Awaitable[Any]]
SettledCallback = Callable[[int, Any, ChunkResult], None]

TIMEOUT = "TaskTimeout"
EXECUTION_ERROR = "TaskExecutionError"
DEADLINE_EXCEEDED = "DeadlineExceeded"


class BoundedExecutor:
    """Runs work units with a concurrency ceiling and per-unit timeouts.

    Example:
        >>> executor = BoundedExecutor(cache, max_concurrency=2, timeout_ms=5_000)
        >>> results = await executor.run(tasks, fetch)
        >>> [r.succeeded for r in results]
        [True, False, True]
    """

    def __init__(
        self,
        cache: CacheStore | None = None,
        *,
        max_concurrency: int = 3,
        timeout_ms: int = 30_000,
        cancel_on_timeout: bool = True,
        cache_category: str = DEFAULT_CATEGORY,
    ) -> None:
        """Initialize the executor.

        Args:
            cache: Shared CacheStore (None disables caching)
            max_concurrency: Default ceiling on in-flight execute calls
            timeout_ms: Default per-unit timeout in milliseconds
            cancel_on_timeout: Cancel the upstream call when it times out
            cache_category: Category written with cached payloads
        """
        self._check_limits(max_concurrency, timeout_ms)
        self._cache = cache
        self._max_concurrency = max_concurrency
        self._timeout_ms = timeout_ms
        self._cancel_on_timeout = cancel_on_timeout
        self._cache_category = cache_category

        self._in_flight = 0
        self._peak_in_flight = 0
        # Timed-out calls left running when cancel_on_timeout is False
        self._orphans: set[asyncio.Future[Any]] = set()

    @classmethod
    def from_config(
        cls, config: PipelineConfig, cache: CacheStore | None = None, **kwargs: Any
    ) -> BoundedExecutor:
        """Build an executor from pipeline configuration."""
        return cls(
            cache,
            max_concurrency=config.max_concurrency,
            timeout_ms=config.timeout_ms,
            cancel_on_timeout=config.cancel_on_timeout,
            **kwargs,
        )

    @property
    def cache(self) -> CacheStore | None:
        return self._cache

    @property
    def in_flight(self) -> int:
        """Execute calls currently awaited by a worker."""
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        """Highest in_flight value observed since construction."""
        return self._peak_in_flight

    @property
    def orphaned(self) -> int:
        """Timed-out calls still running in the background."""
        return len(self._orphans)

    async def run(
        self,
        units: Sequence[WorkUnit],
        execute_fn: ExecuteFn,
        *,
        max_concurrency: int | None = None,
        timeout_ms: int | None = None,
        deadline_ms: int | None = None,
        on_settled: SettledCallback | None = None,
    ) -> list[ChunkResult]:
        """Run every unit and return one result per unit, in input order.

        Args:
            units: Tasks or chunks (anything with ``id`` and ``cache_key``)
            execute_fn: Async function called with one unit
            max_concurrency: Override of the default ceiling for this run
            timeout_ms: Override of the default per-unit timeout for this run
            deadline_ms: Optional budget for the whole run; units still
                pending when it expires fail with "DeadlineExceeded"
            on_settled: Called as ``on_settled(index, unit, result)`` in
                completion order

        Returns:
            List of ChunkResult aligned with ``units``

        Raises:
            ConfigurationError: If a limit override is out of range
        """
        units = list(units)
        if not units:
            return []

        concurrency = self._max_concurrency if max_concurrency is None else max_concurrency
        budget_ms = self._timeout_ms if timeout_ms is None else timeout_ms
        self._check_limits(concurrency, budget_ms)
        if deadline_ms is not None and deadline_ms <= 0:
            raise ConfigurationError("deadline_ms must be > 0")

        results: list[ChunkResult | None] = [None] * len(units)
        # Shared cursor: each index is handed to exactly one worker
        cursor = iter(range(len(units)))
        run_start = perf_counter()

        async def worker() -> None:
            for index in cursor:
                unit = units[index]
                result = await self._run_unit(unit, execute_fn, budget_ms)
                results[index] = result
                self._notify(on_settled, index, unit, result)

        workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, len(units)))]

        if deadline_ms is None:
            await asyncio.gather(*workers)
        else:
            _, pending = await asyncio.wait(workers, timeout=deadline_ms / 1000.0)
            for task in pending:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            if pending:
                logger.warning(f"Run deadline of {deadline_ms}ms exceeded")

        final: list[ChunkResult] = []
        for index, result in enumerate(results):
            if result is None:
                unit = units[index]
                result = ChunkResult(
                    chunk_id=unit.id,
                    outcome=Failure(
                        reason=f"Run deadline of {deadline_ms}ms exceeded",
                        error_type=DEADLINE_EXCEEDED,
                    ),
                )
                log_unit_error(
                    unit_id=unit.id,
                    error_type=DEADLINE_EXCEEDED,
                    error_message=result.outcome.reason,
                )
                self._notify(on_settled, index, unit, result)
            final.append(result)

        log_execution_complete(
            total_units=len(final),
            succeeded=sum(1 for r in final if r.succeeded),
            failed=sum(1 for r in final if not r.succeeded),
            cached=sum(1 for r in final if r.from_cache),
            total_latency_ms=(perf_counter() - run_start) * 1000.0,
        )
        return final

    async def _run_unit(self, unit: WorkUnit, execute_fn: ExecuteFn, timeout_ms: int) -> ChunkResult:
        cache_key = unit.cache_key
        if cache_key and self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                log_unit_completed(unit_id=unit.id, latency_ms=0.0, from_cache=True)
                return ChunkResult(chunk_id=unit.id, outcome=Success(cached), from_cache=True)

        start = perf_counter()
        self._in_flight += 1
        self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
        try:
            payload = await self._call(unit, execute_fn, timeout_ms / 1000.0)
        except TimeoutError as e:
            elapsed_ms = (perf_counter() - start) * 1000.0
            error = TaskTimeoutError(f"Timed out after {timeout_ms}ms", timeout_ms=timeout_ms)
            error.__cause__ = e
            log_unit_error(
                unit_id=unit.id,
                error_type=TIMEOUT,
                error_message=str(error),
                latency_ms=elapsed_ms,
            )
            return ChunkResult(
                chunk_id=unit.id,
                outcome=Failure(reason=str(error), error_type=TIMEOUT, error=error),
                elapsed_ms=elapsed_ms,
            )
        except Exception as e:
            elapsed_ms = (perf_counter() - start) * 1000.0
            error = TaskExecutionError(str(e) or type(e).__name__)
            error.__cause__ = e
            log_unit_error(
                unit_id=unit.id,
                error_type=EXECUTION_ERROR,
                error_message=str(error),
                latency_ms=elapsed_ms,
            )
            return ChunkResult(
                chunk_id=unit.id,
                outcome=Failure(reason=str(error), error_type=EXECUTION_ERROR, error=e),
                elapsed_ms=elapsed_ms,
            )
        finally:
            self._in_flight -= 1

        elapsed_ms = (perf_counter() - start) * 1000.0
        if cache_key and self._cache is not None and payload is not None:
            self._cache.set(cache_key, payload, category=self._cache_category)

        log_unit_completed(unit_id=unit.id, latency_ms=elapsed_ms)
        return ChunkResult(chunk_id=unit.id, outcome=Success(payload), elapsed_ms=elapsed_ms)

    async def _call(self, unit: WorkUnit, execute_fn: ExecuteFn, timeout_s: float) -> Any:
        if self._cancel_on_timeout:
            return await asyncio.wait_for(execute_fn(unit), timeout=timeout_s)

        call = asyncio.ensure_future(execute_fn(unit))
        try:
            return await asyncio.wait_for(asyncio.shield(call), timeout=timeout_s)
        except (TimeoutError, asyncio.CancelledError):
            if not call.done():
                self._detach(call, unit.id)
            raise

    def _detach(self, call: asyncio.Future[Any], unit_id: str) -> None:
        logger.debug(f"Leaving timed-out call for {unit_id} running in the background")
        self._orphans.add(call)
        call.add_done_callback(self._reap)

    def _reap(self, call: asyncio.Future[Any]) -> None:
        self._orphans.discard(call)
        if call.cancelled():
            return
        error = call.exception()
        if error is not None:
            logger.debug(f"Detached call finished with error: {error}")

    def _notify(
        self,
        on_settled: SettledCallback | None,
        index: int,
        unit: WorkUnit,
        result: ChunkResult,
    ) -> None:
        if on_settled is None:
            return
        try:
            on_settled(index, unit, result)
        except Exception as e:
            logger.error(f"Settled callback failed for {unit.id}: {e}", exc_info=True)

    @staticmethod
    def _check_limits(max_concurrency: int, timeout_ms: int) -> None:
        if max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be >= 1")
        if timeout_ms <= 0:
            raise ConfigurationError("timeout_ms must be > 0")
