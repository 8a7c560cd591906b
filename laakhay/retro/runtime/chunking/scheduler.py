"""Incremental processing of large date ranges.

The ChunkScheduler breaks a date range into contiguous chunks, drives a
caller-supplied chunk processor over them through the BoundedExecutor, and
reports progress as chunks settle. Its results feed the ResultAggregator.

Architecture:
    - create_chunks(): pure range split (see planners.split_range)
    - process(): runs chunks with ``max_concurrent_chunks`` and a per-chunk
      timeout; a failed chunk is terminal for that chunk (no retry)
    - run_incremental(): process() followed by ResultAggregator.combine()

Progress Reporting:
    Reporters are called after each chunk settles, in completion order,
    inside an error boundary. A coroutine returned by a reporter is scheduled
    as its own task rather than awaited by the worker, so a slow reporter
    cannot hold a concurrency slot; pending notifications are drained before
    process() returns.
"""

from __future__ import annotations

import asyncio
import gc
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import date, timedelta
from time import perf_counter
from types import MappingProxyType
from typing import Any, Protocol

from ...cache.store import CacheStore, make_options_digest
from ...core.config import PipelineConfig
from ...core.enums import ChunkStatus
from ...models import AggregatedDocument, ChunkSummary
from .aggregator import ResultAggregator
from .definitions import Chunk, ChunkContext, ChunkResult, Outcome
from .executors import BoundedExecutor
from .planners import coerce_range, range_days, split_range, time_unit
from .telemetry import log_chunk_plan

logger = logging.getLogger(__name__)

ChunkProcessor = Callable[[date, date, ChunkContext], Awaitable[Any]]


class ProgressReporter(Protocol):
    """Receives a notification each time a chunk settles.

    ``on_chunk_settled`` may be a plain method or a coroutine function.
    Reporters may also define ``on_run_started(total)``, called once before
    the first chunk is dispatched.
    """

    def on_chunk_settled(
        self, completed: int, total: int, chunk_id: str, outcome: Outcome
    ) -> Any: ...


class ChunkScheduler:
    """Splits a date range into chunks and processes them incrementally.

    Example:
        >>> scheduler = ChunkScheduler(config=PipelineConfig(max_concurrent_chunks=2))
        >>> results = await scheduler.process(start, end, summarize_chunk, reporter)
        >>> sum(r.succeeded for r in results)
        3
    """

    def __init__(
        self,
        *,
        config: PipelineConfig | None = None,
        cache: CacheStore | None = None,
        aggregator: ResultAggregator | None = None,
        cache_namespace: str | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            config: Pipeline configuration (defaults to PipelineConfig())
            cache: Shared CacheStore; chunk payloads are only cached when
                cache_namespace is also given
            aggregator: ResultAggregator used by run_incremental()
            cache_namespace: Prefix for chunk cache keys
        """
        self._config = config or PipelineConfig()
        self._cache = cache
        self._cache_namespace = cache_namespace
        self._aggregator = aggregator or ResultAggregator(config=self._config)
        self._executor = BoundedExecutor(
            cache if cache_namespace else None,
            max_concurrency=self._config.max_concurrent_chunks,
            timeout_ms=self._config.chunk_timeout_ms,
            cancel_on_timeout=self._config.cancel_on_timeout,
            cache_category=f"{cache_namespace}:chunk" if cache_namespace else "chunk",
        )
        self._stats = self._empty_stats()

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def executor(self) -> BoundedExecutor:
        return self._executor

    def should_use_incremental(
        self,
        range_days: int,
        estimated_volume: int | Mapping[str, int | None] = 0,
    ) -> bool:
        """Whether a request is large enough to process in chunks.

        Args:
            range_days: Length of the requested range in days
            estimated_volume: Estimated item count, or counts per source

        Returns:
            True if the range exceeds the day threshold or the volume exceeds
            the volume threshold
        """
        if isinstance(estimated_volume, Mapping):
            volume = sum(count or 0 for count in estimated_volume.values())
        else:
            volume = estimated_volume or 0
        return (
            range_days > self._config.large_range_threshold_days
            or volume > self._config.large_volume_threshold
        )

    def create_chunks(
        self,
        range_start: Any,
        range_end: Any,
        chunk_size_days: int | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> list[Chunk]:
        """Split a range into contiguous chunks.

        Chunk cache keys carry a digest of options, so runs with different
        options never share cached payloads.

        Raises:
            InvalidRangeError: If the range is malformed or inverted
            ValueError: If chunk_size_days is not positive
        """
        start, end = coerce_range(range_start, range_end)
        size_days = chunk_size_days or self._config.chunk_size_days
        if size_days <= 0:
            raise ValueError("chunk_size_days must be > 0")

        overlap = timedelta(milliseconds=self._config.overlap_ms)
        if time_unit(start) == timedelta(days=1):
            # Date bounds only move in whole days
            overlap = timedelta(days=overlap.days)

        options_digest = make_options_digest(options)
        chunks: list[Chunk] = []
        for index, (chunk_start, chunk_end) in enumerate(
            split_range(start, end, timedelta(days=size_days))
        ):
            chunks.append(
                Chunk(
                    id=f"chunk_{index}",
                    index=index,
                    range_start=chunk_start,
                    range_end=chunk_end,
                    inclusion_start=chunk_start - overlap,
                    cache_key=self._chunk_cache_key(chunk_start, chunk_end, options_digest),
                )
            )

        log_chunk_plan(total_chunks=len(chunks), chunk_size_days=size_days, start=start, end=end)
        return chunks

    async def process(
        self,
        range_start: Any,
        range_end: Any,
        chunk_processor: ChunkProcessor,
        progress_reporter: ProgressReporter | None = None,
        *,
        chunk_size_days: int | None = None,
        options: Mapping[str, Any] | None = None,
        deadline_ms: int | None = None,
    ) -> list[ChunkResult]:
        """Process a range chunk by chunk.

        Args:
            range_start: Inclusive start (date, datetime or ISO string)
            range_end: Inclusive end (date, datetime or ISO string)
            chunk_processor: ``async (start, end, context) -> payload``
            progress_reporter: Optional reporter notified per settled chunk
            chunk_size_days: Override of the configured chunk size
            options: Caller options copied into every ChunkContext
            deadline_ms: Optional budget for the whole run

        Returns:
            One ChunkResult per chunk, in chronological order

        Raises:
            InvalidRangeError: If the range is malformed or inverted
        """
        chunks = self.create_chunks(range_start, range_end, chunk_size_days, options)
        total = len(chunks)
        frozen_options = MappingProxyType(dict(options or {}))
        run_start = perf_counter()

        # Counters are local to this run; overlapping runs publish whole snapshots
        stats = self._empty_stats()
        stats["total_chunks"] = total
        self._stats = stats
        logger.info(f"Created {total} processing chunks for incremental processing")

        notifications: set[asyncio.Task[Any]] = set()
        settled = 0

        self._call_reporter(progress_reporter, "on_run_started", notifications, total)

        async def execute(chunk: Chunk) -> Any:
            chunk.status = ChunkStatus.RUNNING
            logger.debug(
                f"Starting chunk {chunk.id} "
                f"({chunk.range_start.isoformat()} to {chunk.range_end.isoformat()})"
            )
            context = ChunkContext(
                chunk_id=chunk.id,
                index=chunk.index,
                total=total,
                range_start=chunk.range_start,
                range_end=chunk.range_end,
                inclusion_start=chunk.inclusion_start,
                options=frozen_options,
            )
            payload = await chunk_processor(chunk.range_start, chunk.range_end, context)
            if payload is None or isinstance(payload, ChunkSummary):
                return payload
            # Raising here fails the chunk before the executor can cache the payload
            return ChunkSummary.model_validate(payload)

        def on_settled(index: int, chunk: Chunk, result: ChunkResult) -> None:
            nonlocal settled
            settled += 1
            if result.succeeded:
                chunk.status = ChunkStatus.SUCCEEDED
                stats["processed_chunks"] += 1
            else:
                chunk.status = ChunkStatus.FAILED
                stats["failed_chunks"] += 1
                logger.warning(f"Chunk {chunk.id} failed: {result.reason}")

            self._call_reporter(
                progress_reporter,
                "on_chunk_settled",
                notifications,
                settled,
                total,
                chunk.id,
                result.outcome,
            )

            if self._config.enable_memory_optimization and settled % self._config.gc_interval == 0:
                self._optimize_memory()

        results = await self._executor.run(
            chunks,
            execute,
            deadline_ms=deadline_ms,
            on_settled=on_settled,
        )

        if notifications:
            await asyncio.gather(*notifications, return_exceptions=True)

        stats["processing_time_ms"] = (perf_counter() - run_start) * 1000.0
        self._stats = stats
        logger.info(
            "Incremental processing completed: "
            f"{stats['processed_chunks']}/{total} chunks succeeded, "
            f"{stats['failed_chunks']} failed in "
            f"{stats['processing_time_ms']:.0f}ms"
        )
        return results

    async def run_incremental(
        self,
        range_start: Any,
        range_end: Any,
        chunk_processor: ChunkProcessor,
        progress_reporter: ProgressReporter | None = None,
        **kwargs: Any,
    ) -> AggregatedDocument:
        """Process a range in chunks and combine the results.

        Raises:
            InvalidRangeError: If the range is malformed or inverted
            AllChunksFailedError: If no chunk succeeded
        """
        start, end = coerce_range(range_start, range_end)
        run_start = perf_counter()
        results = await self.process(start, end, chunk_processor, progress_reporter, **kwargs)
        return self._aggregator.combine(
            results,
            (start, end),
            wall_time_ms=(perf_counter() - run_start) * 1000.0,
        )

    def range_days(self, range_start: Any, range_end: Any) -> int:
        """Length of a range in days, rounded up."""
        return range_days(*coerce_range(range_start, range_end))

    def processing_stats(self) -> dict[str, Any]:
        """Counters of the latest run plus derived averages."""
        stats = dict(self._stats)
        processed = stats["processed_chunks"]
        total = stats["total_chunks"]
        stats["average_chunk_time_ms"] = stats["processing_time_ms"] / processed if processed else 0.0
        stats["success_rate"] = processed / total * 100.0 if total else 0.0
        return stats

    def reset_stats(self) -> None:
        self._stats = self._empty_stats()

    def _chunk_cache_key(self, start: date, end: date, options_digest: str | None) -> str | None:
        if not self._cache_namespace or self._cache is None:
            return None
        key = f"{self._cache_namespace}:chunk:{start.isoformat()}:{end.isoformat()}"
        return f"{key}:{options_digest}" if options_digest else key

    def _call_reporter(
        self,
        reporter: ProgressReporter | None,
        hook: str,
        notifications: set[asyncio.Task[Any]],
        *args: Any,
    ) -> None:
        if reporter is None:
            return
        callback = getattr(reporter, hook, None)
        if callback is None:
            return
        try:
            outcome = callback(*args)
        except Exception as e:
            logger.error(f"Progress reporter {hook} failed: {e}", exc_info=True)
            return
        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(self._guard(hook, outcome))
            notifications.add(task)
            task.add_done_callback(notifications.discard)

    @staticmethod
    async def _guard(hook: str, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.error(f"Progress reporter {hook} failed: {e}", exc_info=True)

    @staticmethod
    def _optimize_memory() -> None:
        collected = gc.collect()
        logger.debug(f"Garbage collection reclaimed {collected} objects")

    @staticmethod
    def _empty_stats() -> dict[str, Any]:
        return {
            "total_chunks": 0,
            "processed_chunks": 0,
            "failed_chunks": 0,
            "processing_time_ms": 0.0,
        }
