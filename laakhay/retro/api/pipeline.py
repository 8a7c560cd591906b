"""RetroPipeline facade over collection, chunked processing and aggregation.

The RetroPipeline wires one PipelineConfig and one shared CacheStore into the
planner, executor, scheduler, aggregator and collector, and exposes the two
entry points callers need: raw activity collection and range summarization.

Architecture:
    This module implements the Facade pattern. RetroPipeline handles:
    - Component construction from a single configuration
    - Cache ownership (injected or created) and the periodic sweep task
    - Choosing incremental or single-chunk processing per request

Design Decisions:
    - Cache injection lets several pipelines share one store and lets tests
      drive TTL with a fake clock
    - Both summarize() paths return an AggregatedDocument, so callers never
      branch on the processing method
    - Context manager pattern ensures the sweeper is stopped
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from time import perf_counter
from typing import Any

from ..cache.store import CacheStore
from ..core.config import PipelineConfig
from ..models import AggregatedDocument, CollectionResult
from ..runtime.chunking.aggregator import ResultAggregator
from ..runtime.chunking.definitions import UnitPolicy
from ..runtime.chunking.executors import BoundedExecutor
from ..runtime.chunking.planners import TaskPlanner, coerce_range, range_days
from ..runtime.chunking.scheduler import ChunkProcessor, ChunkScheduler, ProgressReporter
from ..runtime.collector import ActivityCollector
from ..sources.base import ActivitySource

logger = logging.getLogger(__name__)


class RetroPipeline:
    """High-level entry point for collecting and summarizing activity.

    Example:
        >>> async with RetroPipeline(PipelineConfig(max_concurrent_chunks=2)) as pipeline:
        ...     activity = await pipeline.collect_activity(source, start, end, ["acme/web"])
        ...     document = await pipeline.summarize(start, end, summarize_chunk)
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        cache: CacheStore | None = None,
        cache_namespace: str | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Pipeline configuration (defaults to PipelineConfig())
            cache: Shared CacheStore (creates one from config if not provided)
            cache_namespace: When set, chunk payloads are cached under this
                prefix so repeated summaries of the same range are reused
        """
        self._config = config or PipelineConfig()
        self._owns_cache = cache is None
        self._cache = cache if cache is not None else CacheStore(
            ttl_ms=self._config.cache_ttl_ms,
            max_size=self._config.cache_max_size,
            similarity_threshold=self._config.similarity_threshold,
        )
        self._planner = TaskPlanner()
        self._executor = BoundedExecutor.from_config(
            self._config, self._cache, cache_category="activity"
        )
        self._aggregator = ResultAggregator(config=self._config)
        self._scheduler = ChunkScheduler(
            config=self._config,
            cache=self._cache,
            aggregator=self._aggregator,
            cache_namespace=cache_namespace,
        )
        self._collector = ActivityCollector(
            self._cache, self._config, planner=self._planner, executor=self._executor
        )
        self._closed = False

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def scheduler(self) -> ChunkScheduler:
        return self._scheduler

    @property
    def aggregator(self) -> ResultAggregator:
        return self._aggregator

    @property
    def collector(self) -> ActivityCollector:
        return self._collector

    async def collect_activity(
        self,
        source: ActivitySource,
        range_start: Any,
        range_end: Any,
        scopes: Sequence[str] | None = None,
        unit_policy: UnitPolicy | None = None,
    ) -> CollectionResult:
        """Collect raw activity for a range (see ActivityCollector.collect)."""
        return await self._collector.collect(source, range_start, range_end, scopes, unit_policy)

    async def summarize(
        self,
        range_start: Any,
        range_end: Any,
        processor: ChunkProcessor,
        reporter: ProgressReporter | None = None,
        estimated_volume: int | Mapping[str, int | None] = 0,
        options: Mapping[str, Any] | None = None,
        *,
        deadline_ms: int | None = None,
    ) -> AggregatedDocument:
        """Summarize a range into one document.

        Large requests (long range or high estimated volume) are processed in
        chunks of ``chunk_size_days``; small ones run as a single chunk
        covering the whole range.

        Args:
            range_start: Inclusive start (date, datetime or ISO string)
            range_end: Inclusive end (date, datetime or ISO string)
            processor: ``async (start, end, context) -> ChunkSummary | dict``
            reporter: Optional progress reporter
            estimated_volume: Estimated item count, or counts per source
            options: Caller options copied into every ChunkContext
            deadline_ms: Optional budget for the whole run

        Returns:
            AggregatedDocument

        Raises:
            InvalidRangeError: If the range is malformed or inverted
            AllChunksFailedError: If no chunk succeeded
        """
        start, end = coerce_range(range_start, range_end)
        days = range_days(start, end)

        if self._scheduler.should_use_incremental(days, estimated_volume):
            logger.info(f"Using incremental processing for {days} day range")
            return await self._scheduler.run_incremental(
                start, end, processor, reporter, options=options, deadline_ms=deadline_ms
            )

        logger.info(f"Using single-chunk processing for {days} day range")
        run_start = perf_counter()
        results = await self._scheduler.process(
            start,
            end,
            processor,
            reporter,
            chunk_size_days=days + 1,
            options=options,
            deadline_ms=deadline_ms,
        )
        return self._aggregator.combine(
            results,
            (start, end),
            wall_time_ms=(perf_counter() - run_start) * 1000.0,
            processing_method="single",
        )

    def start(self) -> None:
        """Start the periodic cache sweep, if configured."""
        interval = self._config.cache_sweep_interval_s
        if interval is not None:
            self._cache.start_sweeper(interval)

    async def close(self) -> None:
        """Stop background work."""
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing RetroPipeline")
        await self._cache.stop_sweeper()
        if self._owns_cache:
            self._cache.clear()

    async def __aenter__(self) -> RetroPipeline:
        """Async context manager entry."""
        self._closed = False
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
