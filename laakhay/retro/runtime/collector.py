"""Raw activity collection over planned tasks.

The ActivityCollector plans one task per (scope, kind, window), runs the
tasks through a BoundedExecutor against an ActivitySource and merges the
payloads per kind. Overlapping or repeated tasks are served from the shared
CacheStore, and items seen twice (same natural key) are kept once.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from time import perf_counter
from typing import Any

from ..cache.store import CacheStore
from ..core.config import PipelineConfig
from ..core.enums import TaskKind
from ..models import CollectionResult
from ..sources.base import ActivitySource, execute_task
from .chunking.definitions import ChunkResult, Task, UnitPolicy
from .chunking.executors import BoundedExecutor
from .chunking.planners import TaskPlanner

logger = logging.getLogger(__name__)

ACTIVITY_CACHE_CATEGORY = "activity"

NATURAL_KEYS: Mapping[str, str] = {
    TaskKind.COMMITS.value: "sha",
    TaskKind.PULL_REQUESTS.value: "id",
    TaskKind.ISSUES.value: "id",
    TaskKind.MESSAGES.value: "ts",
}


@dataclass
class CollectorMetrics:
    """Cumulative counters across collect() calls."""

    total_queries: int = 0
    cached_queries: int = 0
    failed_queries: int = 0
    total_query_time_ms: float = 0.0

    @property
    def cache_hit_rate(self) -> float:
        """Percentage of queries served from the cache."""
        if not self.total_queries:
            return 0.0
        return self.cached_queries / self.total_queries * 100.0


class ActivityCollector:
    """Collects raw activity for a range from one source."""

    def __init__(
        self,
        cache: CacheStore | None = None,
        config: PipelineConfig | None = None,
        *,
        planner: TaskPlanner | None = None,
        executor: BoundedExecutor | None = None,
    ) -> None:
        """Initialize the collector.

        Args:
            cache: Shared CacheStore for task payloads (None disables caching)
            config: Pipeline configuration (defaults to PipelineConfig())
            planner: TaskPlanner override
            executor: BoundedExecutor override; when given, its cache is used
        """
        self._config = config or PipelineConfig()
        self._planner = planner or TaskPlanner()
        self._executor = executor or BoundedExecutor.from_config(
            self._config, cache, cache_category=ACTIVITY_CACHE_CATEGORY
        )
        self._metrics = CollectorMetrics()

    @property
    def metrics(self) -> CollectorMetrics:
        return self._metrics

    @property
    def executor(self) -> BoundedExecutor:
        return self._executor

    async def collect(
        self,
        source: ActivitySource,
        range_start: Any,
        range_end: Any,
        scopes: Sequence[str] | None = None,
        unit_policy: UnitPolicy | None = None,
    ) -> CollectionResult:
        """Collect activity for a range.

        Args:
            source: Upstream to query
            range_start: Inclusive start (date, datetime or ISO string)
            range_end: Inclusive end (date, datetime or ISO string)
            scopes: Repositories, teams or channels; empty means one
                unscoped query for the whole range
            unit_policy: Kinds per scope (defaults to source control)

        Returns:
            CollectionResult with items merged per kind and failed task ids

        Raises:
            InvalidRangeError: If the range is malformed or inverted
        """
        policy = unit_policy or UnitPolicy.source_control(self._config.split_threshold_days)
        tasks = self._planner.plan(range_start, range_end, scopes, policy)
        logger.info(f"Collecting activity with {len(tasks)} tasks")

        start = perf_counter()

        async def run(task: Task) -> dict[str, list[dict[str, Any]]]:
            return await execute_task(source, task)

        results = await self._executor.run(tasks, run)
        elapsed_ms = (perf_counter() - start) * 1000.0

        items = self._merge(results)
        failed = {result.chunk_id: result.reason or "" for result in results if not result.succeeded}
        cached = sum(1 for result in results if result.from_cache)

        self._metrics.total_queries += len(results)
        self._metrics.cached_queries += cached
        self._metrics.failed_queries += len(failed)
        self._metrics.total_query_time_ms += elapsed_ms

        if failed:
            logger.warning(f"{len(failed)} of {len(results)} collection tasks failed")

        return CollectionResult(
            items=items,
            total_tasks=len(results),
            cached_tasks=cached,
            failed_tasks=failed,
            elapsed_ms=elapsed_ms,
        )

    def reset_metrics(self) -> None:
        self._metrics = CollectorMetrics()

    @staticmethod
    def _merge(results: Sequence[ChunkResult]) -> dict[str, list[dict[str, Any]]]:
        merged: dict[str, list[dict[str, Any]]] = {}
        seen: dict[str, set[Any]] = {}
        for result in results:
            payload = result.payload
            if not isinstance(payload, Mapping):
                continue
            for kind, items in payload.items():
                bucket = merged.setdefault(kind, [])
                keys = seen.setdefault(kind, set())
                key_field = NATURAL_KEYS.get(kind)
                for item in items:
                    key = item.get(key_field) if key_field else None
                    if key is not None:
                        if key in keys:
                            continue
                        keys.add(key)
                    bucket.append(item)
        return merged
