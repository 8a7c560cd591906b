"""Chunked execution layer for range splitting, bounded fetching and merging.

This module provides the reusable pieces that turn one large request into
many small, independently cacheable units and back into one document.

Architecture:
    The chunking layer consists of:
    - definitions.py: Task variants, chunks, outcomes (Success, Failure, ChunkResult)
    - planners.py: Range arithmetic and the TaskPlanner
    - executors.py: BoundedExecutor (concurrency ceiling, timeouts, caching)
    - scheduler.py: ChunkScheduler (incremental processing, progress reporting)
    - aggregator.py: ResultAggregator (dedup, ranking, metadata)
    - telemetry.py: Structured logging

Usage:
    Callers normally go through RetroPipeline; the components are exported
    for direct use and testing.
"""

from __future__ import annotations

from .aggregator import ResultAggregator
from .definitions import (
    Chunk,
    ChunkContext,
    ChunkResult,
    CommitsTask,
    Failure,
    GeneralTask,
    IssuesTask,
    MessagesTask,
    Outcome,
    PullRequestsTask,
    Success,
    Task,
    UnitPolicy,
)
from .executors import BoundedExecutor
from .planners import TaskPlanner, split_range
from .scheduler import ChunkProcessor, ChunkScheduler, ProgressReporter

__all__ = [
    "BoundedExecutor",
    "Chunk",
    "ChunkContext",
    "ChunkProcessor",
    "ChunkResult",
    "ChunkScheduler",
    "CommitsTask",
    "Failure",
    "GeneralTask",
    "IssuesTask",
    "MessagesTask",
    "Outcome",
    "ProgressReporter",
    "PullRequestsTask",
    "ResultAggregator",
    "Success",
    "Task",
    "TaskPlanner",
    "UnitPolicy",
    "split_range",
]
