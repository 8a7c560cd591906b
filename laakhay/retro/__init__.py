"""Laakhay Retro - Chunked activity collection and release-notes aggregation."""

from .api import RetroPipeline
from .cache import CacheStats, CacheStore
from .core import (
    AllChunksFailedError,
    CacheCorruptionError,
    ChunkStatus,
    ConfigurationError,
    DedupTieBreak,
    EntryCategory,
    ImpactLevel,
    InvalidRangeError,
    PipelineConfig,
    RetroError,
    TaskExecutionError,
    TaskKind,
    TaskTimeoutError,
)
from .models import (
    AggregatedDocument,
    AggregatedEntry,
    ChunkSummary,
    CollectionResult,
    DocumentMetadata,
    SummaryEntry,
    SummaryMetadata,
)
from .runtime.chunking import (
    BoundedExecutor,
    Chunk,
    ChunkContext,
    ChunkResult,
    ChunkScheduler,
    CommitsTask,
    Failure,
    GeneralTask,
    IssuesTask,
    MessagesTask,
    PullRequestsTask,
    ResultAggregator,
    Success,
    TaskPlanner,
    UnitPolicy,
)
from .runtime.collector import ActivityCollector
from .sources import ActivitySource, HTTPActivitySource, execute_task

__all__ = [
    # Facade
    "RetroPipeline",
    # Configuration
    "PipelineConfig",
    # Components
    "ActivityCollector",
    "BoundedExecutor",
    "CacheStore",
    "CacheStats",
    "ChunkScheduler",
    "ResultAggregator",
    "TaskPlanner",
    # Sources
    "ActivitySource",
    "HTTPActivitySource",
    "execute_task",
    # Units
    "Chunk",
    "ChunkContext",
    "ChunkResult",
    "CommitsTask",
    "Failure",
    "GeneralTask",
    "IssuesTask",
    "MessagesTask",
    "PullRequestsTask",
    "Success",
    "UnitPolicy",
    # Models
    "AggregatedDocument",
    "AggregatedEntry",
    "ChunkSummary",
    "CollectionResult",
    "DocumentMetadata",
    "SummaryEntry",
    "SummaryMetadata",
    # Enums
    "ChunkStatus",
    "DedupTieBreak",
    "EntryCategory",
    "ImpactLevel",
    "TaskKind",
    # Exceptions
    "RetroError",
    "ConfigurationError",
    "InvalidRangeError",
    "TaskTimeoutError",
    "TaskExecutionError",
    "AllChunksFailedError",
    "CacheCorruptionError",
]
