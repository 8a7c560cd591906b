"""Core components."""

from .config import DEFAULT_CATEGORIES, PipelineConfig
from .enums import ChunkStatus, DedupTieBreak, EntryCategory, ImpactLevel, TaskKind
from .exceptions import (
    AllChunksFailedError,
    CacheCorruptionError,
    ConfigurationError,
    InvalidRangeError,
    RetroError,
    TaskExecutionError,
    TaskTimeoutError,
)

__all__ = [
    "PipelineConfig",
    "DEFAULT_CATEGORIES",
    "TaskKind",
    "ChunkStatus",
    "EntryCategory",
    "ImpactLevel",
    "DedupTieBreak",
    "RetroError",
    "ConfigurationError",
    "InvalidRangeError",
    "TaskTimeoutError",
    "TaskExecutionError",
    "AllChunksFailedError",
    "CacheCorruptionError",
]
