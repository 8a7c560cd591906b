"""Custom exception hierarchy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..runtime.chunking.definitions import ChunkResult


class RetroError(Exception):
    """Base exception for all library errors."""

    pass


class ConfigurationError(RetroError, ValueError):
    """Invalid pipeline configuration."""

    pass


class InvalidRangeError(RetroError, ValueError):
    """Range start is after range end, or a bound could not be parsed.

    Raised at call time, before any unit of work is dispatched.
    """

    def __init__(self, message: str, start: Any = None, end: Any = None) -> None:
        super().__init__(message)
        self.start = start
        self.end = end


class TaskTimeoutError(RetroError):
    """A unit of work did not settle within its timeout.

    Recorded as a failure outcome; never raised out of the executor.
    """

    def __init__(self, message: str, timeout_ms: int | None = None) -> None:
        super().__init__(message)
        self.timeout_ms = timeout_ms


class TaskExecutionError(RetroError):
    """The unit's execute function raised.

    Recorded as a failure outcome; never raised out of the executor.
    """

    pass


class AllChunksFailedError(RetroError):
    """Every chunk of a run failed, so there is nothing to aggregate."""

    def __init__(self, message: str, failures: list[ChunkResult] | None = None) -> None:
        super().__init__(message)
        self.failures = failures or []

    @property
    def failed_chunk_ids(self) -> list[str]:
        return [failure.chunk_id for failure in self.failures]


class CacheCorruptionError(RetroError):
    """A cached value failed its shape check on read.

    Internal to the cache: the store converts it into a miss.
    """

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key
