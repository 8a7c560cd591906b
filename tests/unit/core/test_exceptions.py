"""Unit tests for the retro exception hierarchy."""

from laakhay.retro.core import (
    AllChunksFailedError,
    CacheCorruptionError,
    ConfigurationError,
    ImpactLevel,
    InvalidRangeError,
    RetroError,
    TaskTimeoutError,
)
from laakhay.retro.runtime.chunking import ChunkResult, Failure


def test_invalid_range_error_carries_bounds():
    """InvalidRangeError keeps the offending bounds and is a ValueError."""
    error = InvalidRangeError("inverted", start="2024-02-01", end="2024-01-01")
    assert error.start == "2024-02-01"
    assert error.end == "2024-01-01"
    assert isinstance(error, ValueError)
    assert isinstance(error, RetroError)


def test_all_chunks_failed_error_lists_chunk_ids():
    """AllChunksFailedError exposes the ids of the failed chunks."""
    failures = [
        ChunkResult(chunk_id="chunk_0", outcome=Failure(reason="boom")),
        ChunkResult(chunk_id="chunk_1", outcome=Failure(reason="timeout", error_type="TaskTimeout")),
    ]
    error = AllChunksFailedError("all failed", failures=failures)
    assert error.failed_chunk_ids == ["chunk_0", "chunk_1"]
    assert AllChunksFailedError("x").failures == []


def test_other_errors():
    """Remaining errors keep their context fields."""
    assert TaskTimeoutError("slow", timeout_ms=50).timeout_ms == 50
    assert CacheCorruptionError("bad", key="k").key == "k"
    assert isinstance(ConfigurationError("bad"), ValueError)


def test_impact_weights():
    """Impact labels map to ranking weights, unknown labels weigh 1."""
    assert ImpactLevel.weight_of("high") == 3
    assert ImpactLevel.weight_of("MEDIUM") == 2
    assert ImpactLevel.weight_of(ImpactLevel.LOW) == 1
    assert ImpactLevel.weight_of("critical") == 1
    assert ImpactLevel.weight_of(None) == 1
