"""Structured logging for chunking operations.

This module provides telemetry hooks for planning, execution and aggregation,
emitting structured log records (event name as the message, fields in
``extra``) for observability.
"""

from __future__ import annotations

import logging
from datetime import date

logger = logging.getLogger(__name__)


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def log_task_plan(
    *,
    total_tasks: int,
    scopes: int,
    windows: int = 1,
    start: date | None = None,
    end: date | None = None,
) -> None:
    """Log task plan creation.

    Args:
        total_tasks: Number of tasks planned
        scopes: Number of distinct scopes
        windows: Number of sub-ranges per (scope, kind)
        start: Range start
        end: Range end
    """
    logger.info(
        "task_plan_created",
        extra={
            "total_tasks": total_tasks,
            "scopes": scopes,
            "windows": windows,
            "start_time": _iso(start),
            "end_time": _iso(end),
        },
    )


def log_chunk_plan(
    *,
    total_chunks: int,
    chunk_size_days: int,
    start: date,
    end: date,
) -> None:
    """Log chunk plan creation for a scheduling run."""
    logger.info(
        "chunk_plan_created",
        extra={
            "total_chunks": total_chunks,
            "chunk_size_days": chunk_size_days,
            "start_time": _iso(start),
            "end_time": _iso(end),
        },
    )


def log_unit_completed(
    *,
    unit_id: str,
    latency_ms: float,
    from_cache: bool = False,
) -> None:
    """Log successful completion of a single unit.

    Args:
        unit_id: Task or chunk identifier
        latency_ms: Latency in milliseconds
        from_cache: Whether the payload came from the cache
    """
    logger.info(
        "unit_completed",
        extra={
            "unit_id": unit_id,
            "latency_ms": latency_ms,
            "from_cache": from_cache,
        },
    )


def log_unit_error(
    *,
    unit_id: str,
    error_type: str,
    error_message: str,
    latency_ms: float | None = None,
) -> None:
    """Log a unit failure.

    Args:
        unit_id: Task or chunk identifier
        error_type: "TaskTimeout", "TaskExecutionError" or "DeadlineExceeded"
        error_message: Error message
        latency_ms: Time spent before the failure (optional)
    """
    logger.error(
        "unit_error",
        extra={
            "unit_id": unit_id,
            "error_type": error_type,
            "error_message": error_message,
            "latency_ms": latency_ms,
        },
    )


def log_execution_complete(
    *,
    total_units: int,
    succeeded: int,
    failed: int,
    cached: int,
    total_latency_ms: float,
) -> None:
    """Log completion of an executor run."""
    logger.info(
        "execution_complete",
        extra={
            "total_units": total_units,
            "succeeded": succeeded,
            "failed": failed,
            "cached": cached,
            "total_latency_ms": total_latency_ms,
        },
    )


def log_aggregation_complete(
    *,
    succeeded: int,
    failed: int,
    entries_per_category: dict[str, int],
    duplicates_dropped: int,
) -> None:
    """Log completion of result aggregation."""
    logger.info(
        "aggregation_complete",
        extra={
            "succeeded": succeeded,
            "failed": failed,
            "entries_per_category": entries_per_category,
            "duplicates_dropped": duplicates_dropped,
        },
    )
