"""Planning logic for splitting ranges and scopes into units of work.

This module provides the pure range arithmetic shared by the planner and the
scheduler, and the TaskPlanner that turns a (range, scopes, policy) triple
into an ordered list of independently cacheable tasks. Nothing here touches
the network or the cache.

Range Semantics:
    Bounds are inclusive. For ``date`` bounds the time unit is one day, for
    ``datetime`` bounds it is one microsecond. Consecutive windows are
    adjacent: window n's end plus one unit equals window n+1's start, and the
    last window ends exactly at the requested end.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import date, datetime, timedelta
from typing import Any

from ...core.enums import TaskKind
from ...core.exceptions import InvalidRangeError
from .definitions import SCOPED_TASK_TYPES, GeneralTask, Task, UnitPolicy, check_range
from .telemetry import log_task_plan

DAY = timedelta(days=1)
MICROSECOND = timedelta(microseconds=1)


def parse_bound(value: Any) -> date:
    """Coerce a range bound to a date or datetime.

    Accepts date and datetime instances and ISO 8601 strings
    ("2024-01-31" parses as a date, "2024-01-31T12:00:00" as a datetime).

    Raises:
        InvalidRangeError: If the value cannot be parsed
    """
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if "T" in text or " " in text:
                return datetime.fromisoformat(text.replace("Z", "+00:00"))
            return date.fromisoformat(text)
        except ValueError as e:
            raise InvalidRangeError(f"Malformed date: {value!r}", start=value) from e
    raise InvalidRangeError(f"Unsupported range bound type: {type(value).__name__}", start=value)


def coerce_range(start: Any, end: Any) -> tuple[date, date]:
    """Parse and validate both bounds of a range."""
    range_start = parse_bound(start)
    range_end = parse_bound(end)
    check_range(range_start, range_end)
    return range_start, range_end


def time_unit(bound: date) -> timedelta:
    """Smallest step between adjacent windows for this kind of bound."""
    return MICROSECOND if isinstance(bound, datetime) else DAY


def split_range(start: date, end: date, size: timedelta) -> list[tuple[date, date]]:
    """Split [start, end] into contiguous inclusive windows of at most size.

    Args:
        start: Inclusive range start
        end: Inclusive range end
        size: Window length (a whole number of units)

    Returns:
        Windows in chronological order; the last one is truncated to end

    Raises:
        InvalidRangeError: If the range is malformed or inverted
        ValueError: If size is not positive
    """
    check_range(start, end)
    if size <= timedelta(0):
        raise ValueError("window size must be positive")

    unit = time_unit(start)
    # Exclusive stop: for dates the end day itself is part of the range
    stop = end if isinstance(start, datetime) else end + unit

    windows: list[tuple[date, date]] = []
    current = start
    while True:
        next_start = current + size
        if next_start >= stop:
            windows.append((current, end))
            break
        windows.append((current, next_start - unit))
        current = next_start
    return windows


def range_days(start: date, end: date) -> int:
    """Length of a range in days, rounded up."""
    check_range(start, end)
    return math.ceil((end - start) / DAY)


class TaskPlanner:
    """Plans fetch tasks for a range and a set of scopes.

    The planner emits one task per (scope, kind) pair, splits ranges longer
    than the policy threshold into sub-ranges, and orders the result by
    priority (stable on emission order).
    """

    def plan(
        self,
        range_start: Any,
        range_end: Any,
        scopes: Sequence[str] | None,
        unit_policy: UnitPolicy,
    ) -> list[Task]:
        """Plan tasks.

        Args:
            range_start: Inclusive start (date, datetime or ISO string)
            range_end: Inclusive end (date, datetime or ISO string)
            scopes: Repositories, teams or channels; empty means unscoped
            unit_policy: Kinds per scope, split threshold and priorities

        Returns:
            Tasks sorted by priority ascending

        Raises:
            InvalidRangeError: If the range is malformed or inverted
        """
        start, end = coerce_range(range_start, range_end)

        if not scopes:
            tasks: list[Task] = [
                GeneralTask(
                    id="task_0",
                    range_start=start,
                    range_end=end,
                    priority=unit_policy.priority_of(TaskKind.GENERAL),
                )
            ]
            log_task_plan(total_tasks=1, scopes=0, start=start, end=end)
            return tasks

        windows = split_range(start, end, timedelta(days=unit_policy.split_threshold_days))

        tasks = []
        for scope in dict.fromkeys(scopes):
            for kind in unit_policy.kinds:
                task_type = SCOPED_TASK_TYPES[kind]
                for window_start, window_end in windows:
                    tasks.append(
                        self._build(
                            task_type,
                            task_id=f"task_{len(tasks)}",
                            scope=scope,
                            start=window_start,
                            end=window_end,
                            priority=unit_policy.priority_of(kind),
                        )
                    )

        # sorted() is stable, so ties keep emission order
        tasks = sorted(tasks, key=lambda task: task.priority)

        log_task_plan(
            total_tasks=len(tasks),
            scopes=len(set(scopes)),
            windows=len(windows),
            start=start,
            end=end,
        )
        return tasks

    def _build(
        self,
        task_type: type,
        *,
        task_id: str,
        scope: str,
        start: date,
        end: date,
        priority: int,
    ) -> Task:
        common: dict[str, Any] = {
            "id": task_id,
            "range_start": start,
            "range_end": end,
            "priority": priority,
        }
        kind = task_type.kind
        if kind in (TaskKind.COMMITS, TaskKind.PULL_REQUESTS):
            return task_type(repository=scope, **common)
        if kind == TaskKind.ISSUES:
            return task_type(team=scope, **common)
        if kind == TaskKind.MESSAGES:
            return task_type(channel=scope, **common)
        raise TypeError(f"Unsupported scoped task kind: {kind}")
