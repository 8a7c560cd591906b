"""Unit tests for range splitting and task planning."""

from datetime import UTC, date, datetime, timedelta

import pytest

from laakhay.retro.core import InvalidRangeError, TaskKind
from laakhay.retro.runtime.chunking import (
    CommitsTask,
    GeneralTask,
    IssuesTask,
    MessagesTask,
    PullRequestsTask,
    TaskPlanner,
    UnitPolicy,
    split_range,
)
from laakhay.retro.runtime.chunking.planners import parse_bound, range_days


class TestSplitRange:
    """Test contiguous inclusive windows."""

    def test_21_day_date_range_in_weekly_windows(self):
        """Test splitting three weeks into weekly windows."""
        windows = split_range(date(2024, 1, 1), date(2024, 1, 21), timedelta(days=7))
        assert windows == [
            (date(2024, 1, 1), date(2024, 1, 7)),
            (date(2024, 1, 8), date(2024, 1, 14)),
            (date(2024, 1, 15), date(2024, 1, 21)),
        ]

    def test_last_window_is_truncated(self):
        """Test that the final window stops at the range end."""
        windows = split_range(date(2024, 1, 1), date(2024, 1, 8), timedelta(days=7))
        assert windows == [
            (date(2024, 1, 1), date(2024, 1, 7)),
            (date(2024, 1, 8), date(2024, 1, 8)),
        ]

    def test_single_day(self):
        """Test a one-day range."""
        assert split_range(date(2024, 1, 1), date(2024, 1, 1), timedelta(days=7)) == [
            (date(2024, 1, 1), date(2024, 1, 1))
        ]

    def test_datetime_windows_are_adjacent(self):
        """Test adjacency of datetime windows."""
        start = datetime(2024, 1, 1, tzinfo=UTC)
        end = start + timedelta(days=21)
        windows = split_range(start, end, timedelta(days=7))

        assert len(windows) == 3
        assert windows[0] == (start, start + timedelta(days=7) - timedelta(microseconds=1))
        assert windows[-1][1] == end
        for (_, previous_end), (next_start, _) in zip(windows, windows[1:], strict=False):
            assert previous_end + timedelta(microseconds=1) == next_start

    def test_inverted_range_raises(self):
        """Test rejection of an inverted range."""
        with pytest.raises(InvalidRangeError):
            split_range(date(2024, 2, 1), date(2024, 1, 1), timedelta(days=7))

    def test_non_positive_size_raises(self):
        """Test rejection of a non-positive window size."""
        with pytest.raises(ValueError):
            split_range(date(2024, 1, 1), date(2024, 1, 2), timedelta(0))


class TestBounds:
    """Test bound parsing."""

    def test_parse_iso_strings(self):
        """Test parsing ISO date strings."""
        assert parse_bound("2024-01-31") == date(2024, 1, 31)
        assert parse_bound("2024-01-31T12:00:00Z") == datetime(2024, 1, 31, 12, tzinfo=UTC)

    def test_malformed_bound_raises(self):
        """Test rejection of an unparseable bound."""
        with pytest.raises(InvalidRangeError):
            parse_bound("not-a-date")
        with pytest.raises(InvalidRangeError):
            parse_bound(20240131)

    def test_mixed_bounds_raise(self):
        """Test rejection of a date paired with a datetime."""
        with pytest.raises(InvalidRangeError):
            range_days(date(2024, 1, 1), datetime(2024, 1, 2))

    def test_range_days_rounds_up(self):
        """Test day counting."""
        start = datetime(2024, 1, 1, tzinfo=UTC)
        assert range_days(start, start + timedelta(days=2, hours=1)) == 3
        assert range_days(date(2024, 1, 1), date(2024, 1, 21)) == 20


class TestTaskPlanner:
    """Test task enumeration and ordering."""

    def test_unscoped_plan_is_one_general_task(self):
        """Test planning without scopes."""
        tasks = TaskPlanner().plan("2024-01-01", "2024-01-31", [], UnitPolicy.source_control())

        assert len(tasks) == 1
        task = tasks[0]
        assert isinstance(task, GeneralTask)
        assert task.id == "task_0"
        assert task.cache_key is None
        assert (task.range_start, task.range_end) == (date(2024, 1, 1), date(2024, 1, 31))

    def test_scoped_plan_covers_every_scope_kind_and_window(self):
        """Test planning every scope, kind and window."""
        tasks = TaskPlanner().plan(
            date(2024, 1, 1),
            date(2024, 1, 21),
            ["acme/web", "acme/api"],
            UnitPolicy.source_control(split_threshold_days=7),
        )

        assert len(tasks) == 2 * 2 * 3
        assert len({task.id for task in tasks}) == len(tasks)

        for repository in ("acme/web", "acme/api"):
            for task_type in (CommitsTask, PullRequestsTask):
                windows = sorted(
                    (task.range_start, task.range_end)
                    for task in tasks
                    if isinstance(task, task_type) and task.repository == repository
                )
                assert windows[0][0] == date(2024, 1, 1)
                assert windows[-1][1] == date(2024, 1, 21)
                for (_, previous_end), (next_start, _) in zip(windows, windows[1:], strict=False):
                    assert previous_end + timedelta(days=1) == next_start

    def test_tasks_sorted_by_priority(self):
        """Test task ordering by priority."""
        tasks = TaskPlanner().plan(
            date(2024, 1, 1), date(2024, 1, 3), ["acme/web"], UnitPolicy.source_control()
        )

        assert [task.kind for task in tasks] == [TaskKind.COMMITS, TaskKind.PULL_REQUESTS]
        assert [task.priority for task in tasks] == [1, 2]

    def test_duplicate_scopes_are_planned_once(self):
        """Test that repeated scopes are planned once."""
        tasks = TaskPlanner().plan(
            date(2024, 1, 1), date(2024, 1, 3), ["ops", "ops"], UnitPolicy.issue_tracker()
        )
        assert len(tasks) == 1
        assert isinstance(tasks[0], IssuesTask)
        assert tasks[0].team == "ops"

    def test_cache_key_is_deterministic(self):
        """Test task cache keys."""
        policy = UnitPolicy.chat()
        first = TaskPlanner().plan(date(2024, 1, 1), date(2024, 1, 3), ["#eng"], policy)
        second = TaskPlanner().plan(date(2024, 1, 1), date(2024, 1, 3), ["#eng"], policy)

        assert isinstance(first[0], MessagesTask)
        assert first[0].cache_key == second[0].cache_key == "messages:#eng:2024-01-01:2024-01-03"

    def test_inverted_range_raises_before_planning(self):
        """Test range validation before planning."""
        with pytest.raises(InvalidRangeError):
            TaskPlanner().plan("2024-02-01", "2024-01-01", ["acme/web"], UnitPolicy.source_control())

    def test_invalid_policies(self):
        """Test rejection of invalid unit policies."""
        with pytest.raises(ValueError):
            UnitPolicy(kinds=())
        with pytest.raises(ValueError):
            UnitPolicy(kinds=(TaskKind.GENERAL,))
        with pytest.raises(ValueError):
            UnitPolicy(kinds=(TaskKind.COMMITS,), split_threshold_days=0)

    def test_task_rejects_inverted_range(self):
        """Test task range validation."""
        with pytest.raises(InvalidRangeError):
            CommitsTask(
                id="t", repository="acme/web", range_start=date(2024, 1, 2), range_end=date(2024, 1, 1)
            )
