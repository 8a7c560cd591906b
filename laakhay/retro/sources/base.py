"""Source adapter protocol and task dispatch.

An ActivitySource is the upstream collaborator the collector fetches from:
anything that can list commits, pull requests, issues and channel messages
for a range. execute_task() maps each task variant onto the matching source
call and normalizes the answer to ``{kind: [items]}``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any, Protocol, runtime_checkable

from ..core.enums import TaskKind
from ..runtime.chunking.definitions import (
    CommitsTask,
    GeneralTask,
    IssuesTask,
    MessagesTask,
    PullRequestsTask,
    Task,
)

logger = logging.getLogger(__name__)

Item = dict[str, Any]
ActivityPayload = dict[str, list[Item]]


@runtime_checkable
class ActivitySource(Protocol):
    """Upstream that serves raw activity for a range.

    Every method receives inclusive bounds and returns plain JSON-like items.
    Implementations may raise; the executor records the error as a failure.
    """

    async def get_commits(self, repository: str, start: date, end: date) -> Sequence[Item]: ...

    async def get_pull_requests(
        self, repository: str, start: date, end: date
    ) -> Sequence[Item]: ...

    async def get_issues(self, team: str, start: date, end: date) -> Sequence[Item]: ...

    async def get_channel_messages(
        self, channel: str, start: date, end: date
    ) -> Sequence[Item]: ...

    async def get_team_activity(
        self, start: date, end: date
    ) -> Mapping[str, Sequence[Item]]: ...


async def execute_task(source: ActivitySource, task: Task) -> ActivityPayload:
    """Run one task against a source.

    Args:
        source: Upstream to query
        task: Planned task variant

    Returns:
        Items keyed by task kind value

    Raises:
        TypeError: If task is not a known variant
    """
    match task:
        case CommitsTask():
            items = await source.get_commits(task.repository, task.range_start, task.range_end)
            return {TaskKind.COMMITS.value: list(items or [])}
        case PullRequestsTask():
            items = await source.get_pull_requests(
                task.repository, task.range_start, task.range_end
            )
            return {TaskKind.PULL_REQUESTS.value: list(items or [])}
        case IssuesTask():
            items = await source.get_issues(task.team, task.range_start, task.range_end)
            return {TaskKind.ISSUES.value: list(items or [])}
        case MessagesTask():
            items = await source.get_channel_messages(
                task.channel, task.range_start, task.range_end
            )
            return {TaskKind.MESSAGES.value: list(items or [])}
        case GeneralTask():
            activity = await source.get_team_activity(task.range_start, task.range_end)
            return _normalize_activity(activity)
    raise TypeError(f"Unsupported task type: {type(task).__name__}")


def _normalize_activity(activity: Mapping[str, Sequence[Item]] | None) -> ActivityPayload:
    payload: ActivityPayload = {}
    for kind, items in (activity or {}).items():
        if items is None:
            continue
        if isinstance(items, str | bytes) or not isinstance(items, Sequence):
            logger.warning(f"Ignoring non-list activity for {kind}")
            continue
        payload[str(kind)] = list(items)
    return payload
