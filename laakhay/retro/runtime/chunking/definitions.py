"""Work-unit definitions for the chunking layer.

This module defines the data structures that flow between the planner, the
executor, the scheduler and the aggregator: task variants, chunks, per-unit
outcomes and results.

Task variants form a closed family. Each variant carries only the scope field
its kind needs (a repository, a team or a channel), so adapters dispatch on
the variant type instead of probing optional fields.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, ClassVar, Protocol

from ...core.enums import ChunkStatus, TaskKind
from ...core.exceptions import InvalidRangeError

DEFAULT_PRIORITIES: Mapping[TaskKind, int] = MappingProxyType(
    {
        TaskKind.COMMITS: 1,
        TaskKind.PULL_REQUESTS: 2,
        TaskKind.ISSUES: 1,
        TaskKind.MESSAGES: 1,
        TaskKind.GENERAL: 1,
    }
)


def check_range(start: date, end: date) -> None:
    """Validate a pair of range bounds.

    Both bounds must be the same flavor (two dates or two datetimes) and
    start must not be after end.

    Raises:
        InvalidRangeError: If the bounds are malformed or inverted
    """
    if not isinstance(start, date) or not isinstance(end, date):
        raise InvalidRangeError(
            f"Range bounds must be dates or datetimes, got {type(start).__name__} "
            f"and {type(end).__name__}",
            start=start,
            end=end,
        )
    if isinstance(start, datetime) != isinstance(end, datetime):
        raise InvalidRangeError(
            "Range bounds must both be dates or both be datetimes", start=start, end=end
        )
    try:
        inverted = start > end
    except TypeError as e:
        # naive vs aware datetimes
        raise InvalidRangeError(f"Range bounds are not comparable: {e}", start=start, end=end) from e
    if inverted:
        raise InvalidRangeError(
            f"Range start {start.isoformat()} is after range end {end.isoformat()}",
            start=start,
            end=end,
        )


def make_task_cache_key(kind: TaskKind, scope_key: str | None, start: date, end: date) -> str:
    """Deterministic cache key for (kind, scope, start, end)."""
    return f"{kind.value}:{scope_key or '*'}:{start.isoformat()}:{end.isoformat()}"


class WorkUnit(Protocol):
    """Anything the BoundedExecutor can run: an id and an optional cache key."""

    @property
    def id(self) -> str: ...

    @property
    def cache_key(self) -> str | None: ...


@dataclass(frozen=True, kw_only=True)
class _TaskBase:
    """Fields shared by every task variant.

    Attributes:
        id: Identifier, unique within one planning run
        range_start: Inclusive start of the unit's range
        range_end: Inclusive end of the unit's range
        priority: Initial dispatch order (lower first); never preempts
    """

    kind: ClassVar[TaskKind]

    id: str
    range_start: date
    range_end: date
    priority: int = 1

    def __post_init__(self) -> None:
        check_range(self.range_start, self.range_end)

    @property
    def scope_key(self) -> str | None:
        return None

    @property
    def cache_key(self) -> str | None:
        return make_task_cache_key(self.kind, self.scope_key, self.range_start, self.range_end)


@dataclass(frozen=True, kw_only=True)
class CommitsTask(_TaskBase):
    """Commits of one repository."""

    kind: ClassVar[TaskKind] = TaskKind.COMMITS
    repository: str

    @property
    def scope_key(self) -> str | None:
        return self.repository


@dataclass(frozen=True, kw_only=True)
class PullRequestsTask(_TaskBase):
    """Pull requests of one repository."""

    kind: ClassVar[TaskKind] = TaskKind.PULL_REQUESTS
    repository: str

    @property
    def scope_key(self) -> str | None:
        return self.repository


@dataclass(frozen=True, kw_only=True)
class IssuesTask(_TaskBase):
    """Issues of one team."""

    kind: ClassVar[TaskKind] = TaskKind.ISSUES
    team: str

    @property
    def scope_key(self) -> str | None:
        return self.team


@dataclass(frozen=True, kw_only=True)
class MessagesTask(_TaskBase):
    """Messages of one channel."""

    kind: ClassVar[TaskKind] = TaskKind.MESSAGES
    channel: str

    @property
    def scope_key(self) -> str | None:
        return self.channel


@dataclass(frozen=True, kw_only=True)
class GeneralTask(_TaskBase):
    """Unscoped query over the whole range; the upstream filters internally.

    Never cached: the upstream decides what it covers.
    """

    kind: ClassVar[TaskKind] = TaskKind.GENERAL

    @property
    def cache_key(self) -> str | None:
        return None


Task = CommitsTask | PullRequestsTask | IssuesTask | MessagesTask | GeneralTask

SCOPED_TASK_TYPES: Mapping[TaskKind, type] = MappingProxyType(
    {
        TaskKind.COMMITS: CommitsTask,
        TaskKind.PULL_REQUESTS: PullRequestsTask,
        TaskKind.ISSUES: IssuesTask,
        TaskKind.MESSAGES: MessagesTask,
    }
)


@dataclass(frozen=True)
class UnitPolicy:
    """How the planner turns scopes into tasks.

    Attributes:
        kinds: Task kinds emitted for every scope
        split_threshold_days: Ranges longer than this are split into
            contiguous sub-ranges of this many days
        priorities: Dispatch priority per kind (lower runs first)
    """

    kinds: tuple[TaskKind, ...]
    split_threshold_days: int = 7
    priorities: Mapping[TaskKind, int] = field(default_factory=lambda: DEFAULT_PRIORITIES)

    def __post_init__(self) -> None:
        if not self.kinds:
            raise ValueError("UnitPolicy must name at least one task kind")
        if TaskKind.GENERAL in self.kinds:
            raise ValueError("GENERAL is emitted automatically for unscoped plans")
        if self.split_threshold_days <= 0:
            raise ValueError("split_threshold_days must be > 0")

    def priority_of(self, kind: TaskKind) -> int:
        return self.priorities.get(kind, DEFAULT_PRIORITIES[kind])

    @classmethod
    def source_control(cls, split_threshold_days: int = 7) -> UnitPolicy:
        """Commits and pull requests per repository."""
        return cls(
            kinds=(TaskKind.COMMITS, TaskKind.PULL_REQUESTS),
            split_threshold_days=split_threshold_days,
        )

    @classmethod
    def issue_tracker(cls, split_threshold_days: int = 7) -> UnitPolicy:
        """Issues per team."""
        return cls(kinds=(TaskKind.ISSUES,), split_threshold_days=split_threshold_days)

    @classmethod
    def chat(cls, split_threshold_days: int = 7) -> UnitPolicy:
        """Messages per channel."""
        return cls(kinds=(TaskKind.MESSAGES,), split_threshold_days=split_threshold_days)


@dataclass
class Chunk:
    """A time-bounded slice of a scheduling run.

    Attributes:
        id: "chunk_<index>"
        index: Zero-based position in the run
        range_start: Inclusive chunk start (a chunk boundary)
        range_end: Inclusive chunk end (a chunk boundary)
        inclusion_start: Start of the event-inclusion window; earlier than
            range_start by the configured overlap, never a boundary
        status: Lifecycle state within the run
        cache_key: Set when the scheduler caches chunk payloads
    """

    id: str
    index: int
    range_start: date
    range_end: date
    inclusion_start: date
    status: ChunkStatus = ChunkStatus.PENDING
    cache_key: str | None = None


@dataclass(frozen=True)
class ChunkContext:
    """Per-chunk context handed to a chunk processor."""

    chunk_id: str
    index: int
    total: int
    range_start: date
    range_end: date
    inclusion_start: date
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class Success:
    """A unit settled with a payload."""

    payload: Any

    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Failure:
    """A unit settled without a payload.

    Attributes:
        reason: Human-readable failure reason
        error_type: "TaskTimeout", "TaskExecutionError" or "DeadlineExceeded"
        error: The underlying exception, if any (not compared)
    """

    reason: str
    error_type: str = "TaskExecutionError"
    error: BaseException | None = field(default=None, compare=False, repr=False)

    ok: ClassVar[bool] = False


Outcome = Success | Failure


@dataclass(frozen=True)
class ChunkResult:
    """Outcome of one unit (task or chunk).

    Attributes:
        chunk_id: Id of the unit this result belongs to
        outcome: Success(payload) or Failure(reason)
        elapsed_ms: Wall-clock duration of the unit's processing
        from_cache: Whether the payload was served by the cache
    """

    chunk_id: str
    outcome: Outcome
    elapsed_ms: float = 0.0
    from_cache: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome.ok

    @property
    def payload(self) -> Any:
        return self.outcome.payload if isinstance(self.outcome, Success) else None

    @property
    def reason(self) -> str | None:
        return self.outcome.reason if isinstance(self.outcome, Failure) else None
