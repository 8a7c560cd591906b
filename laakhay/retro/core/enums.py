"""Core enumerations shared across the collection pipeline.

Architecture:
    This module defines the standardized enums used by the planner, the
    executor, the scheduler and the aggregator. String enums keep payloads and
    cache keys readable and serialize cleanly to JSON.

Key Types:
    - TaskKind: Which upstream query a task represents
    - ChunkStatus: Lifecycle of a chunk within one scheduling run
    - EntryCategory: Output buckets of an aggregated document
    - ImpactLevel: Impact labels used for ranking
    - DedupTieBreak: Which entry survives a near-duplicate match
"""

from enum import Enum


class TaskKind(str, Enum):
    """Kind of upstream query a task performs."""

    COMMITS = "commits"
    PULL_REQUESTS = "pull_requests"
    ISSUES = "issues"
    MESSAGES = "messages"
    GENERAL = "general"

    def __str__(self) -> str:
        return self.value


class ChunkStatus(str, Enum):
    """Lifecycle of a chunk: pending -> running -> succeeded | failed."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_settled(self) -> bool:
        return self in (ChunkStatus.SUCCEEDED, ChunkStatus.FAILED)


class EntryCategory(str, Enum):
    """Default output buckets of an aggregated document."""

    FEATURE = "feature"
    IMPROVEMENT = "improvement"
    FIX = "fix"


class ImpactLevel(str, Enum):
    """Impact labels attached to summary entries."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def weight_of(cls, impact: "str | ImpactLevel | None") -> int:
        """Ranking weight for an impact label (unknown labels weigh 1)."""
        if impact is None:
            return 1
        value = impact.value if isinstance(impact, ImpactLevel) else str(impact).lower()
        return _IMPACT_WEIGHTS.get(value, 1)


_IMPACT_WEIGHTS = {
    ImpactLevel.HIGH.value: 3,
    ImpactLevel.MEDIUM.value: 2,
    ImpactLevel.LOW.value: 1,
}


class DedupTieBreak(str, Enum):
    """Which entry survives when two titles are near-duplicates.

    FIRST_SEEN keeps the temporally earlier entry, CONFIDENCE keeps the entry
    with the higher confidence.
    """

    FIRST_SEEN = "first_seen"
    CONFIDENCE = "confidence"
