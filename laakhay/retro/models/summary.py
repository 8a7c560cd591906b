"""Chunk summary payload model.

A chunk processor returns, for its slice of the range, a summary of entries
bucketed by category plus optional counters. Keys may be snake_case or
camelCase.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SummaryEntry(BaseModel):
    """One summarized change as produced by a chunk processor."""

    title: str = Field(..., min_length=1)
    description: str = ""
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    impact: str | None = None

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class SummaryMetadata(BaseModel):
    """Counters reported alongside a chunk's entries."""

    total_changes: int = Field(default=0, ge=0)
    user_facing_changes: int = Field(default=0, ge=0)
    ai_generated: int = Field(default=0, ge=0)
    sources: list[str] = Field(default_factory=list)

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ChunkSummary(BaseModel):
    """Payload of one successful chunk."""

    entries: dict[str, list[SummaryEntry]] = Field(default_factory=dict)
    metadata: SummaryMetadata | None = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @property
    def entry_count(self) -> int:
        return sum(len(bucket) for bucket in self.entries.values())
