"""Aggregated document models."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_MODEL_CONFIG = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class AggregatedEntry(BaseModel):
    """A deduplicated, ranked output entry."""

    title: str
    description: str = ""
    category: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    impact: str | None = None
    impact_score: float = Field(..., ge=0.0)
    provenance: tuple[str, ...] = ()

    model_config = _MODEL_CONFIG


class ChunkWarnings(BaseModel):
    """Labels a document as incomplete."""

    message: str
    failed_chunks: list[str]

    model_config = _MODEL_CONFIG


class DocumentMetadata(BaseModel):
    """Run-level counters of an aggregated document."""

    total_chunks: int = Field(..., ge=0)
    succeeded: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    warnings: ChunkWarnings | None = None
    elapsed_ms: float = Field(default=0.0, ge=0.0)
    average_chunk_ms: float = Field(default=0.0, ge=0.0)
    wall_time_ms: float | None = None
    total_changes: int = 0
    user_facing_changes: int = 0
    ai_generated: int = 0
    sources: list[str] = Field(default_factory=list)
    duplicates_dropped: int = 0
    processing_method: str = "incremental"

    model_config = _MODEL_CONFIG


class AggregatedDocument(BaseModel):
    """Combined result of one run: entries per category plus metadata."""

    id: str
    title: str
    range_start: datetime | date
    range_end: datetime | date
    generated_at: datetime
    entries: dict[str, list[AggregatedEntry]]
    metadata: DocumentMetadata

    model_config = _MODEL_CONFIG

    @property
    def is_complete(self) -> bool:
        """True when no chunk failed."""
        return self.metadata.failed == 0

    @property
    def entry_count(self) -> int:
        return sum(len(bucket) for bucket in self.entries.values())

    def all_entries(self) -> list[AggregatedEntry]:
        """Entries of every category, in category order."""
        return [entry for bucket in self.entries.values() for entry in bucket]

    def to_json_dict(self) -> dict[str, Any]:
        """JSON-safe dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
