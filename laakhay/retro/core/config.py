"""Pipeline configuration.

Every option can be given by its snake_case name or its camelCase alias
(``maxConcurrency``, ``timeoutMs``, ``chunkSizeDays``, ``overlapMs``,
``cacheTtlMs``, ``cacheMaxSize``, ``similarityThreshold``, ``dedupBy``, ...),
so configuration loaded from JSON written for the web layer validates as is.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .enums import DedupTieBreak, EntryCategory
from .exceptions import ConfigurationError

DEFAULT_CATEGORIES: tuple[str, ...] = tuple(category.value for category in EntryCategory)


class PipelineConfig(BaseModel):
    """Validated, immutable configuration for the collection pipeline."""

    # Executor
    max_concurrency: int = Field(default=3, ge=1)
    timeout_ms: int = Field(default=30_000, gt=0)
    cancel_on_timeout: bool = True

    # Chunk scheduling
    chunk_size_days: int = Field(default=7, gt=0)
    overlap_ms: int = Field(default=0, ge=0)
    max_concurrent_chunks: int = Field(default=3, ge=1)
    chunk_timeout_ms: int = Field(default=120_000, gt=0)
    large_range_threshold_days: int = Field(default=14, ge=0)
    large_volume_threshold: int = Field(default=1000, ge=0)
    gc_interval: int = Field(default=5, ge=1)
    enable_memory_optimization: bool = True

    # Task planning
    split_threshold_days: int = Field(default=7, gt=0)

    # Cache
    cache_ttl_ms: int = Field(default=5 * 60 * 1000, ge=0)
    cache_max_size: int = Field(default=1000, ge=0)
    cache_sweep_interval_s: Annotated[float, Field(gt=0)] | None = 3600.0

    # Aggregation
    similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    dedup_by: Literal["title"] = "title"
    dedup_tie_break: DedupTieBreak = DedupTieBreak.FIRST_SEEN
    categories: tuple[str, ...] = DEFAULT_CATEGORIES

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Require at least one category and no duplicates."""
        if not v:
            raise ValueError("categories must not be empty")
        if len(set(v)) != len(v):
            raise ValueError("categories must be unique")
        return v

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None = None, **overrides: Any) -> PipelineConfig:
        """Build a config from a mapping, raising ConfigurationError on bad input.

        Args:
            data: Options keyed by snake_case name or camelCase alias
            **overrides: Options applied on top of ``data``

        Returns:
            Validated PipelineConfig

        Raises:
            ConfigurationError: If any option is unknown or out of range
        """
        merged: dict[str, Any] = dict(data or {})
        merged.update(overrides)
        try:
            return cls.model_validate(merged)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid pipeline configuration: {e}") from e

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def chunk_timeout_seconds(self) -> float:
        return self.chunk_timeout_ms / 1000.0
