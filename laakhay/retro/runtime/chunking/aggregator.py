"""Merging per-chunk results into one document.

The ResultAggregator partitions chunk results into successes and failures,
concatenates category buckets in chunk order, removes near-duplicate entries
by title similarity, ranks each bucket and records run metadata, including a
warning that names failed chunks when the document is incomplete.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from ...core.config import PipelineConfig
from ...core.enums import DedupTieBreak, ImpactLevel
from ...core.exceptions import AllChunksFailedError
from ...models import (
    AggregatedDocument,
    AggregatedEntry,
    ChunkSummary,
    ChunkWarnings,
    DocumentMetadata,
    SummaryEntry,
)
from ...utils.text import jaccard, normalize_title, tokenize
from .definitions import ChunkResult, Failure
from .planners import coerce_range
from .telemetry import log_aggregation_complete

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5


def impact_score(confidence: float, impact: str | None) -> float:
    """Ranking weight: confidence x impact weight (high 3, medium 2, else 1)."""
    return confidence * ImpactLevel.weight_of(impact)


class ResultAggregator:
    """Combines chunk results into an AggregatedDocument."""

    def __init__(
        self,
        *,
        config: PipelineConfig | None = None,
        similarity_threshold: float | None = None,
        tie_break: DedupTieBreak | None = None,
        categories: Sequence[str] | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            config: Pipeline configuration supplying defaults
            similarity_threshold: Override of config.similarity_threshold
            tie_break: Override of config.dedup_tie_break
            categories: Override of config.categories (output bucket order)
        """
        config = config or PipelineConfig()
        self._threshold = (
            config.similarity_threshold if similarity_threshold is None else similarity_threshold
        )
        if not 0.0 <= self._threshold <= 1.0:
            raise ValueError("similarity_threshold must be in [0, 1]")
        self._tie_break = tie_break or config.dedup_tie_break
        self._categories = tuple(categories or config.categories)

    @property
    def categories(self) -> tuple[str, ...]:
        return self._categories

    def combine(
        self,
        chunk_results: Sequence[ChunkResult],
        original_range: tuple[Any, Any],
        *,
        wall_time_ms: float | None = None,
        processing_method: str = "incremental",
    ) -> AggregatedDocument:
        """Combine chunk results into one document.

        Args:
            chunk_results: Results in chronological chunk order
            original_range: (start, end) of the whole request
            wall_time_ms: Wall-clock duration of the run, if known
            processing_method: Recorded in metadata ("incremental" or "single")

        Returns:
            AggregatedDocument with deduplicated, ranked entries

        Raises:
            AllChunksFailedError: If no chunk produced a usable payload
            InvalidRangeError: If original_range is malformed
        """
        start, end = coerce_range(*original_range)

        successes: list[tuple[ChunkResult, ChunkSummary]] = []
        failures: list[ChunkResult] = []
        for result in chunk_results:
            if not result.succeeded:
                failures.append(result)
                continue
            summary = self._parse(result)
            if summary is None:
                failures.append(
                    ChunkResult(
                        chunk_id=result.chunk_id,
                        outcome=Failure(reason="Malformed chunk payload"),
                        elapsed_ms=result.elapsed_ms,
                        from_cache=result.from_cache,
                    )
                )
                continue
            successes.append((result, summary))

        if not successes:
            raise AllChunksFailedError(
                f"All {len(failures)} chunks failed to process", failures=failures
            )

        logger.info(f"Combining results from {len(successes)} successful chunks")

        buckets: dict[str, list[AggregatedEntry]] = {category: [] for category in self._categories}
        total_changes = 0
        user_facing_changes = 0
        ai_generated = 0
        sources: dict[str, None] = {}

        for result, summary in successes:
            for category, items in summary.entries.items():
                if category not in buckets:
                    logger.debug(f"Ignoring {len(items)} entries in unknown category {category}")
                    continue
                buckets[category].extend(
                    self._to_entry(item, category, result.chunk_id) for item in items
                )
            if summary.metadata is not None:
                total_changes += summary.metadata.total_changes
                user_facing_changes += summary.metadata.user_facing_changes
                ai_generated += summary.metadata.ai_generated
                sources.update(dict.fromkeys(summary.metadata.sources))

        entries: dict[str, list[AggregatedEntry]] = {}
        duplicates = 0
        for category, bucket in buckets.items():
            unique, dropped = self.deduplicate(bucket)
            duplicates += dropped
            entries[category] = self.rank(unique)

        success_elapsed = sum(result.elapsed_ms for result, _ in successes)
        warnings = None
        if failures:
            warnings = ChunkWarnings(
                message=f"{len(failures)} chunks failed to process",
                failed_chunks=[failure.chunk_id for failure in failures],
            )

        document = AggregatedDocument(
            id=f"{processing_method}_{uuid.uuid4().hex[:12]}",
            title=f"Release Notes - {start.isoformat()} to {end.isoformat()}",
            range_start=start,
            range_end=end,
            generated_at=datetime.now(UTC),
            entries=entries,
            metadata=DocumentMetadata(
                total_chunks=len(successes) + len(failures),
                succeeded=len(successes),
                failed=len(failures),
                warnings=warnings,
                elapsed_ms=sum(result.elapsed_ms for result in chunk_results),
                average_chunk_ms=success_elapsed / len(successes),
                wall_time_ms=wall_time_ms,
                total_changes=total_changes,
                user_facing_changes=user_facing_changes,
                ai_generated=ai_generated,
                sources=list(sources),
                duplicates_dropped=duplicates,
                processing_method=processing_method,
            ),
        )

        log_aggregation_complete(
            succeeded=len(successes),
            failed=len(failures),
            entries_per_category={category: len(bucket) for category, bucket in entries.items()},
            duplicates_dropped=duplicates,
        )
        return document

    def deduplicate(self, entries: Sequence[AggregatedEntry]) -> tuple[list[AggregatedEntry], int]:
        """Drop entries whose title is near-identical to an accepted one.

        Titles are compared after lower-casing and trimming, by token-Jaccard
        similarity against every accepted title. Titles with no tokens left
        (only stopwords or punctuation) match only an identical title. Which
        entry survives depends on the tie-break; provenance of the dropped
        entry is merged into the survivor either way.

        Returns:
            (unique entries in first-seen order, number of duplicates dropped)
        """
        accepted: list[AggregatedEntry] = []
        accepted_keys: list[tuple[str, frozenset[str]]] = []
        dropped = 0

        for entry in entries:
            title = normalize_title(entry.title)
            key = (title, tokenize(title))
            matches = [
                index for index, seen in enumerate(accepted_keys) if self._similar(key, seen)
            ]
            if not matches:
                accepted.append(entry)
                accepted_keys.append(key)
                continue

            dropped += 1
            index = matches[0]
            kept = accepted[index]
            provenance = tuple(dict.fromkeys(kept.provenance + entry.provenance))
            # Swapping in a title that also resembles another accepted entry
            # would break bucket uniqueness, so only single matches may swap
            if (
                self._tie_break == DedupTieBreak.CONFIDENCE
                and entry.confidence > kept.confidence
                and len(matches) == 1
            ):
                accepted[index] = entry.model_copy(update={"provenance": provenance})
                accepted_keys[index] = key
            else:
                accepted[index] = kept.model_copy(update={"provenance": provenance})

        return accepted, dropped

    def _similar(self, left: tuple[str, frozenset[str]], right: tuple[str, frozenset[str]]) -> bool:
        # Titles made only of stopwords or punctuation have no tokens to compare
        if not left[1] and not right[1]:
            return left[0] == right[0]
        return jaccard(left[1], right[1]) >= self._threshold

    @staticmethod
    def rank(entries: Sequence[AggregatedEntry]) -> list[AggregatedEntry]:
        """Sort by impact score, highest first (stable)."""
        return sorted(entries, key=lambda entry: entry.impact_score, reverse=True)

    @staticmethod
    def _to_entry(item: SummaryEntry, category: str, chunk_id: str) -> AggregatedEntry:
        confidence = DEFAULT_CONFIDENCE if item.confidence is None else item.confidence
        return AggregatedEntry(
            title=item.title,
            description=item.description,
            category=category,
            confidence=confidence,
            impact=item.impact,
            impact_score=impact_score(confidence, item.impact),
            provenance=(chunk_id,),
        )

    @staticmethod
    def _parse(result: ChunkResult) -> ChunkSummary | None:
        payload = result.payload
        if payload is None:
            return ChunkSummary()
        if isinstance(payload, ChunkSummary):
            return payload
        try:
            return ChunkSummary.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Chunk {result.chunk_id} returned a malformed payload: {e}")
            return None

