"""Unit tests for result aggregation."""

from datetime import date

import pytest

from laakhay.retro.core import AllChunksFailedError, DedupTieBreak, PipelineConfig
from laakhay.retro.models import ChunkSummary, SummaryEntry
from laakhay.retro.runtime.chunking import ChunkResult, Failure, ResultAggregator, Success

RANGE = (date(2024, 1, 1), date(2024, 1, 21))


def ok(chunk_id: str, payload, elapsed_ms: float = 10.0) -> ChunkResult:
    return ChunkResult(chunk_id=chunk_id, outcome=Success(payload), elapsed_ms=elapsed_ms)


def failed(chunk_id: str, reason: str = "boom") -> ChunkResult:
    return ChunkResult(chunk_id=chunk_id, outcome=Failure(reason=reason), elapsed_ms=5.0)


def entry(title: str, **fields) -> dict:
    return {"title": title, **fields}


class TestResultAggregator:
    """Test ResultAggregator.combine."""

    def test_partial_failure_produces_incomplete_document(self):
        """Test combining a mix of successful and failed chunks."""
        results = [
            ok("chunk_0", {"entries": {"feature": [entry("Add export")]}}),
            failed("chunk_1"),
            ok("chunk_2", {"entries": {"fix": [entry("Fix login crash")]}}),
        ]

        document = ResultAggregator().combine(results, RANGE)

        assert not document.is_complete
        assert document.metadata.total_chunks == 3
        assert document.metadata.succeeded == 2
        assert document.metadata.failed == 1
        assert document.metadata.warnings.failed_chunks == ["chunk_1"]
        assert document.metadata.warnings.message == "1 chunks failed to process"
        assert document.entry_count == 2
        assert document.title == "Release Notes - 2024-01-01 to 2024-01-21"

    def test_complete_document_has_no_warnings(self):
        """Test that a fully successful run carries no warnings."""
        document = ResultAggregator().combine([ok("chunk_0", {"entries": {}})], RANGE)
        assert document.is_complete
        assert document.metadata.warnings is None
        assert document.entries == {"feature": [], "improvement": [], "fix": []}

    def test_all_failed_raises(self):
        """Test error when every chunk failed."""
        with pytest.raises(AllChunksFailedError) as exc_info:
            ResultAggregator().combine([failed("chunk_0"), failed("chunk_1")], RANGE)
        assert exc_info.value.failed_chunk_ids == ["chunk_0", "chunk_1"]

    def test_malformed_payload_counts_as_failure(self):
        """Test that an unparseable payload is treated as a failed chunk."""
        results = [
            ok("chunk_0", "not a summary"),
            ok("chunk_1", {"entries": {"feature": [entry("Add export")]}}),
        ]

        document = ResultAggregator().combine(results, RANGE)

        assert document.metadata.failed == 1
        assert document.metadata.warnings.failed_chunks == ["chunk_0"]

    def test_only_malformed_payloads_raise(self):
        """Test error when every payload is malformed."""
        with pytest.raises(AllChunksFailedError):
            ResultAggregator().combine([ok("chunk_0", {"entries": {"feature": [{}]}})], RANGE)

    def test_accepts_summary_models_and_camel_case_metadata(self):
        """Test model payloads and camelCase metadata."""
        results = [
            ok(
                "chunk_0",
                ChunkSummary(entries={"improvement": [SummaryEntry(title="Faster search")]}),
            ),
            ok(
                "chunk_1",
                {
                    "entries": {},
                    "metadata": {"totalChanges": 4, "userFacingChanges": 2, "sources": ["github"]},
                },
            ),
            ok(
                "chunk_2",
                {"entries": {}, "metadata": {"total_changes": 1, "sources": ["linear", "github"]}},
            ),
        ]

        document = ResultAggregator().combine(results, RANGE, wall_time_ms=42.0)

        assert document.entries["improvement"][0].title == "Faster search"
        assert document.metadata.total_changes == 5
        assert document.metadata.user_facing_changes == 2
        assert document.metadata.sources == ["github", "linear"]
        assert document.metadata.elapsed_ms == pytest.approx(30.0)
        assert document.metadata.average_chunk_ms == pytest.approx(10.0)
        assert document.metadata.wall_time_ms == 42.0

    def test_unknown_categories_are_ignored(self):
        """Test dropping categories outside the configured set."""
        results = [ok("chunk_0", {"entries": {"chore": [entry("Bump deps")]}})]
        document = ResultAggregator().combine(results, RANGE)
        assert document.entry_count == 0
        assert "chore" not in document.entries


class TestDeduplication:
    """Test near-duplicate removal."""

    def results(self):
        return [
            ok("chunk_0", {"entries": {"feature": [entry("Add user dashboard", confidence=0.6)]}}),
            ok(
                "chunk_1",
                {"entries": {"feature": [entry("Added a user dashboard", confidence=0.9)]}},
            ),
        ]

    def test_first_seen_keeps_earlier_entry(self):
        """Test the first-seen tie-break."""
        document = ResultAggregator().combine(self.results(), RANGE)

        features = document.entries["feature"]
        assert len(features) == 1
        assert features[0].title == "Add user dashboard"
        assert features[0].provenance == ("chunk_0", "chunk_1")
        assert document.metadata.duplicates_dropped == 1

    def test_confidence_tie_break_keeps_higher_confidence(self):
        """Test the confidence tie-break."""
        config = PipelineConfig(dedup_tie_break=DedupTieBreak.CONFIDENCE)
        document = ResultAggregator(config=config).combine(self.results(), RANGE)

        features = document.entries["feature"]
        assert len(features) == 1
        assert features[0].title == "Added a user dashboard"
        assert features[0].confidence == 0.9
        assert set(features[0].provenance) == {"chunk_0", "chunk_1"}

    def test_dedup_is_per_category(self):
        """Test that duplicates are only detected within a category."""
        results = [
            ok(
                "chunk_0",
                {
                    "entries": {
                        "feature": [entry("Add user dashboard")],
                        "fix": [entry("Add user dashboard")],
                    }
                },
            )
        ]
        document = ResultAggregator().combine(results, RANGE)
        assert len(document.entries["feature"]) == 1
        assert len(document.entries["fix"]) == 1

    def test_no_two_entries_in_a_bucket_are_similar(self):
        """Test bucket uniqueness across several near-duplicates."""
        titles = [
            "Add dark mode",
            "Added dark mode",
            "Add light mode",
            "Fix crash on login",
            "Fixed crash on login",
        ]
        results = [ok("chunk_0", {"entries": {"feature": [entry(title) for title in titles]}})]

        aggregator = ResultAggregator()
        document = aggregator.combine(results, RANGE)

        kept = [item.title for item in document.entries["feature"]]
        assert kept == ["Add dark mode", "Add light mode", "Fix crash on login"]
        assert document.metadata.duplicates_dropped == 2

    def test_threshold_override(self):
        """Test a lower similarity threshold."""
        results = [
            ok("chunk_0", {"entries": {"feature": [entry("Add dark mode"), entry("Add light mode")]}})
        ]
        document = ResultAggregator(similarity_threshold=0.5).combine(results, RANGE)
        assert len(document.entries["feature"]) == 1

    def test_invalid_threshold(self):
        """Test rejection of an out-of-range threshold."""
        with pytest.raises(ValueError):
            ResultAggregator(similarity_threshold=1.5)

    def test_titles_without_tokens_compare_by_text(self):
        """Test that stopword-only titles are kept apart unless identical."""
        titles = ["The", "A", "!!!", "!!!", "Add dark mode"]
        results = [ok("chunk_0", {"entries": {"feature": [entry(title) for title in titles]}})]

        document = ResultAggregator().combine(results, RANGE)

        kept = [item.title for item in document.entries["feature"]]
        assert kept == ["The", "A", "!!!", "Add dark mode"]
        assert document.metadata.duplicates_dropped == 1


class TestRanking:
    """Test impact-weighted ordering."""

    def test_entries_sorted_by_confidence_times_impact(self):
        """Test impact-weighted ordering."""
        results = [
            ok(
                "chunk_0",
                {
                    "entries": {
                        "feature": [
                            entry("Export to CSV", confidence=0.9, impact="low"),
                            entry("Single sign-on", confidence=0.5, impact="high"),
                            entry("Saved filters", impact="medium"),
                        ]
                    }
                },
            )
        ]

        document = ResultAggregator().combine(results, RANGE)

        features = document.entries["feature"]
        assert [item.title for item in features] == [
            "Single sign-on",
            "Saved filters",
            "Export to CSV",
        ]
        assert [item.impact_score for item in features] == pytest.approx([1.5, 1.0, 0.9])
        assert features[1].confidence == 0.5

    def test_json_dict_uses_camel_case(self):
        """Test camelCase serialization of the document."""
        results = [ok("chunk_0", {"entries": {"fix": [entry("Fix login crash")]}}), failed("chunk_1")]
        payload = ResultAggregator().combine(results, RANGE).to_json_dict()

        assert payload["rangeStart"] == "2024-01-01"
        assert payload["metadata"]["totalChunks"] == 2
        assert payload["metadata"]["warnings"]["failedChunks"] == ["chunk_1"]
        assert payload["metadata"]["processingMethod"] == "incremental"
        assert payload["entries"]["fix"][0]["impactScore"] == pytest.approx(0.5)
