"""Data models for chunk payloads and aggregated output.

Architecture:
    This module exports the Pydantic v2 models exchanged with chunk
    processors and returned to callers. All models are immutable
    (frozen=True) and serialize to JSON with camelCase aliases, so a document
    can cross a process boundary unchanged.

Model Categories:
    - Input: ChunkSummary, SummaryEntry, SummaryMetadata
    - Output: AggregatedDocument, AggregatedEntry, DocumentMetadata, ChunkWarnings
    - Collection: CollectionResult
"""

from .activity import CollectionResult
from .document import AggregatedDocument, AggregatedEntry, ChunkWarnings, DocumentMetadata
from .summary import ChunkSummary, SummaryEntry, SummaryMetadata

__all__ = [
    "AggregatedDocument",
    "AggregatedEntry",
    "ChunkSummary",
    "ChunkWarnings",
    "CollectionResult",
    "DocumentMetadata",
    "SummaryEntry",
    "SummaryMetadata",
]
