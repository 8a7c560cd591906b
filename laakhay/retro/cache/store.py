"""In-memory TTL cache for completed units of work.

Architecture:
    CacheStore is the only state shared between concurrently running units.
    It is constructor-injected into the executor, the scheduler and the
    collector rather than held as a module-level singleton, so every test can
    run against a fresh, isolated store.

Design Decisions:
    - TTL checked lazily on read, plus an optional periodic sweep task
    - Capacity bounded by LRU eviction (one entry per insert of a new key)
    - Approximate lookup by token-set similarity within a category
    - Reads never raise: a miss, an expired entry and a value that fails the
      shape check all return None

Concurrency:
    All operations are synchronous, so under a single asyncio event loop no
    two of them interleave and no lock is needed. The store is NOT thread-safe:
    sharing it across OS threads requires a mutex around every method.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..core.exceptions import CacheCorruptionError
from ..utils.text import jaccard, tokenize

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "default"


@dataclass
class CacheEntry:
    """A cached value with its bookkeeping.

    Attributes:
        value: Payload produced by a successful unit of work
        created_at: Clock reading (seconds) when the entry was written
        ttl_ms: Time-to-live in milliseconds
        category: Namespace used by similarity lookup
        source_text: Text the value was derived from (for similarity lookup)
        last_accessed: Clock reading of the latest hit
        access_count: Number of writes and hits
    """

    value: Any
    created_at: float
    ttl_ms: int
    category: str = DEFAULT_CATEGORY
    source_text: str | None = None
    last_accessed: float = 0.0
    access_count: int = 1
    _tokens: frozenset[str] | None = field(default=None, repr=False)

    def is_expired(self, now: float) -> bool:
        return (now - self.created_at) * 1000.0 > self.ttl_ms

    @property
    def tokens(self) -> frozenset[str]:
        if self._tokens is None:
            self._tokens = tokenize(self.source_text)
        return self._tokens


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""

    hits: int
    misses: int
    evictions: int
    expired: int
    corruptions: int
    size: int

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage (0 when nothing was requested)."""
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests * 100.0


class CacheStore:
    """TTL-keyed store with exact and approximate lookup.

    Example:
        >>> cache = CacheStore(ttl_ms=60_000, max_size=100)
        >>> cache.set("commits:org/repo:2024-01-01:2024-01-07", [{"sha": "abc"}])
        >>> cache.get("commits:org/repo:2024-01-01:2024-01-07")
        [{'sha': 'abc'}]
    """

    def __init__(
        self,
        *,
        ttl_ms: int = 5 * 60 * 1000,
        max_size: int = 1000,
        similarity_threshold: float = 0.8,
        validator: Callable[[Any], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            ttl_ms: Default time-to-live for new entries
            max_size: Maximum number of entries (0 disables storage)
            similarity_threshold: Default threshold for find_similar()
            validator: Optional shape check applied to values on read
            clock: Monotonic clock in seconds (injectable for tests)
        """
        if ttl_ms < 0:
            raise ValueError("ttl_ms must be >= 0")
        if max_size < 0:
            raise ValueError("max_size must be >= 0")
        if not 0.0 <= similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be in [0, 1]")

        self._ttl_ms = ttl_ms
        self._max_size = max_size
        self._similarity_threshold = similarity_threshold
        self._validator = validator
        self._clock = clock
        # Insertion order doubles as recency order: most recent at the end
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired = 0
        self._corruptions = 0

        self._sweeper: asyncio.Task[None] | None = None

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not entry.is_expired(self._clock())

    def get(self, key: str) -> Any | None:
        """Return the cached value for key, or None on miss.

        Expired entries are deleted as a side effect. A hit refreshes the
        entry's LRU position.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            self._expired += 1
            self._misses += 1
            return None

        try:
            self._check_shape(key, entry.value)
        except CacheCorruptionError as e:
            logger.warning(f"Dropping corrupted cache entry: {e}")
            del self._entries[key]
            self._corruptions += 1
            self._misses += 1
            return None

        self._touch(key, entry, now)
        self._hits += 1
        logger.debug(f"Cache hit: {key}")
        return entry.value

    def set(
        self,
        key: str,
        value: Any,
        *,
        category: str = DEFAULT_CATEGORY,
        source_text: str | None = None,
        ttl_ms: int | None = None,
    ) -> None:
        """Insert or overwrite an entry (last write wins).

        When the store is full and key is new, the least recently used entry
        is evicted first.
        """
        if self._max_size == 0:
            return

        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self._max_size:
            self._evict_lru()

        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value,
            created_at=now,
            ttl_ms=self._ttl_ms if ttl_ms is None else ttl_ms,
            category=category,
            source_text=source_text,
            last_accessed=now,
        )

    def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if it existed."""
        return self._entries.pop(key, None) is not None

    def find_similar(
        self,
        candidate_text: str,
        category: str = DEFAULT_CATEGORY,
        threshold: float | None = None,
    ) -> Any | None:
        """Return the first live entry in category whose source text is similar.

        Similarity is token-set Jaccard over normalized tokens; entries
        without source text never match.

        Args:
            candidate_text: Text of the new request
            category: Only entries written under this category are compared
            threshold: Minimum similarity (defaults to the store threshold)

        Returns:
            Cached value of the first entry at or above threshold, else None
        """
        limit = self._similarity_threshold if threshold is None else threshold
        candidate = tokenize(candidate_text)
        now = self._clock()
        expired: list[str] = []
        match: tuple[str, CacheEntry] | None = None

        for key, entry in self._entries.items():
            if entry.category != category or entry.source_text is None:
                continue
            if entry.is_expired(now):
                expired.append(key)
                continue
            if jaccard(candidate, entry.tokens) >= limit:
                match = (key, entry)
                break

        for key in expired:
            del self._entries[key]
        self._expired += len(expired)

        if match is None:
            self._misses += 1
            return None

        key, entry = match
        try:
            self._check_shape(key, entry.value)
        except CacheCorruptionError as e:
            logger.warning(f"Dropping corrupted cache entry: {e}")
            del self._entries[key]
            self._corruptions += 1
            self._misses += 1
            return None

        self._touch(key, entry, now)
        self._hits += 1
        logger.debug(f"Similar cache hit for category {category}: {key}")
        return entry.value

    def clear_expired(self) -> int:
        """Delete every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self._expired += len(expired)
        if expired:
            logger.info(f"Evicted {len(expired)} expired cache entries")
        return len(expired)

    def clear(self) -> None:
        """Drop every entry and reset counters."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired = 0
        self._corruptions = 0

    def stats(self) -> CacheStats:
        """Current counters."""
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            expired=self._expired,
            corruptions=self._corruptions,
            size=len(self._entries),
        )

    def start_sweeper(self, interval_s: float) -> asyncio.Task[None]:
        """Run clear_expired() every interval_s seconds on the running loop."""
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(interval_s))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        """Cancel the periodic sweep task, if any."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_loop(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                self.clear_expired()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}", exc_info=True)

    async def __aenter__(self) -> CacheStore:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.stop_sweeper()

    def _touch(self, key: str, entry: CacheEntry, now: float) -> None:
        entry.last_accessed = now
        entry.access_count += 1
        self._entries.move_to_end(key)

    def _evict_lru(self) -> None:
        key, _ = self._entries.popitem(last=False)
        self._evictions += 1
        logger.debug(f"Evicted least recently used cache entry: {key}")

    def _check_shape(self, key: str, value: Any) -> None:
        if self._validator is None:
            return
        try:
            valid = self._validator(value)
        except Exception as e:
            raise CacheCorruptionError(f"validator raised for {key}: {e}", key=key) from e
        if not valid:
            raise CacheCorruptionError(f"value for {key} failed shape check", key=key)


def _normalize_change(change: Any) -> Any:
    if not isinstance(change, dict):
        return change
    labels = change.get("labels")
    return {
        "title": (change.get("title") or "").lower().strip() or None,
        "description": (change.get("description") or "").lower().strip() or None,
        "source": change.get("source"),
        "source_type": change.get("source_type", change.get("sourceType")),
        "labels": sorted(str(label).lower() for label in labels) if labels else None,
        "priority": change.get("priority"),
        "state": change.get("state"),
    }


def make_content_key(
    data: Any,
    analysis_type: str,
    context: dict[str, Any] | None = None,
) -> str:
    """Derive a stable cache key from change data and analysis context.

    Only fields that affect an analysis result take part: title and
    description (case-folded), source, source type, sorted labels, priority
    and state, plus the provider/model/threshold context.

    Returns:
        First 16 hex digits of the sha256 of the normalized payload
    """
    context = context or {}
    normalized = (
        [_normalize_change(item) for item in data]
        if isinstance(data, list)
        else _normalize_change(data)
    )
    key_data = {
        "data": normalized,
        "context": {
            "analysis_type": analysis_type,
            "provider": context.get("provider"),
            "model": context.get("model"),
            "confidence_threshold": context.get("confidence_threshold"),
            "categories": context.get("categories"),
        },
    }
    key_text = json.dumps(key_data, sort_keys=True, default=str)
    return hashlib.sha256(key_text.encode("utf-8")).hexdigest()[:16]


def make_options_digest(options: Mapping[str, Any] | None) -> str | None:
    """Stable digest of caller options, or None when there are none.

    Keys are sorted before hashing, so two mappings with the same items give
    the same digest regardless of insertion order.
    """
    if not options:
        return None
    key_text = json.dumps(dict(options), sort_keys=True, default=str)
    return hashlib.sha256(key_text.encode("utf-8")).hexdigest()[:16]
