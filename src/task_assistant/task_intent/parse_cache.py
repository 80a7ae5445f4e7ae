"""Bounded TTL cache of confident parse results."""

import copy
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

from .config import (
    CACHE_EVICTION_RATIO,
    CACHE_MAX_SIZE,
    CACHE_MIN_CONFIDENCE,
    CACHE_TTL_SECONDS,
)
from .models import ParseResult, ParseSource

logger = logging.getLogger(__name__)


def normalize_message(message: str) -> str:
    """Case-fold and collapse whitespace."""
    return " ".join(message.casefold().split())


@dataclass
class CacheEntry:
    result: ParseResult
    timestamp: float
    created_on: date
    usage_count: int = 0


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    rejected: int = 0
    extra: dict[str, int] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ParseCache:
    """
    Cache of parse results keyed by normalized message text.

    Only results at or above min_confidence are stored. When the cache is
    full, the lowest (usage_count, timestamp) share of entries is evicted.
    Entries holding a resolved due date expire at day rollover, since
    "ngày mai" means a different date tomorrow.
    """

    def __init__(
        self,
        max_size: int = CACHE_MAX_SIZE,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        min_confidence: float = CACHE_MIN_CONFIDENCE,
        eviction_ratio: float = CACHE_EVICTION_RATIO,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.min_confidence = min_confidence
        self.eviction_ratio = eviction_ratio
        self._clock = clock
        self._today = today
        self._entries: dict[str, CacheEntry] = {}
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, message: str) -> ParseResult | None:
        key = normalize_message(message)
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return None

        if self._is_stale(entry):
            del self._entries[key]
            self.stats.expirations += 1
            self.stats.misses += 1
            return None

        entry.usage_count += 1
        self.stats.hits += 1
        result = copy.deepcopy(entry.result)
        result.source = ParseSource.CACHE
        result.reasoning = f"Cached: {entry.result.reasoning}"
        return result

    def put(self, message: str, result: ParseResult) -> bool:
        """
        Store a result if it is confident enough.

        Returns:
            True if the result was cached
        """
        if result.confidence < self.min_confidence:
            self.stats.rejected += 1
            return False

        key = normalize_message(message)
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict()

        self._entries[key] = CacheEntry(
            result=copy.deepcopy(result),
            timestamp=self._clock(),
            created_on=self._today(),
        )
        return True

    def clear(self) -> None:
        self._entries.clear()

    def _is_stale(self, entry: CacheEntry) -> bool:
        if self._clock() - entry.timestamp > self.ttl_seconds:
            return True
        task = entry.result.task
        return bool(task and task.due_date and entry.created_on != self._today())

    def _evict(self) -> None:
        count = max(1, math.ceil(len(self._entries) * self.eviction_ratio))
        victims = sorted(
            self._entries.items(), key=lambda kv: (kv[1].usage_count, kv[1].timestamp)
        )[:count]
        for key, _ in victims:
            del self._entries[key]
        self.stats.evictions += len(victims)
        logger.debug(f"Parse cache evicted {len(victims)} entries")
