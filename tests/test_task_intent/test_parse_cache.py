"""Tests for the parse result cache."""

from datetime import date, time

import pytest

from task_assistant.task_intent.models import ParseResult, ParseSource, TaskInfo
from task_assistant.task_intent.parse_cache import ParseCache, normalize_message


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_result(confidence: float = 0.9, due_date: date | None = None) -> ParseResult:
    return ParseResult(
        is_task=True,
        confidence=confidence,
        source=ParseSource.REMOTE,
        reasoning="remote",
        task=TaskInfo(title="Họp", due_date=due_date, due_time=time(9, 0)),
    )


@pytest.mark.unit
class TestParseCache:
    """Test cases for ParseCache."""

    def test_normalize_message(self) -> None:
        """Test case folding and whitespace collapsing."""
        assert normalize_message("  Họp   NHÓM ") == "họp nhóm"

    def test_hit_returns_copy_marked_as_cache(self) -> None:
        """Test that hits are tagged and isolated from the stored entry."""
        cache = ParseCache()
        cache.put("Họp nhóm", make_result())

        first = cache.get("họp   nhóm")
        assert first is not None
        assert first.source == ParseSource.CACHE
        first.task.title = "changed"

        second = cache.get("Họp nhóm")
        assert second.task.title == "Họp"
        assert cache.stats.hits == 2

    def test_miss(self) -> None:
        """Test a miss is counted."""
        cache = ParseCache()

        assert cache.get("unknown") is None
        assert cache.stats.misses == 1
        assert cache.stats.hit_rate == 0.0

    def test_low_confidence_rejected(self) -> None:
        """Test that uncertain results are not cached."""
        cache = ParseCache(min_confidence=0.7)

        assert cache.put("maybe", make_result(confidence=0.5)) is False
        assert len(cache) == 0
        assert cache.stats.rejected == 1

    def test_ttl_expiry(self) -> None:
        """Test that old entries expire."""
        clock = FakeClock()
        cache = ParseCache(ttl_seconds=60, clock=clock)
        cache.put("Họp", make_result())

        clock.now += 61

        assert cache.get("Họp") is None
        assert cache.stats.expirations == 1
        assert len(cache) == 0

    def test_dated_entry_expires_at_day_change(self) -> None:
        """Test that 'ngày mai' results do not survive midnight."""
        today = {"value": date(2025, 5, 21)}
        cache = ParseCache(today=lambda: today["value"])
        cache.put("Họp ngày mai", make_result(due_date=date(2025, 5, 22)))
        cache.put("Họp nhóm", make_result())

        today["value"] = date(2025, 5, 22)

        assert cache.get("Họp ngày mai") is None
        assert cache.get("Họp nhóm") is not None

    def test_eviction_removes_least_used(self) -> None:
        """Test that a full cache drops its least-used entries."""
        clock = FakeClock()
        cache = ParseCache(max_size=5, eviction_ratio=0.2, clock=clock)
        for i in range(5):
            clock.now += 1
            cache.put(f"message {i}", make_result())
        for i in range(1, 5):
            cache.get(f"message {i}")

        cache.put("message 5", make_result())

        assert len(cache) == 5
        assert cache.stats.evictions == 1
        assert cache.get("message 0") is None
        assert cache.get("message 5") is not None
