"""Schedule conflict detection and alternative time suggestions."""

import logging
from collections.abc import Iterable
from datetime import date, time

from .config import (
    CONFLICT_BUFFER_MINUTES,
    DEFAULT_EVENT_DURATION_MINUTES,
    FALLBACK_SUGGESTIONS,
    MAX_SUGGESTIONS,
    WORK_DAY_END,
    WORK_DAY_START,
)
from .models import (
    Conflict,
    ConflictKind,
    ConflictResult,
    ScheduleEntry,
    TaskInfo,
    TaskType,
)

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    minutes = max(0, min(MINUTES_PER_DAY - 1, minutes))
    return time(minutes // 60, minutes % 60)


def _interval(
    start: time, end: time | None, default_duration: int
) -> tuple[int, int]:
    s = to_minutes(start)
    e = to_minutes(end) if end is not None else None
    if e is None or e <= s:
        e = s + default_duration
    return s, e


def should_check_conflicts(task_info: TaskInfo) -> bool:
    """Conflicts only matter for scheduled items with both a date and a start."""
    return (
        task_info.task_type in (TaskType.CALENDAR, TaskType.MEETING)
        and task_info.due_date is not None
        and task_info.effective_start is not None
    )


def detect_conflicts(
    candidate_date: date,
    start: time,
    end: time | None,
    existing: Iterable[ScheduleEntry],
    default_duration: int = DEFAULT_EVENT_DURATION_MINUTES,
    buffer_minutes: int = CONFLICT_BUFFER_MINUTES,
) -> ConflictResult:
    """
    Check a candidate slot against the busy entries of the same date.

    The check is advisory: it reports overlaps and near misses and suggests
    alternatives, but never refuses a slot on its own.

    Args:
        candidate_date: Date of the candidate (entries must already be filtered to it)
        start: Candidate start time
        end: Candidate end time, defaults to start + default_duration
        existing: Busy entries on the same date
        default_duration: Duration in minutes for entries without an end
        buffer_minutes: Minimum gap between two items

    Returns:
        ConflictResult with every conflict and up to three suggested starts
    """
    entries = list(existing)
    s1, e1 = _interval(start, end, default_duration)
    conflicts: list[Conflict] = []

    for entry in entries:
        s2, e2 = _interval(entry.start, entry.end, default_duration)
        if s1 < e2 and e1 > s2:
            conflicts.append(
                Conflict(
                    entry=entry,
                    kind=ConflictKind.OVERLAP,
                    overlap_minutes=min(e1, e2) - max(s1, s2),
                    gap_minutes=0,
                )
            )
            continue
        gap = min(abs(s1 - e2), abs(s2 - e1))
        if gap < buffer_minutes:
            conflicts.append(
                Conflict(entry=entry, kind=ConflictKind.TOO_CLOSE, gap_minutes=gap)
            )

    if not conflicts:
        return ConflictResult(has_conflict=False)

    suggestions = suggest_times(entries, e1 - s1, default_duration, buffer_minutes)
    logger.info(
        f"⚠️ {len(conflicts)} conflict(s) on {candidate_date.isoformat()} at "
        f"{start.strftime('%H:%M')}, suggesting "
        f"{[t.strftime('%H:%M') for t in suggestions]}"
    )
    return ConflictResult(
        has_conflict=True, conflicts=conflicts, suggested_times=suggestions
    )


def suggest_times(
    entries: Iterable[ScheduleEntry],
    duration: int = DEFAULT_EVENT_DURATION_MINUTES,
    default_duration: int = DEFAULT_EVENT_DURATION_MINUTES,
    buffer_minutes: int = CONFLICT_BUFFER_MINUTES,
    day_start: time = WORK_DAY_START,
    day_end: time = WORK_DAY_END,
) -> list[time]:
    """Free starts inside working hours, keeping a buffer around busy entries."""
    window_start, window_end = to_minutes(day_start), to_minutes(day_end)
    intervals = sorted(
        _interval(e.start, e.end, default_duration) for e in entries
    )

    suggestions: list[time] = []
    current = window_start
    for s2, e2 in intervals:
        if len(suggestions) >= MAX_SUGGESTIONS:
            break
        if s2 - current >= duration + buffer_minutes and current + duration <= window_end:
            suggestions.append(from_minutes(current))
        current = max(current, e2 + buffer_minutes)

    if len(suggestions) < MAX_SUGGESTIONS and current + duration <= window_end:
        suggestions.append(from_minutes(current))

    if not suggestions:
        return list(FALLBACK_SUGGESTIONS)
    return suggestions[:MAX_SUGGESTIONS]
