"""
Smart reschedule: suggest a new due date for a missed or overdue task.

Scores the next seven days by the priority-weighted load of the user's other pending tasks and
proposes the least busy day, at an hour chosen from the task's own priority.
Pure: reads only the task snapshot and the reference time it is given; never writes anything.
Callers persist the suggestion through task_service.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict

from date_utils import WEEKDAY_NAMES, due_day, format_hour_label

WINDOW_DAYS = 7

# Load each pending task adds to its due day; unknown priorities count as low
PRIORITY_WEIGHTS = {"high": 3, "medium": 2, "low": 1}
DEFAULT_WEIGHT = 1

# Suggested hour from the rescheduled task's own priority
PRIORITY_HOURS = {"high": 9, "medium": 12}
DEFAULT_HOUR = 15

FALLBACK_HOUR = 9
FALLBACK_REASON = "Couldn't find original task, rescheduled for tomorrow morning"

_NO_TASK = object()


class RescheduleSuggestion(BaseModel):
    """A proposed due date and the reason for it. Not persisted by this module."""

    model_config = ConfigDict(frozen=True)

    suggested_due_date: datetime
    reason: str


@dataclass
class DayBucket:
    day: date
    score: int = 0


def _task_id(task: Mapping[str, Any]) -> Any:
    return task.get("id")


def build_window(today: date) -> list[DayBucket]:
    """Seven empty buckets, today first."""
    return [DayBucket(today + timedelta(days=i)) for i in range(WINDOW_DAYS)]


def score_window(
    tasks: Iterable[Mapping[str, Any]],
    reference_now: datetime,
    exclude_id: Any = _NO_TASK,
) -> list[DayBucket]:
    """
    Density per day for the window starting at reference_now's date.
    Only tasks that are not completed and have a due date count (the pending pool); the excluded
    task never counts. Due days are taken in reference_now's timezone.
    """
    today = reference_now.date()
    buckets = build_window(today)
    tz = reference_now.tzinfo
    for t in tasks:
        if exclude_id is not _NO_TASK and _task_id(t) == exclude_id:
            continue
        if t.get("status") == "completed":
            continue
        day = due_day(t.get("due_date"), tz)
        if day is None:
            continue
        offset = (day - today).days
        if 0 <= offset < WINDOW_DAYS:
            buckets[offset].score += PRIORITY_WEIGHTS.get(t.get("priority"), DEFAULT_WEIGHT)
    return buckets


def least_busy(buckets: list[DayBucket]) -> DayBucket:
    """Lowest score; the earliest day wins ties."""
    best = buckets[0]
    for b in buckets[1:]:
        if b.score < best.score:
            best = b
    return best


def hour_for_priority(priority: Any) -> int:
    return PRIORITY_HOURS.get(priority, DEFAULT_HOUR)


def _reason(day: date, hour: int, score: int) -> str:
    reason = f"Rescheduled to {WEEKDAY_NAMES[day.weekday()]} at {format_hour_label(hour)} "
    if score == 0:
        reason += "when your schedule appears to be clear."
    elif score < 3:
        reason += "when you have few other commitments."
    else:
        reason += "which seems to be the least busy time in your schedule."
    return reason


def _at_hour(day: date, hour: int, reference_now: datetime) -> datetime:
    return datetime.combine(day, time(hour), tzinfo=reference_now.tzinfo)


def suggest_reschedule(
    task_id: Any,
    tasks: Iterable[Mapping[str, Any]],
    reference_now: datetime,
) -> RescheduleSuggestion:
    """
    Suggest a new due date for task_id given a snapshot of the user's tasks (target included).
    Always returns a suggestion: when task_id is not in the snapshot, tomorrow at 9AM.
    """
    snapshot = list(tasks)
    target = next((t for t in snapshot if _task_id(t) == task_id), None)
    if target is None:
        tomorrow = reference_now.date() + timedelta(days=1)
        return RescheduleSuggestion(
            suggested_due_date=_at_hour(tomorrow, FALLBACK_HOUR, reference_now),
            reason=FALLBACK_REASON,
        )
    best = least_busy(score_window(snapshot, reference_now, exclude_id=task_id))
    hour = hour_for_priority(target.get("priority"))
    return RescheduleSuggestion(
        suggested_due_date=_at_hour(best.day, hour, reference_now),
        reason=_reason(best.day, hour, best.score),
    )
