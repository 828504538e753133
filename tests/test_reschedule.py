# tests/test_reschedule.py

from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from reschedule import (
    FALLBACK_REASON,
    DayBucket,
    least_busy,
    score_window,
    suggest_reschedule,
)

from .conftest import REFERENCE_NOW


def _task(task_id: str, priority: str = "medium", due: str | None = None, status: str = "pending") -> dict:
    return {"id": task_id, "title": task_id, "priority": priority, "due_date": due, "status": status}


def _day(offset: int) -> str:
    return (REFERENCE_NOW.date() + timedelta(days=offset)).isoformat()


def test_missing_target_falls_back_to_tomorrow_morning() -> None:
    s = suggest_reschedule("nope", [_task("a", due=_day(0))], REFERENCE_NOW)

    assert s.suggested_due_date == datetime(2026, 10, 15, 9, 0, tzinfo=timezone.utc)
    assert s.reason == FALLBACK_REASON


def test_empty_snapshot_is_total() -> None:
    s = suggest_reschedule("anything", [], REFERENCE_NOW)

    assert s.suggested_due_date.date() == REFERENCE_NOW.date() + timedelta(days=1)
    assert s.suggested_due_date.hour == 9


@pytest.mark.parametrize(
    ("priority", "hour", "label"),
    [("high", 9, "9AM"), ("medium", 12, "12AM"), ("low", 15, "3PM"), ("urgent", 15, "3PM"), (None, 15, "3PM")],
)
def test_hour_follows_target_priority(priority, hour, label) -> None:
    s = suggest_reschedule("t", [_task("t", priority=priority, due="2026-10-01")], REFERENCE_NOW)

    assert s.suggested_due_date == datetime(2026, 10, 14, hour, 0, tzinfo=timezone.utc)
    assert s.reason == f"Rescheduled to Wednesday at {label} when your schedule appears to be clear."


def test_busy_today_and_tomorrow_moves_to_day_after() -> None:
    tasks = [
        _task("t", priority="low", due="2026-10-01"),
        _task("a", priority="high", due=_day(0)),
        _task("b", priority="medium", due=_day(1)),
    ]

    s = suggest_reschedule("t", tasks, REFERENCE_NOW)

    assert [b.score for b in score_window(tasks, REFERENCE_NOW, exclude_id="t")] == [3, 2, 0, 0, 0, 0, 0]
    assert s.suggested_due_date == datetime(2026, 10, 16, 15, 0, tzinfo=timezone.utc)
    assert s.reason == "Rescheduled to Friday at 3PM when your schedule appears to be clear."


def test_least_busy_day_is_chosen() -> None:
    tasks = [
        _task("t", priority="high", due="2026-10-01"),
        _task("a", priority="high", due=_day(0)),
        _task("b", priority="medium", due=_day(1)),
    ] + [_task(f"low{i}", priority="low", due=_day(i)) for i in range(2, 7)]

    s = suggest_reschedule("t", tasks, REFERENCE_NOW)

    # Day 2 (Friday) is the first day with score 1
    assert s.suggested_due_date == datetime(2026, 10, 16, 9, 0, tzinfo=timezone.utc)
    assert s.reason == "Rescheduled to Friday at 9AM when you have few other commitments."


def test_first_minimum_wins_ties() -> None:
    tasks = [_task("t", priority="low")] + [_task(f"h{i}", priority="high", due=_day(i)) for i in range(7)]

    s = suggest_reschedule("t", tasks, REFERENCE_NOW)

    assert s.suggested_due_date.date() == REFERENCE_NOW.date()
    assert s.reason == "Rescheduled to Wednesday at 3PM which seems to be the least busy time in your schedule."


@pytest.mark.parametrize(
    ("priority", "clause"),
    [
        ("low", "when you have few other commitments."),
        ("medium", "when you have few other commitments."),
        ("high", "which seems to be the least busy time in your schedule."),
    ],
)
def test_reason_clause_boundaries(priority, clause) -> None:
    tasks = [_task("t")] + [_task(f"x{i}", priority=priority, due=_day(i)) for i in range(7)]

    s = suggest_reschedule("t", tasks, REFERENCE_NOW)

    assert s.reason.endswith(clause)


def test_tasks_outside_window_do_not_count() -> None:
    tasks = [
        _task("t", priority="high"),
        _task("past", priority="high", due=_day(-1)),
        _task("far", priority="high", due=_day(7)),
    ]

    s = suggest_reschedule("t", tasks, REFERENCE_NOW)

    assert s.suggested_due_date.date() == REFERENCE_NOW.date()
    assert "clear" in s.reason


def test_completed_and_undated_tasks_do_not_count() -> None:
    tasks = [
        _task("t", priority="high"),
        _task("done", priority="high", due=_day(0), status="completed"),
        _task("someday", priority="high", due=None),
        _task("junk", priority="high", due="not a date"),
    ]

    buckets = score_window(tasks, REFERENCE_NOW, exclude_id="t")

    assert [b.score for b in buckets] == [0] * 7


def test_target_does_not_count_against_its_own_day() -> None:
    tasks = [_task("t", priority="high", due=_day(0))]

    s = suggest_reschedule("t", tasks, REFERENCE_NOW)

    assert s.suggested_due_date.date() == REFERENCE_NOW.date()


def test_due_days_are_bucketed_in_reference_timezone() -> None:
    ny_now = datetime(2026, 10, 14, 10, 0, tzinfo=ZoneInfo("America/New_York"))
    # 02:00 UTC on the 15th is still the 14th in New York
    tasks = [_task("t", priority="high"), _task("late", priority="high", due="2026-10-15T02:00:00+00:00")]

    s = suggest_reschedule("t", tasks, ny_now)

    assert s.suggested_due_date == datetime(2026, 10, 15, 9, 0, tzinfo=ZoneInfo("America/New_York"))


def test_same_input_same_output_and_no_mutation() -> None:
    tasks = [_task("t", priority="medium"), _task("a", priority="high", due=_day(0)), _task("b", due=_day(3))]
    before = copy.deepcopy(tasks)

    first = suggest_reschedule("t", tasks, REFERENCE_NOW)
    second = suggest_reschedule("t", tasks, REFERENCE_NOW)

    assert first == second
    assert tasks == before


def test_least_busy_scans_in_order() -> None:
    day = REFERENCE_NOW.date()
    buckets = [DayBucket(day + timedelta(days=i), s) for i, s in enumerate([4, 2, 5, 2, 1, 1, 3])]

    assert least_busy(buckets).day == day + timedelta(days=4)
