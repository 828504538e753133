# tests/test_reminder_service.py

from __future__ import annotations

import pytest

import reminder_service


def test_create_reminder_defaults(user) -> None:
    r = reminder_service.create_reminder(user["id"], "Pay rent", "2026-11-01T00:00:00Z", "08:30")

    assert r["date"] == "2026-11-01"
    assert r["time"] == "08:30"
    assert r["type"] == "one-time"
    assert r["frequency"] == ""
    assert r["is_completed"] is False
    assert r["related_task"] is None


@pytest.mark.parametrize(
    ("title", "date", "time"),
    [("", "2026-11-01", "08:30"), ("Rent", None, "08:30"), ("Rent", "2026-11-01", "")],
)
def test_create_reminder_requires_title_date_time(user, title, date, time) -> None:
    with pytest.raises(ValueError, match="Please add title, date, and time"):
        reminder_service.create_reminder(user["id"], title, date, time)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"date": "2026-13-01"},
        {"time": "25:00"},
        {"type": "sometimes"},
        {"type": "recurring", "frequency": "hourly"},
    ],
)
def test_create_reminder_validates_fields(user, kwargs) -> None:
    args = {"date": "2026-11-01", "time": "08:30"}
    args.update({k: kwargs[k] for k in ("date", "time") if k in kwargs})
    extra = {k: v for k, v in kwargs.items() if k not in ("date", "time")}

    with pytest.raises(ValueError):
        reminder_service.create_reminder(user["id"], "Rent", args["date"], args["time"], **extra)


def test_list_reminders_soonest_first(user, other_user) -> None:
    uid = user["id"]
    reminder_service.create_reminder(uid, "Later", "2026-10-20", "08:00")
    reminder_service.create_reminder(uid, "Sooner", "2026-10-15", "18:00")
    reminder_service.create_reminder(uid, "Soonest", "2026-10-15", "07:00")
    reminder_service.create_reminder(other_user["id"], "Not mine", "2026-10-01", "07:00")

    assert [r["title"] for r in reminder_service.list_reminders(uid)] == ["Soonest", "Sooner", "Later"]


def test_update_reminder(user) -> None:
    r = reminder_service.create_reminder(user["id"], "Water plants", "2026-10-15", "07:00")

    updated = reminder_service.update_reminder(
        r["id"], {"is_completed": True, "type": "recurring", "frequency": "weekly", "user_id": "hijack"}
    )

    assert updated["is_completed"] is True
    assert updated["type"] == "recurring"
    assert updated["frequency"] == "weekly"
    assert updated["user_id"] == user["id"]


def test_update_reminder_validates_and_handles_missing(user) -> None:
    r = reminder_service.create_reminder(user["id"], "Water plants", "2026-10-15", "07:00")

    with pytest.raises(ValueError):
        reminder_service.update_reminder(r["id"], {"time": "7am"})
    assert reminder_service.update_reminder("missing", {"title": "x"}) is None


def test_delete_reminder(user) -> None:
    r = reminder_service.create_reminder(user["id"], "Water plants", "2026-10-15", "07:00")

    assert reminder_service.delete_reminder(r["id"]) is True
    assert reminder_service.get_reminder(r["id"]) is None
    assert reminder_service.delete_reminder(r["id"]) is False


def test_reminder_analytics(user, reference_now) -> None:
    uid = user["id"]
    reminder_service.create_reminder(uid, "Overdue", "2026-10-14", "09:00")
    reminder_service.create_reminder(uid, "Upcoming", "2026-10-14", "11:00")
    done = reminder_service.create_reminder(uid, "Done", "2026-10-13", "08:00")
    reminder_service.update_reminder(done["id"], {"is_completed": True})
    reminder_service.create_reminder(uid, "Weekly", "2026-10-20", "08:00", type="recurring", frequency="weekly")

    stats = reminder_service.reminder_analytics(uid, reference_now)

    assert stats == {
        "total": 4,
        "completed": 1,
        "upcoming": 2,
        "overdue": 1,
        "completionRate": 25.0,
        "byType": {"one-time": 3, "recurring": 1},
    }


def test_reminder_fields_must_be_strings(user) -> None:
    with pytest.raises(ValueError, match="title must be a string"):
        reminder_service.create_reminder(user["id"], 5, "2026-10-15", "07:00")

    r = reminder_service.create_reminder(user["id"], "Water plants", "2026-10-15", "07:00")
    with pytest.raises(ValueError, match="title must be a string"):
        reminder_service.update_reminder(r["id"], {"title": 5})
    with pytest.raises(ValueError, match="date must be a string"):
        reminder_service.update_reminder(r["id"], {"date": ["2026-10-16"]})
