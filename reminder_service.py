"""
Reminder service: CRUD for reminders and per-user reminder analytics.
date is YYYY-MM-DD and time is HH:MM, both in the user's timezone.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from ulid import ULID

from database import get_connection

logger = logging.getLogger("reminder_service")

REMINDER_TYPES = frozenset({"one-time", "recurring"})
FREQUENCIES = frozenset({"daily", "weekly", "monthly", ""})

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")

# Fields a client may change through update_reminder
_UPDATABLE = ("title", "description", "date", "time", "type", "frequency", "is_completed", "related_task")
_TEXT_FIELDS = ("title", "description", "date", "time", "type", "frequency", "related_task")


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _reminder_row_to_dict(row: Any) -> dict[str, Any]:
    d = dict(row)
    d["is_completed"] = bool(d.get("is_completed"))
    return d


def _require_text(fields: dict[str, Any]) -> None:
    for key in _TEXT_FIELDS:
        value = fields.get(key)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{key} must be a string")


def _validate_fields(fields: dict[str, Any]) -> None:
    """Raise ValueError for malformed values among the given fields."""
    _require_text(fields)
    if "is_completed" in fields and not isinstance(fields["is_completed"], (bool, int)):
        raise ValueError("is_completed must be a boolean")
    if "title" in fields and not (fields["title"] or "").strip():
        raise ValueError("Please add a title")
    if "date" in fields:
        d = str(fields["date"] or "")[:10]
        if not _DATE_RE.match(d):
            raise ValueError("date must be YYYY-MM-DD")
        try:
            datetime.strptime(d, "%Y-%m-%d")
        except ValueError as e:
            raise ValueError("date must be YYYY-MM-DD") from e
    if "time" in fields and not _TIME_RE.match(str(fields["time"] or "")):
        raise ValueError("time must be HH:MM")
    if "type" in fields and fields["type"] not in REMINDER_TYPES:
        raise ValueError(f"type must be one of {sorted(REMINDER_TYPES)}")
    if "frequency" in fields and (fields["frequency"] or "") not in FREQUENCIES:
        raise ValueError(f"frequency must be one of {sorted(f for f in FREQUENCIES if f)} or empty")


def create_reminder(
    user_id: str,
    title: str | None,
    date: str | None,
    time: str | None,
    *,
    description: str | None = None,
    type: str | None = None,
    frequency: str | None = None,
    related_task: str | None = None,
) -> dict[str, Any]:
    """Create a reminder. title, date and time are required; new reminders are never completed."""
    _require_text({
        "title": title, "description": description, "date": date, "time": time,
        "type": type, "frequency": frequency, "related_task": related_task,
    })
    if not (title or "").strip() or not date or not time:
        raise ValueError("Please add title, date, and time")
    fields = {
        "title": title.strip(),
        "date": date[:10],
        "time": time,
        "type": type or "one-time",
        "frequency": frequency or "",
    }
    _validate_fields(fields)
    rid = str(ULID())
    now = _now_iso()
    conn = get_connection()
    try:
        conn.execute(
            """INSERT INTO reminders (
                id, user_id, title, description, date, time, type, frequency,
                is_completed, related_task, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)""",
            (
                rid, user_id, fields["title"], description or None, fields["date"], fields["time"],
                fields["type"], fields["frequency"], related_task or None, now, now,
            ),
        )
        conn.commit()
        logger.info("Created reminder %s for user %s", rid, user_id)
    finally:
        conn.close()
    return get_reminder(rid)


def get_reminder(reminder_id: str) -> dict[str, Any] | None:
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
        return _reminder_row_to_dict(row) if row else None
    finally:
        conn.close()


def list_reminders(user_id: str, limit: int = 500) -> list[dict[str, Any]]:
    """A user's reminders, soonest first."""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM reminders WHERE user_id = ? ORDER BY date ASC, time ASC LIMIT ?",
            (user_id, limit),
        ).fetchall()
        return [_reminder_row_to_dict(r) for r in rows]
    finally:
        conn.close()


def update_reminder(reminder_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
    """Update any of title, description, date, time, type, frequency, is_completed, related_task. Unknown keys are ignored."""
    changes = {k: fields[k] for k in _UPDATABLE if k in fields}
    if isinstance(changes.get("date"), str):
        changes["date"] = changes["date"][:10]
    _validate_fields(changes)
    conn = get_connection()
    try:
        row = conn.execute("SELECT id FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
        if not row:
            return None
        updates = ["updated_at = ?"]
        params: list[Any] = [_now_iso()]
        for key, value in changes.items():
            if key == "is_completed":
                value = 1 if value else 0
            elif key == "frequency":
                value = value or ""
            elif key == "title":
                value = value.strip()
            updates.append(f"{key} = ?")
            params.append(value)
        params.append(reminder_id)
        conn.execute(f"UPDATE reminders SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()
    finally:
        conn.close()
    return get_reminder(reminder_id)


def delete_reminder(reminder_id: str) -> bool:
    """Returns True if deleted, False if not found."""
    conn = get_connection()
    try:
        cur = conn.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def _reminder_at(reminder: dict[str, Any], tzinfo) -> datetime | None:
    try:
        return datetime.strptime(f"{reminder['date']} {reminder['time']}", "%Y-%m-%d %H:%M").replace(tzinfo=tzinfo)
    except (KeyError, TypeError, ValueError):
        return None


def reminder_analytics(user_id: str, now: datetime) -> dict[str, Any]:
    """
    Totals for a user's reminders relative to now (an aware datetime in the user's timezone).
    upcoming = not completed and scheduled after now; overdue = not completed and scheduled before now.
    """
    reminders = list_reminders(user_id, limit=100000)
    total = len(reminders)
    completed = sum(1 for r in reminders if r["is_completed"])
    upcoming = 0
    overdue = 0
    by_type: dict[str, int] = {}
    for r in reminders:
        rtype = r.get("type") or "one-time"
        by_type[rtype] = by_type.get(rtype, 0) + 1
        if r["is_completed"]:
            continue
        at = _reminder_at(r, now.tzinfo)
        if at is None:
            continue
        if at > now:
            upcoming += 1
        elif at < now:
            overdue += 1
    return {
        "total": total,
        "completed": completed,
        "upcoming": upcoming,
        "overdue": overdue,
        "completionRate": (completed / total) * 100 if total else 0,
        "byType": by_type,
    }
