"""
Task Service layer: all task database mutations go through here.
Deterministic writes only; the assistant and the API call these functions, never SQL directly.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone, tzinfo
from typing import Any

from ulid import ULID

from database import get_connection, init_database
from date_utils import due_day, get_tz, normalize_due_date

logger = logging.getLogger("task_service")

STATUSES = frozenset({"pending", "in-progress", "completed", "missed"})
PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"
DEFAULT_CATEGORY = "general"

# Statuses the missed-task sweep may flip to "missed"
_SWEEPABLE = ("pending", "in-progress")

# Sentinel: pass for optional params to mean "don't change"; None means "set to null"
_UNSET = object()


def _new_id() -> str:
    return str(ULID())


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _user_timezone() -> str:
    from config import load as load_config
    return load_config().user_timezone or "UTC"


def _record_history(conn: sqlite3.Connection, task_id: str, event: str, payload: Any = None) -> None:
    conn.execute(
        "INSERT INTO task_history (task_id, timestamp, event, payload) VALUES (?, ?, ?, ?)",
        (task_id, _now_iso(), event, json.dumps(payload) if payload is not None else None),
    )


def _task_row_to_dict(row: Any) -> dict[str, Any]:
    d = dict(row)
    d["created_by_voice"] = bool(d.get("created_by_voice"))
    return d


def _add_task_tags(conn: sqlite3.Connection, out: dict[str, Any]) -> None:
    out["tags"] = [r[0] for r in conn.execute("SELECT tag FROM task_tags WHERE task_id = ? ORDER BY tag", (out["id"],))]


def _set_tags(conn: sqlite3.Connection, task_id: str, tags: list[str]) -> None:
    conn.execute("DELETE FROM task_tags WHERE task_id = ?", (task_id,))
    for tag in tags:
        tag = (tag or "").strip()
        if tag:
            conn.execute("INSERT OR IGNORE INTO task_tags (task_id, tag) VALUES (?, ?)", (task_id, tag))


def _require_text(fields: dict[str, Any]) -> None:
    """Raise ValueError for any given field that is set but not a string."""
    for name, value in fields.items():
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{name} must be a string")


def _validate_status(status: str) -> None:
    if status not in STATUSES:
        raise ValueError(f"status must be one of {sorted(STATUSES)}")


def _validate_priority(priority: str) -> None:
    if priority not in PRIORITIES:
        raise ValueError(f"priority must be one of {list(PRIORITIES)}")


def _due_date_for_storage(value: Any) -> str | None:
    return normalize_due_date(value, _user_timezone())


def ensure_db() -> None:
    """Bootstrap database on first run."""
    init_database()


def create_task(
    user_id: str,
    title: str,
    *,
    description: str | None = None,
    notes: str | None = None,
    due_date: str | datetime | None = None,
    priority: str | None = None,
    status: str | None = None,
    category: str | None = None,
    tags: list[str] | None = None,
    created_by_voice: bool = False,
    task_id: str | None = None,
) -> dict[str, Any]:
    """Create a task owned by user_id. Only title is required; priority defaults to medium, status to pending."""
    _require_text({
        "title": title, "description": description, "notes": notes,
        "status": status, "priority": priority, "category": category,
    })
    title = (title or "").strip()
    if not title:
        raise ValueError("Please add a title")
    eff_priority = priority or DEFAULT_PRIORITY
    eff_status = status or "pending"
    _validate_priority(eff_priority)
    _validate_status(eff_status)
    due = _due_date_for_storage(due_date)
    tid = task_id or _new_id()
    now = _now_iso()
    conn = get_connection()
    try:
        conn.execute(
            """INSERT INTO tasks (
                id, user_id, title, description, notes, status, priority, category,
                due_date, created_at, updated_at, completed_at, created_by_voice
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                tid, user_id, title, description or None, notes or None, eff_status, eff_priority,
                (category or "").strip() or DEFAULT_CATEGORY, due, now, now,
                now if eff_status == "completed" else None, 1 if created_by_voice else 0,
            ),
        )
        _set_tags(conn, tid, tags or [])
        _record_history(conn, tid, "created", {"title": title, "status": eff_status})
        conn.commit()
        logger.info("Created task %s for user %s", tid, user_id)
    finally:
        conn.close()
    return get_task(tid)


def get_task(task_id: str) -> dict[str, Any] | None:
    """Return one task by id with its tags."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return None
        out = _task_row_to_dict(row)
        _add_task_tags(conn, out)
        return out
    finally:
        conn.close()


def list_tasks(
    user_id: str,
    status: str | None = None,
    priority: str | None = None,
    category: str | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    limit: int = 500,
) -> list[dict[str, Any]]:
    """List a user's tasks with optional filters.
    search: substring match on title, description, category or tag (case-insensitive).
    sort_by: dueDate (unscheduled last), priority (high first), createdAt (default, newest first).
    """
    conn = get_connection()
    try:
        sql = "SELECT * FROM tasks WHERE user_id = ?"
        params: list[Any] = [user_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        if priority:
            sql += " AND priority = ?"
            params.append(priority)
        if category:
            sql += " AND category = ?"
            params.append(category)
        if search and search.strip():
            s = f"%{search.strip()}%"
            sql += (
                " AND (title LIKE ? OR description LIKE ? OR category LIKE ?"
                " OR id IN (SELECT task_id FROM task_tags WHERE tag LIKE ?))"
            )
            params.extend([s, s, s, s])
        order = "ORDER BY created_at DESC, id DESC"
        if sort_by:
            key = sort_by.strip()
            if key == "dueDate":
                order = "ORDER BY due_date IS NULL, due_date ASC, created_at DESC"
            elif key == "priority":
                order = "ORDER BY CASE priority WHEN 'high' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END, created_at DESC"
        sql += f" {order} LIMIT ?"
        params.append(limit)
        rows = conn.execute(sql, params).fetchall()
        out = [_task_row_to_dict(r) for r in rows]
        for t in out:
            _add_task_tags(conn, t)
        return out
    finally:
        conn.close()


def update_task(
    task_id: str,
    *,
    title: str | None = None,
    description: str | None = None,
    notes: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    category: str | None = None,
    due_date: str | datetime | None = _UNSET,
    tags: list[str] | None = None,
) -> dict[str, Any] | None:
    """Update task fields. Only provided fields are changed. Pass due_date=None to clear it."""
    _require_text({
        "title": title, "description": description, "notes": notes,
        "status": status, "priority": priority, "category": category,
    })
    if due_date is not _UNSET and due_date is not None and not isinstance(due_date, (str, date)):
        raise ValueError("due_date must be a string")
    if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
        raise ValueError("tags must be an array of strings")
    if title is not None and not title.strip():
        raise ValueError("Please add a title")
    if status is not None:
        _validate_status(status)
    if priority is not None:
        _validate_priority(priority)
    due = _due_date_for_storage(due_date) if due_date is not _UNSET else None
    conn = get_connection()
    try:
        row = conn.execute("SELECT id FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return None
        now = _now_iso()
        # Always touch updated_at; completed_at follows the completed status
        updates: list[str] = ["updated_at = ?"]
        params: list[Any] = [now]
        changed: list[str] = []
        if title is not None:
            updates.append("title = ?"); params.append(title.strip()); changed.append("title")
        if description is not None:
            updates.append("description = ?"); params.append(description); changed.append("description")
        if notes is not None:
            updates.append("notes = ?"); params.append(notes); changed.append("notes")
        if status is not None:
            updates.append("status = ?"); params.append(status); changed.append("status")
            updates.append("completed_at = ?"); params.append(now if status == "completed" else None)
        if priority is not None:
            updates.append("priority = ?"); params.append(priority); changed.append("priority")
        if category is not None:
            updates.append("category = ?"); params.append(category.strip() or DEFAULT_CATEGORY); changed.append("category")
        if due_date is not _UNSET:
            updates.append("due_date = ?"); params.append(due); changed.append("due_date")
        params.append(task_id)
        conn.execute(f"UPDATE tasks SET {', '.join(updates)} WHERE id = ?", params)
        if tags is not None:
            _set_tags(conn, task_id, tags)
            changed.append("tags")
        _record_history(conn, task_id, "updated", {"fields": changed})
        conn.commit()
    finally:
        conn.close()
    return get_task(task_id)


def delete_task(task_id: str) -> bool:
    """Delete a task with its tags and history. Returns True if deleted, False if not found."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT id FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return False
        conn.execute("DELETE FROM task_history WHERE task_id = ?", (task_id,))
        conn.execute("DELETE FROM task_tags WHERE task_id = ?", (task_id,))
        conn.execute("UPDATE reminders SET related_task = NULL WHERE related_task = ?", (task_id,))
        conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        conn.commit()
        logger.info("Deleted task %s", task_id)
        return True
    finally:
        conn.close()


def is_overdue(task: dict[str, Any], today: date, tz: tzinfo | None = None) -> bool:
    """Not completed and due on a day before today."""
    if task.get("status") == "completed":
        return False
    day = due_day(task.get("due_date"), tz)
    return day is not None and day < today


def list_overdue_tasks(user_id: str, today: date, tz: tzinfo | None = None) -> list[dict[str, Any]]:
    """Overdue tasks for a user, oldest due date first."""
    tasks = list_tasks(user_id, sort_by="dueDate")
    return [t for t in tasks if is_overdue(t, today, tz)]


def reschedule_task(
    task_id: str,
    *,
    reference_now: datetime,
    due_date: str | datetime | None = None,
    reason: str | None = None,
) -> dict[str, Any] | None:
    """
    Move a task to a new due date and set it back to pending.
    Without due_date, the date comes from the smart reschedule suggestion over the owner's current tasks.
    Increments reschedule_count and records a 'rescheduled' history event. Returns None if the task does not exist.
    """
    task = get_task(task_id)
    if task is None:
        return None
    if due_date is None:
        from reschedule import suggest_reschedule
        suggestion = suggest_reschedule(task_id, list_tasks(task["user_id"], limit=10000), reference_now)
        due_date = suggestion.suggested_due_date
        reason = reason or suggestion.reason
    new_due = _due_date_for_storage(due_date)
    reason = (reason or "").strip() or None
    now = _now_iso()
    conn = get_connection()
    try:
        conn.execute(
            """UPDATE tasks SET due_date = ?, status = 'pending', completed_at = NULL,
                   reschedule_count = reschedule_count + 1, last_rescheduled_at = ?,
                   reschedule_reason = ?, updated_at = ?
               WHERE id = ?""",
            (new_due, now, reason, now, task_id),
        )
        _record_history(conn, task_id, "rescheduled", {"from": task.get("due_date"), "to": new_due, "reason": reason})
        conn.commit()
        logger.info("Rescheduled task %s from %s to %s", task_id, task.get("due_date"), new_due)
    finally:
        conn.close()
    return get_task(task_id)


def get_task_history(task_id: str, event: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
    """Return history events for a task, newest first; optionally only one event type."""
    conn = get_connection()
    try:
        sql = "SELECT id, task_id, timestamp, event, payload FROM task_history WHERE task_id = ?"
        params: list[Any] = [task_id]
        if event:
            sql += " AND event = ?"
            params.append(event)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        out = []
        for r in conn.execute(sql, params).fetchall():
            d = dict(r)
            if d.get("payload"):
                try:
                    d["payload"] = json.loads(d["payload"])
                except (TypeError, json.JSONDecodeError):
                    pass
            out.append(d)
        return out
    finally:
        conn.close()


def get_reschedule_history(task_id: str) -> list[dict[str, Any]]:
    """Reschedule entries for a task: [{"date", "from", "to", "reason"}], newest first."""
    out = []
    for h in get_task_history(task_id, event="rescheduled"):
        payload = h.get("payload") if isinstance(h.get("payload"), dict) else {}
        out.append({
            "date": h["timestamp"],
            "from": payload.get("from"),
            "to": payload.get("to"),
            "reason": payload.get("reason"),
        })
    return out


def mark_missed_tasks(today: date, tz_name: str | None = None, user_id: str | None = None) -> int:
    """Flag pending / in-progress tasks due before today as missed. Returns number of tasks changed."""
    tz = get_tz(tz_name or _user_timezone())
    conn = get_connection()
    try:
        sql = f"SELECT * FROM tasks WHERE due_date IS NOT NULL AND status IN ({','.join('?' * len(_SWEEPABLE))})"
        params: list[Any] = list(_SWEEPABLE)
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        rows = conn.execute(sql, params).fetchall()
        now = _now_iso()
        n = 0
        for r in rows:
            t = dict(r)
            if not is_overdue(t, today, tz):
                continue
            conn.execute("UPDATE tasks SET status = 'missed', updated_at = ? WHERE id = ?", (now, t["id"]))
            _record_history(conn, t["id"], "missed", {"due_date": t["due_date"], "previous_status": t["status"]})
            n += 1
        conn.commit()
        if n:
            logger.info("Marked %d task(s) missed", n)
        return n
    finally:
        conn.close()


def task_analytics(user_id: str) -> dict[str, Any]:
    """Counts by status, category and priority, completion rate and reschedule rate (percentages)."""
    tasks = list_tasks(user_id, limit=100000)
    total = len(tasks)
    by_status = {s: 0 for s in STATUSES}
    by_category: dict[str, int] = {}
    by_priority = {p: 0 for p in PRIORITIES}
    rescheduled = 0
    for t in tasks:
        by_status[t["status"]] = by_status.get(t["status"], 0) + 1
        cat = t.get("category") or "uncategorized"
        by_category[cat] = by_category.get(cat, 0) + 1
        if t.get("priority") in by_priority:
            by_priority[t["priority"]] += 1
        if (t.get("reschedule_count") or 0) > 0:
            rescheduled += 1
    return {
        "totalTasks": total,
        "completedTasks": by_status["completed"],
        "pendingTasks": by_status["pending"],
        "inProgressTasks": by_status["in-progress"],
        "missedTasks": by_status["missed"],
        "completionRate": (by_status["completed"] / total) * 100 if total else 0,
        "tasksByCategory": by_category,
        "tasksByPriority": by_priority,
        "rescheduleRate": (rescheduled / total) * 100 if total else 0,
    }
