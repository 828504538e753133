"""Stored analytics snapshots: one row per user, written by the client and read back for reports."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from database import get_connection


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _row_to_dict(row: Any) -> dict[str, Any]:
    d = dict(row)
    raw = d.get("tasks_by_category")
    d["tasks_by_category"] = json.loads(raw) if raw else {}
    return d


def get_analytics(user_id: str) -> dict[str, Any] | None:
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM analytics WHERE user_id = ?", (user_id,)).fetchone()
        return _row_to_dict(row) if row else None
    finally:
        conn.close()


def upsert_analytics(
    user_id: str,
    total_tasks: int,
    completed_tasks: int,
    tasks_by_category: dict[str, int] | None = None,
) -> dict[str, Any]:
    """Create or replace the user's snapshot. completion_rate is derived: completed / total * 100, 0 when total is 0."""
    if total_tasks < 0 or completed_tasks < 0:
        raise ValueError("task counts cannot be negative")
    completion_rate = 0 if total_tasks == 0 else (completed_tasks / total_tasks) * 100
    now = _now_iso()
    conn = get_connection()
    try:
        conn.execute(
            """INSERT INTO analytics (user_id, total_tasks, completed_tasks, completion_rate, tasks_by_category, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   total_tasks = excluded.total_tasks,
                   completed_tasks = excluded.completed_tasks,
                   completion_rate = excluded.completion_rate,
                   tasks_by_category = excluded.tasks_by_category,
                   updated_at = excluded.updated_at""",
            (user_id, total_tasks, completed_tasks, completion_rate, json.dumps(tasks_by_category or {}), now, now),
        )
        conn.commit()
    finally:
        conn.close()
    return get_analytics(user_id)
