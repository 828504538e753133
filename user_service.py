"""
User service: registration, credential checks, profile and preferences.
Password hashes never leave this module; public user dicts omit them.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError
from ulid import ULID
from werkzeug.security import check_password_hash, generate_password_hash

from database import get_connection

logger = logging.getLogger("user_service")


class NotificationSettings(BaseModel):
    email: bool = True
    push: bool = True
    silent: bool = False
    silent_hours_start: int | None = Field(default=None, ge=0, le=23)
    silent_hours_end: int | None = Field(default=None, ge=0, le=23)


class UserPreferences(BaseModel):
    """Per-user UI and notification preferences."""

    theme: Literal["light", "dark", "system"] = "system"
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)
    default_task_view: Literal["list", "calendar", "kanban"] = "list"
    default_task_sort: Literal["dueDate", "priority", "createdAt"] = "createdAt"


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _public_user(row: Any) -> dict[str, Any]:
    d = dict(row)
    d.pop("password_hash", None)
    d["is_admin"] = bool(d.get("is_admin"))
    raw = d.get("preferences")
    prefs = json.loads(raw) if raw else {}
    d["preferences"] = UserPreferences.model_validate(prefs).model_dump()
    return d


def _merge_preferences(current: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge plus one level for notification_settings. Raises ValueError on invalid values."""
    merged = dict(current)
    for key, value in patch.items():
        if key == "notification_settings" and isinstance(value, dict):
            merged[key] = {**(merged.get(key) or {}), **value}
        else:
            merged[key] = value
    try:
        return UserPreferences.model_validate(merged).model_dump()
    except ValidationError as e:
        raise ValueError(f"Invalid preferences: {e.errors()[0].get('msg')}") from e


def register_user(name: str | None, email: str | None, password: str | None) -> dict[str, Any]:
    """Create a user. Raises ValueError if a field is missing or the email is taken."""
    name = (name or "").strip()
    email = _normalize_email(email)
    if not name or not email or not password:
        raise ValueError("Please include all fields")
    conn = get_connection()
    try:
        if conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone():
            raise ValueError("User already exists")
        uid = str(ULID())
        now = _now_iso()
        conn.execute(
            """INSERT INTO users (id, name, email, password_hash, is_admin, preferences, created_at, updated_at)
               VALUES (?, ?, ?, ?, 0, ?, ?, ?)""",
            (uid, name, email, generate_password_hash(password), json.dumps(UserPreferences().model_dump()), now, now),
        )
        conn.commit()
        logger.info("Registered user %s", uid)
    finally:
        conn.close()
    return get_user(uid)


def authenticate(email: str | None, password: str | None) -> dict[str, Any] | None:
    """Return the user if email and password match, else None."""
    if not email or not password:
        return None
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM users WHERE email = ?", (_normalize_email(email),)).fetchone()
    finally:
        conn.close()
    if not row or not check_password_hash(row["password_hash"], password):
        return None
    return _public_user(row)


def get_user(user_id: str) -> dict[str, Any] | None:
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _public_user(row) if row else None
    finally:
        conn.close()


def update_user(
    user_id: str,
    *,
    name: str | None = None,
    email: str | None = None,
    password: str | None = None,
    preferences: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Update profile fields; empty values leave the field unchanged. preferences is merged into the current ones."""
    for field, value in (("name", name), ("email", email), ("password", password)):
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{field} must be a string")
    current = get_user(user_id)
    if current is None:
        return None
    updates = ["updated_at = ?"]
    params: list[Any] = [_now_iso()]
    if name and name.strip():
        updates.append("name = ?"); params.append(name.strip())
    new_email = _normalize_email(email)
    conn = get_connection()
    try:
        if new_email and new_email != current["email"]:
            if conn.execute("SELECT 1 FROM users WHERE email = ? AND id != ?", (new_email, user_id)).fetchone():
                raise ValueError("Email already in use")
            updates.append("email = ?"); params.append(new_email)
        if password:
            updates.append("password_hash = ?"); params.append(generate_password_hash(password))
        if preferences:
            merged = _merge_preferences(current["preferences"], preferences)
            updates.append("preferences = ?"); params.append(json.dumps(merged))
        params.append(user_id)
        conn.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", params)
        conn.commit()
    finally:
        conn.close()
    return get_user(user_id)
