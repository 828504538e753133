"""REST API for IntelliTask: users, tasks, reminders, analytics, smart reschedule and the task assistant."""
from __future__ import annotations

import logging
import sqlite3
import sys
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from auth import AuthError, bearer_token, create_token, decode_token
from config import ensure_jwt_secret, load as load_config
from date_utils import now_in_tz

app = FastAPI(title="IntelliTask API", version="1.0")
logger = logging.getLogger("intellitask.api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """When config.debug is True, log API request method, path and response status."""
    debug = load_config().debug
    if debug:
        qs = request.url.query
        logger.warning("[API] %s %s%s", request.method, request.url.path, "?" + qs if qs else "")
    response = await call_next(request)
    if debug:
        logger.warning("[API] %s %s -> %s", request.method, request.url.path, response.status_code)
    return response


def _reference_now():
    """Current time in the configured user timezone; the 'today' for reschedule and overdue checks."""
    return now_in_tz(load_config().user_timezone)


def _current_user(authorization: str | None = Header(None)) -> dict[str, Any]:
    """Dependency: resolve the bearer token to a user. 401 if missing, invalid or the user is gone."""
    from user_service import get_user
    try:
        user_id = decode_token(bearer_token(authorization), ensure_jwt_secret())
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    user = get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authorized")
    return user


def _issue_token(user: dict[str, Any]) -> dict[str, Any]:
    c = load_config()
    return {**user, "token": create_token(user["id"], ensure_jwt_secret(), c.token_expiry_days)}


# --- API schemas ---


class RegisterBody(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""


class LoginBody(BaseModel):
    email: str = ""
    password: str = ""


class TaskCreate(BaseModel):
    title: str = ""
    description: str | None = None
    notes: str | None = None
    due_date: str | None = None
    priority: str | None = None
    status: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    created_by_voice: bool = False


class RescheduleBody(BaseModel):
    """Manual reschedule when due_date is set; otherwise the smart suggestion is used."""
    due_date: str | None = None
    reason: str | None = None


class ReminderCreate(BaseModel):
    title: str | None = None
    description: str | None = None
    date: str | None = None
    time: str | None = None
    type: str | None = None
    frequency: str | None = None
    related_task: str | None = None


class AnalyticsBody(BaseModel):
    total_tasks: int = Field(0, ge=0)
    completed_tasks: int = Field(0, ge=0)
    tasks_by_category: dict[str, int] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    message: str


# --- Base ---


@app.get("/")
def index() -> dict[str, str]:
    return {"message": "Welcome to IntelliTask API"}


# --- Users ---


@app.post("/api/users", status_code=201)
def api_register_user(body: RegisterBody):
    from user_service import register_user
    try:
        user = register_user(body.name, body.email, body.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _issue_token(user)


@app.post("/api/users/login")
def api_login_user(body: LoginBody):
    from user_service import authenticate
    user = authenticate(body.email, body.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _issue_token(user)


@app.get("/api/users/me")
def api_get_me(user: dict = Depends(_current_user)):
    return user


@app.put("/api/users/me")
def api_update_me(body: dict, user: dict = Depends(_current_user)):
    from user_service import update_user
    try:
        updated = update_user(
            user["id"],
            name=body.get("name"),
            email=body.get("email"),
            password=body.get("password"),
            preferences=body.get("preferences") if isinstance(body.get("preferences"), dict) else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if updated is None:
        raise HTTPException(status_code=404, detail="User not found")
    return updated


# --- Tasks ---


def _owned_task(task_id: str, user: dict[str, Any]) -> dict[str, Any]:
    """Task by id if it belongs to user. 404 if missing, 401 if it belongs to someone else."""
    from task_service import get_task
    t = get_task(task_id)
    if t is None:
        raise HTTPException(status_code=404, detail="Task not found")
    if t["user_id"] != user["id"]:
        raise HTTPException(status_code=401, detail="Not authorized")
    return t


@app.get("/api/tasks")
def api_list_tasks(
    status: str | None = None,
    priority: str | None = None,
    category: str | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    user: dict = Depends(_current_user),
):
    from task_service import list_tasks
    try:
        return list_tasks(
            user["id"], status=status, priority=priority, category=category, search=search,
            sort_by=sort_by or user["preferences"].get("default_task_sort"),
        )
    except sqlite3.Error as e:
        logger.exception("api_list_tasks failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/tasks", status_code=201)
def api_create_task(body: TaskCreate, user: dict = Depends(_current_user)):
    from task_service import create_task
    try:
        return create_task(
            user["id"],
            body.title,
            description=body.description,
            notes=body.notes,
            due_date=body.due_date,
            priority=body.priority,
            status=body.status,
            category=body.category,
            tags=body.tags,
            created_by_voice=body.created_by_voice,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/tasks/analytics")
def api_task_analytics(user: dict = Depends(_current_user)):
    from task_service import task_analytics
    return task_analytics(user["id"])


@app.get("/api/tasks/overdue")
def api_overdue_tasks(user: dict = Depends(_current_user)):
    from task_service import list_overdue_tasks
    now = _reference_now()
    return list_overdue_tasks(user["id"], now.date(), now.tzinfo)


@app.post("/api/tasks/mark-missed")
def api_mark_missed(user: dict = Depends(_current_user)):
    """Flag the caller's overdue pending / in-progress tasks as missed. Returns count updated."""
    from task_service import mark_missed_tasks
    c = load_config()
    n = mark_missed_tasks(_reference_now().date(), c.user_timezone, user_id=user["id"])
    return {"updated": n}


@app.get("/api/tasks/{task_id}")
def api_get_task(task_id: str, user: dict = Depends(_current_user)):
    return _owned_task(task_id, user)


@app.put("/api/tasks/{task_id}")
def api_update_task(task_id: str, body: dict, user: dict = Depends(_current_user)):
    from task_service import _UNSET, update_task
    _owned_task(task_id, user)
    tags = body.get("tags")
    if tags is not None and not isinstance(tags, list):
        raise HTTPException(status_code=400, detail="tags must be an array")
    try:
        updated = update_task(
            task_id,
            title=body.get("title"),
            description=body.get("description"),
            notes=body.get("notes"),
            status=body.get("status"),
            priority=body.get("priority"),
            category=body.get("category"),
            due_date=(body.get("due_date") or None) if "due_date" in body else _UNSET,
            tags=[str(t) for t in tags] if tags is not None else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if updated is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return updated


@app.delete("/api/tasks/{task_id}")
def api_delete_task(task_id: str, user: dict = Depends(_current_user)):
    from task_service import delete_task
    _owned_task(task_id, user)
    if not delete_task(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"id": task_id}


@app.get("/api/tasks/{task_id}/reschedule-suggestion")
def api_reschedule_suggestion(task_id: str, user: dict = Depends(_current_user)):
    """Smart reschedule suggestion for a task; nothing is saved."""
    from reschedule import suggest_reschedule
    from task_service import list_tasks
    _owned_task(task_id, user)
    suggestion = suggest_reschedule(task_id, list_tasks(user["id"], limit=10000), _reference_now())
    return suggestion.model_dump(mode="json")


@app.post("/api/tasks/{task_id}/reschedule")
def api_reschedule_task(task_id: str, body: RescheduleBody | None = None, user: dict = Depends(_current_user)):
    """Move a task to body.due_date, or to the smart suggestion when no date is given, and set it pending."""
    from task_service import reschedule_task
    _owned_task(task_id, user)
    body = body or RescheduleBody()
    try:
        updated = reschedule_task(task_id, reference_now=_reference_now(), due_date=body.due_date, reason=body.reason)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if updated is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return updated


@app.get("/api/tasks/{task_id}/history")
def api_reschedule_history(task_id: str, user: dict = Depends(_current_user)):
    from task_service import get_reschedule_history
    _owned_task(task_id, user)
    return get_reschedule_history(task_id)


# --- Reminders ---


def _owned_reminder(reminder_id: str, user: dict[str, Any]) -> dict[str, Any]:
    from reminder_service import get_reminder
    r = get_reminder(reminder_id)
    if r is None:
        raise HTTPException(status_code=404, detail="Reminder not found")
    if r["user_id"] != user["id"]:
        raise HTTPException(status_code=401, detail="Not authorized")
    return r


@app.get("/api/reminders")
def api_list_reminders(user: dict = Depends(_current_user)):
    from reminder_service import list_reminders
    try:
        return list_reminders(user["id"])
    except sqlite3.Error as e:
        logger.exception("api_list_reminders failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/reminders", status_code=201)
def api_create_reminder(body: ReminderCreate, user: dict = Depends(_current_user)):
    from reminder_service import create_reminder
    if body.related_task:
        _owned_task(body.related_task, user)
    try:
        return create_reminder(
            user["id"],
            body.title,
            body.date,
            body.time,
            description=body.description,
            type=body.type,
            frequency=body.frequency,
            related_task=body.related_task,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/reminders/analytics")
def api_reminder_analytics(user: dict = Depends(_current_user)):
    from reminder_service import reminder_analytics
    return reminder_analytics(user["id"], _reference_now())


@app.get("/api/reminders/{reminder_id}")
def api_get_reminder(reminder_id: str, user: dict = Depends(_current_user)):
    return _owned_reminder(reminder_id, user)


@app.put("/api/reminders/{reminder_id}")
def api_update_reminder(reminder_id: str, body: dict, user: dict = Depends(_current_user)):
    from reminder_service import update_reminder
    _owned_reminder(reminder_id, user)
    if isinstance(body.get("related_task"), str) and body["related_task"]:
        _owned_task(body["related_task"], user)
    try:
        updated = update_reminder(reminder_id, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if updated is None:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return updated


@app.delete("/api/reminders/{reminder_id}")
def api_delete_reminder(reminder_id: str, user: dict = Depends(_current_user)):
    from reminder_service import delete_reminder
    _owned_reminder(reminder_id, user)
    if not delete_reminder(reminder_id):
        raise HTTPException(status_code=404, detail="Reminder not found")
    return {"id": reminder_id}


# --- Analytics snapshots ---


@app.get("/api/analytics/{user_id}")
def api_get_analytics(user_id: str, user: dict = Depends(_current_user)):
    from analytics_service import get_analytics
    if user_id != user["id"]:
        raise HTTPException(status_code=401, detail="Not authorized")
    data = get_analytics(user_id)
    if data is None:
        raise HTTPException(status_code=404, detail="Analytics not found")
    return data


@app.post("/api/analytics")
def api_upsert_analytics(body: AnalyticsBody, user: dict = Depends(_current_user)):
    from analytics_service import upsert_analytics
    try:
        return upsert_analytics(user["id"], body.total_tasks, body.completed_tasks, body.tasks_by_category)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# --- Assistant ---


@app.get("/api/assistant")
def api_assistant_greeting(user: dict = Depends(_current_user)):
    from assistant import GREETING
    return {"response": GREETING}


@app.post("/api/assistant/chat")
def api_assistant_chat(body: ChatRequest, user: dict = Depends(_current_user)):
    from assistant import run_assistant
    try:
        response_text, tool_used = run_assistant(body.message, user_id=user["id"], reference_now=_reference_now())
    except sqlite3.Error as e:
        logger.exception("api_assistant_chat failed")
        raise HTTPException(status_code=500, detail=str(e))
    return {"response": response_text, "tool_used": tool_used}


def main() -> None:
    import uvicorn
    config = load_config()
    uvicorn.run(
        "web_app:app",
        host="0.0.0.0",
        port=config.web_ui_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
