"""
Task assistant: turns chat phrases into reschedule suggestions, reschedules and progress summaries.
Rule-based (no model call). Reads tasks through task_service and writes only via task_service.reschedule_task.
"""
from __future__ import annotations

import logging
import math
import re
import sqlite3
from datetime import datetime
from typing import Any

import task_service
from date_utils import format_short_datetime, parse_datetime
from reschedule import suggest_reschedule

logger = logging.getLogger("assistant")

GREETING = (
    "Hello! I'm your AI assistant. I can help you reschedule missed tasks or answer questions "
    "about your tasks. How can I help you today?"
)
HELP_TEXT = (
    "I can help you reschedule missed tasks or check your task progress. Try asking me something like "
    "'reschedule my missed tasks' or 'what's my task status?'"
)

# Overdue tasks listed with a suggestion each; above this only the count is given
SUMMARY_MAX_TASKS = 3

_RESCHEDULE_ONE_RE = re.compile(r"reschedule\s+(?:task\s+)?(\d+\b|\"[^\"]+\"|'[^']+'|[a-z0-9 ]+)")
_SUMMARY_WORDS = ("reschedule", "missed", "overdue")
_PROGRESS_WORDS = ("status", "progress", "how am i doing")
# Dropped from unquoted title text before matching it against overdue titles
_GENERIC_WORDS = frozenset({
    "a", "an", "the", "my", "your", "our", "all", "any", "some", "one", "ones", "i", "you", "me", "we",
    "missed", "overdue", "late", "task", "tasks", "them", "these", "those", "it", "that", "which",
    "is", "are", "was", "were", "have", "has", "please", "everything", "for", "to", "of", "can", "could",
})
# Shorter names never select a task to write
MIN_IDENTIFIER_LEN = 3

_WORD_RE = re.compile(r"[a-z0-9]+")


def _format_due(task: dict[str, Any], reference_now: datetime) -> str:
    dt = parse_datetime(task.get("due_date"), reference_now.tzinfo)
    return format_short_datetime(dt) if dt else str(task.get("due_date") or "")


def _title(task: dict[str, Any]) -> str:
    return (task.get("title") or "").lower()


def _match_quoted(name: str, overdue: list[dict[str, Any]]) -> dict[str, Any] | None:
    """First overdue task whose title contains the quoted name."""
    if len(name) < MIN_IDENTIFIER_LEN:
        return None
    return next((t for t in overdue if name in _title(t)), None)


def _match_title_words(raw: str, overdue: list[dict[str, Any]]) -> dict[str, Any] | None:
    """
    First overdue task whose title is, or starts with, the unquoted words on word boundaries.
    Generic words are dropped from both sides first; None when nothing specific is left.
    """
    words = [w for w in _WORD_RE.findall(raw) if w not in _GENERIC_WORDS]
    if len(" ".join(words)) < MIN_IDENTIFIER_LEN:
        return None
    for t in overdue:
        title_words = [w for w in _WORD_RE.findall(_title(t)) if w not in _GENERIC_WORDS]
        if title_words[:len(words)] == words:
            return t
    return None


def _overdue_summary(overdue: list[dict[str, Any]], all_tasks: list[dict[str, Any]], reference_now: datetime) -> str:
    n = len(overdue)
    response = f"You have {n} overdue task{'s' if n > 1 else ''}. "
    if n > SUMMARY_MAX_TASKS:
        return response + "Would you like me to suggest new times for them? Let me know which task you want to reschedule first."
    response += "Here are your overdue tasks:\n\n"
    for i, task in enumerate(overdue, start=1):
        suggestion = suggest_reschedule(task["id"], all_tasks, reference_now)
        response += f"{i}. \"{task['title']}\" (due {_format_due(task, reference_now)})\n"
        response += (
            f"   Suggestion: Reschedule to {format_short_datetime(suggestion.suggested_due_date)}"
            f" - {suggestion.reason}\n\n"
        )
    return response + "Would you like me to automatically reschedule any of these tasks? Just let me know which one by number or title."


def _reschedule_one(task: dict[str, Any], all_tasks: list[dict[str, Any]], reference_now: datetime) -> tuple[str, bool]:
    suggestion = suggest_reschedule(task["id"], all_tasks, reference_now)
    try:
        updated = task_service.reschedule_task(
            task["id"],
            reference_now=reference_now,
            due_date=suggestion.suggested_due_date,
            reason=suggestion.reason,
        )
    except (sqlite3.Error, ValueError) as e:
        logger.exception("Reschedule of task %s failed", task["id"])
        return (f"Error rescheduling task: {e}", False)
    if updated is None:
        return ("I couldn't find that task. Please try again.", False)
    logger.info("Assistant rescheduled task %s to %s", task["id"], suggestion.suggested_due_date.isoformat())
    return (
        f"I've rescheduled \"{task['title']}\" to {format_short_datetime(suggestion.suggested_due_date)}. {suggestion.reason}",
        True,
    )


def _progress(all_tasks: list[dict[str, Any]]) -> str:
    total = len(all_tasks)
    completed = sum(1 for t in all_tasks if t.get("status") == "completed")
    rate = math.floor(completed / total * 100 + 0.5) if total else 0
    lines = [
        "Here's your current progress:",
        "",
        f"Total Tasks: {total}",
        f"Completed: {completed}",
        f"Pending: {total - completed}",
        f"Completion Rate: {rate}%",
        "",
    ]
    if rate >= 75:
        lines.append("You're doing great! Keep up the good work!")
    elif rate >= 50:
        lines.append("You're making good progress. Keep going!")
    else:
        lines.append("You still have tasks to complete. Is there any way I can help you prioritize?")
    return "\n".join(lines)


def run_assistant(message: str, *, user_id: str, reference_now: datetime) -> tuple[str, bool]:
    """
    Answer one chat message for user_id. Returns (response_text, tool_used).
    tool_used is True only when a task was rescheduled, which needs a task number, a quoted title,
    or words that name an overdue title. reference_now is the current time in the user's timezone.
    """
    text = (message or "").strip().lower()
    if not text:
        return (HELP_TEXT, False)
    all_tasks = task_service.list_tasks(user_id, limit=10000)
    overdue = task_service.list_overdue_tasks(user_id, reference_now.date(), reference_now.tzinfo)
    logger.info("Assistant message user=%s overdue=%d text=%r", user_id, len(overdue), text[:200])

    m = _RESCHEDULE_ONE_RE.search(text)
    if m:
        raw = m.group(1).strip()
        if raw.isdigit():
            index = int(raw) - 1
            if 0 <= index < len(overdue):
                return _reschedule_one(overdue[index], all_tasks, reference_now)
            return (f"I couldn't find task number {int(raw)}. Please try again with a valid task number.", False)
        if raw[:1] in ("'", '"'):
            name = raw[1:-1].strip()
            match = _match_quoted(name, overdue)
            if match is None:
                return (f"I couldn't find a task with \"{name}\" in the title. Please try again.", False)
            return _reschedule_one(match, all_tasks, reference_now)
        match = _match_title_words(raw, overdue)
        if match is not None:
            return _reschedule_one(match, all_tasks, reference_now)

    if any(w in text for w in _SUMMARY_WORDS):
        if not overdue:
            return ("You don't have any overdue tasks that need rescheduling. Good job staying on top of things!", False)
        return (_overdue_summary(overdue, all_tasks, reference_now), False)

    if any(w in text for w in _PROGRESS_WORDS):
        return (_progress(all_tasks), False)

    return (HELP_TEXT, False)
