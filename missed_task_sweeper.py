"""
Missed-task sweeper: background thread that flags overdue pending / in-progress tasks as missed.
Runs every missed_sweep_interval_seconds in user_timezone. Start it from the main process (run.py).
"""
from __future__ import annotations

import logging
import sqlite3
import threading

logger = logging.getLogger(__name__)

_sweeper_thread: threading.Thread | None = None
_stop_event: threading.Event | None = None


def sweep_once() -> int:
    """Mark overdue tasks missed for all users as of today in the configured timezone. Returns tasks changed."""
    from config import load as load_config
    from date_utils import today_in_tz
    from task_service import mark_missed_tasks

    tz_name = load_config().user_timezone or "UTC"
    return mark_missed_tasks(today_in_tz(tz_name), tz_name)


def _sweeper_loop(stop: threading.Event, interval: float) -> None:
    while not stop.is_set():
        try:
            sweep_once()
        except (sqlite3.Error, ValueError) as e:
            logger.warning("Missed-task sweep failed: %s", e)
        stop.wait(timeout=interval)


def start_missed_task_sweeper(interval_seconds: float | None = None) -> bool:
    """Start the background sweep thread. Idempotent. Returns False when disabled (interval 0)."""
    global _sweeper_thread, _stop_event
    if _sweeper_thread is not None and _sweeper_thread.is_alive():
        return True
    if interval_seconds is None:
        from config import load as load_config
        interval_seconds = load_config().missed_sweep_interval_seconds
    if not interval_seconds or interval_seconds <= 0:
        logger.info("Missed-task sweeper disabled")
        return False
    _stop_event = threading.Event()
    _sweeper_thread = threading.Thread(
        target=_sweeper_loop, args=(_stop_event, float(interval_seconds)), daemon=True, name="missed-task-sweeper"
    )
    _sweeper_thread.start()
    logger.info("Missed-task sweeper started (every %ss)", interval_seconds)
    return True


def stop_missed_task_sweeper(timeout: float | None = 5.0) -> None:
    """Signal the sweep thread to stop and wait for it."""
    global _sweeper_thread, _stop_event
    if _stop_event:
        _stop_event.set()
    if _sweeper_thread is not None:
        _sweeper_thread.join(timeout=timeout)
    _sweeper_thread = None
    _stop_event = None
