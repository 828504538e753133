# tests/test_missed_task_sweeper.py

from __future__ import annotations

import sqlite3
import threading

import pytest

import missed_task_sweeper
import task_service


@pytest.fixture(autouse=True)
def stop_sweeper():
    yield
    missed_task_sweeper.stop_missed_task_sweeper()


def test_sweep_once_marks_overdue(user) -> None:
    old = task_service.create_task(user["id"], "Ancient", due_date="2000-01-01")
    future = task_service.create_task(user["id"], "Far future", due_date="2999-01-01")

    assert missed_task_sweeper.sweep_once() == 1
    assert task_service.get_task(old["id"])["status"] == "missed"
    assert task_service.get_task(future["id"])["status"] == "pending"


def test_disabled_when_interval_zero() -> None:
    assert missed_task_sweeper.start_missed_task_sweeper(0) is False
    assert missed_task_sweeper._sweeper_thread is None


def test_start_is_idempotent_and_stop_joins() -> None:
    assert missed_task_sweeper.start_missed_task_sweeper(3600) is True
    thread = missed_task_sweeper._sweeper_thread
    assert thread is not None and thread.is_alive()

    assert missed_task_sweeper.start_missed_task_sweeper(3600) is True
    assert missed_task_sweeper._sweeper_thread is thread

    missed_task_sweeper.stop_missed_task_sweeper()
    assert not thread.is_alive()
    assert missed_task_sweeper._sweeper_thread is None


def test_loop_survives_failed_sweeps(monkeypatch) -> None:
    stop = threading.Event()
    calls: list[int] = []

    def failing_sweep() -> int:
        calls.append(1)
        if len(calls) >= 2:
            stop.set()
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(missed_task_sweeper, "sweep_once", failing_sweep)

    missed_task_sweeper._sweeper_loop(stop, 0)

    assert len(calls) == 2
