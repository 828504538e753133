# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

import config
import database

# Wednesday, 10:00 UTC; every time-dependent test is pinned to this instant
REFERENCE_NOW = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)

TEST_SECRET = "test-signing-key-" * 4


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Point config.json and the SQLite file at tmp_path.

    Every module resolves both paths at call time, so patching the two
    module globals is enough to keep tests off the project directory.
    """
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "config.json")
    monkeypatch.setattr(database, "_DEFAULT_DB_PATH", tmp_path / "test.db")
    return tmp_path


@pytest.fixture()
def reference_now() -> datetime:
    return REFERENCE_NOW


@pytest.fixture()
def user() -> dict:
    from user_service import register_user

    return register_user("Ada", "ada@example.com", "correct horse")


@pytest.fixture()
def other_user() -> dict:
    from user_service import register_user

    return register_user("Grace", "grace@example.com", "battery staple")
