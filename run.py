#!/usr/bin/env python3
"""
Main entrypoint: start the missed-task sweeper and the REST API.
Run with: python run.py
Or run the API only (no sweeper): python -m web_app
"""
from __future__ import annotations

import atexit
import logging
import sqlite3
import sys
from pathlib import Path

# Ensure app loggers (intellitask.api, task_service) emit to the same stream as uvicorn
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)

# Project root
ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(ROOT))

from config import load as load_config

logger = logging.getLogger("intellitask")

# Bootstrap SQLite database on first run
try:
    from task_service import ensure_db
    ensure_db()
except sqlite3.Error as e:
    logger.warning("Database bootstrap failed: %s", e)


def main() -> None:
    # Flag overdue tasks as missed in the background (runs in this process)
    from missed_task_sweeper import start_missed_task_sweeper, stop_missed_task_sweeper
    if start_missed_task_sweeper():
        atexit.register(stop_missed_task_sweeper)

    # Run web app (blocking)
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
