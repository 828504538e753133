"""Configuration load/save for IntelliTask."""
from __future__ import annotations

import json
import secrets
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

CONFIG_PATH = Path(__file__).resolve().parent / "config.json"


class AppConfig(BaseModel):
    """Persisted application configuration."""

    debug: bool = Field(default=False, description="Log every API request and response status")
    web_ui_port: int = Field(default=5000, ge=1, le=65535, description="Port for the REST API")
    database_path: str = Field(default="", description="Path to SQLite database file; empty = project dir / intellitask.db")
    user_timezone: str = Field(default="UTC", description="IANA timezone for 'today' (reschedule window, overdue checks, relative dates).")
    jwt_secret: str = Field(default="", description="HS256 signing key for bearer tokens; generated on first use when empty")
    token_expiry_days: int = Field(default=30, ge=1, description="Bearer token lifetime in days")
    missed_sweep_interval_seconds: int = Field(default=3600, ge=0, description="How often overdue tasks are flagged missed; 0 disables the sweeper")

    def to_save_dict(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def load(cls) -> "AppConfig":
        if not CONFIG_PATH.exists():
            return cls()
        raw = json.loads(CONFIG_PATH.read_text())
        return cls.model_validate(raw)

    def save(self) -> None:
        CONFIG_PATH.write_text(json.dumps(self.to_save_dict(), indent=2))


def load() -> AppConfig:
    """Load config from disk. Convenience alias for AppConfig.load()."""
    return AppConfig.load()


def ensure_jwt_secret() -> str:
    """Return the token signing key, generating and saving one if the config has none."""
    c = load()
    if c.jwt_secret:
        return c.jwt_secret
    c.jwt_secret = secrets.token_urlsafe(48)
    c.save()
    return c.jwt_secret
