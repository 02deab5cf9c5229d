"""
Store configuration loaded from environment variables.
"""

import os

from pydantic import BaseModel, Field, field_validator


DEFAULT_DATABASE_PATH = "todos.db"
DEFAULT_BUSY_TIMEOUT_MS = 5000


class StoreSettings(BaseModel):
    """Settings for the SQLite backing store."""

    database_path: str = Field(DEFAULT_DATABASE_PATH, description="Path to the SQLite file")
    busy_timeout_ms: int = Field(
        DEFAULT_BUSY_TIMEOUT_MS, ge=0, description="SQLite busy_timeout for lock contention"
    )

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v):
        if not v or not v.strip():
            raise ValueError("database_path must not be empty")
        return v.strip()

    @classmethod
    def from_env(cls) -> "StoreSettings":
        """Build settings from TODO_DATABASE_PATH and TODO_BUSY_TIMEOUT_MS."""
        return cls(
            database_path=os.getenv("TODO_DATABASE_PATH", DEFAULT_DATABASE_PATH),
            busy_timeout_ms=int(os.getenv("TODO_BUSY_TIMEOUT_MS", str(DEFAULT_BUSY_TIMEOUT_MS))),
        )
