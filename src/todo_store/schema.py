"""
Schema definition for the todos table.

The layout is the persisted-state contract shared with files written by the
legacy desktop client, so column names and types must stay as-is.
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

TABLE_NAME = "todos"

COLUMNS = (
    "id",
    "title",
    "description",
    "completed",
    "due_date",
    "created_at",
    "updated_at",
)

CREATE_TODOS_TABLE = """
    CREATE TABLE IF NOT EXISTS todos (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        completed INTEGER DEFAULT 0,
        due_date TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
"""

INDEXES = {
    "idx_todos_completed": "CREATE INDEX IF NOT EXISTS idx_todos_completed ON todos (completed)",
    "idx_todos_due_date": "CREATE INDEX IF NOT EXISTS idx_todos_due_date ON todos (due_date)",
    "idx_todos_created_at": "CREATE INDEX IF NOT EXISTS idx_todos_created_at ON todos (created_at)",
}


def create_schema(connection: sqlite3.Connection) -> None:
    """
    Ensure the todos table and its secondary indexes exist.

    Safe to run against an existing file. Files created by the legacy
    desktop client have no updated_at column; it is added in place.

    Args:
        connection: Open connection in autocommit mode
    """
    cursor = connection.cursor()
    cursor.execute(CREATE_TODOS_TABLE)

    cursor.execute(f"PRAGMA table_info({TABLE_NAME})")
    existing = {row[1] for row in cursor.fetchall()}
    if "updated_at" not in existing:
        cursor.execute(f"ALTER TABLE {TABLE_NAME} ADD COLUMN updated_at TEXT")
        logger.info(f"Added missing updated_at column to {TABLE_NAME}")

    for statement in INDEXES.values():
        cursor.execute(statement)
