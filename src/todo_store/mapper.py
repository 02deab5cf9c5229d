"""
Row <-> Task conversion.

Timestamps are stored as fixed-width ISO-8601 text (microsecond precision,
no offset) so that lexical order in SQLite matches chronological order.
Decoding also accepts the shorter forms written by the legacy desktop
client (minutes only, seconds only, nanosecond fractions).
"""

import re
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .errors import DecodeError, ValidationError
from .models import Task, to_local_naive

_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[T ](\d{2}):(\d{2})(?::(\d{2})(?:\.(\d{1,9}))?)?$"
)


def encode_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Encode a datetime as sortable ISO-8601 text; None stays None."""
    if value is None:
        return None
    return to_local_naive(value).isoformat(timespec="microseconds")


def decode_timestamp(text: Optional[str], column: str = "timestamp") -> Optional[datetime]:
    """
    Decode ISO-8601 text written by encode_timestamp or the legacy desktop client.

    Args:
        text: Column value, None for SQL NULL
        column: Column name used in the error message

    Returns:
        Naive datetime, or None when text is None

    Raises:
        DecodeError: If text is not a recognised ISO-8601 local date-time
    """
    if text is None:
        return None
    if not isinstance(text, str):
        raise DecodeError(f"Column {column} holds {type(text).__name__}, expected ISO-8601 text", column)

    match = _TIMESTAMP_RE.match(text.strip())
    if not match:
        raise DecodeError(f"Malformed timestamp in column {column}: {text!r}", column)

    year, month, day, hour, minute, second, fraction = match.groups()
    # Fractions beyond microseconds are truncated
    microsecond = int((fraction or "0").ljust(6, "0")[:6])
    try:
        return datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second or 0), microsecond,
        )
    except ValueError as e:
        raise DecodeError(f"Invalid timestamp in column {column}: {text!r} ({e})", column) from e


def _decode_completed(value: Any) -> bool:
    if value is None:
        return False
    if value in (0, 1):
        return bool(value)
    raise DecodeError(f"Column completed holds {value!r}, expected 0 or 1", "completed")


def task_to_row(task: Task) -> Dict[str, Any]:
    """Encode a Task into column values keyed by column name."""
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "completed": 1 if task.completed else 0,
        "due_date": encode_timestamp(task.due_date),
        "created_at": encode_timestamp(task.created_at),
        "updated_at": encode_timestamp(task.updated_at),
    }


def row_to_task(row: Mapping[str, Any]) -> Task:
    """
    Decode a todos row into a Task.

    Raises:
        DecodeError: If any column violates the expected encoding
    """
    created_at = decode_timestamp(row["created_at"], "created_at")
    if created_at is None:
        raise DecodeError(f"Row {row['id']} has no created_at", "created_at")

    try:
        return Task.from_store(
            id=int(row["id"]),
            title=row["title"],
            description=row["description"],
            completed=_decode_completed(row["completed"]),
            due_date=decode_timestamp(row["due_date"], "due_date"),
            created_at=created_at,
            updated_at=decode_timestamp(row["updated_at"], "updated_at"),
        )
    except ValidationError as e:
        raise DecodeError(f"Row {row['id']} violates task rules: {e}") from e
