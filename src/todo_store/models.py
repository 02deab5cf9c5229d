"""
Pydantic models for the todo store.

Task is the in-memory entity handed to and returned by TaskStore. Field
validation runs on construction and on every assignment, so a Task can
never hold a blank title. WriteResult is the outcome of a store mutation.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _describe(error: PydanticValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        parts.append(f"{location}: {err['msg']}" if location else err["msg"])
    return "; ".join(parts)


class Task(BaseModel):
    """A persisted to-do record.

    Fields:
        id: Store-assigned key, 0 until the task has been inserted.
        title: Trimmed, non-empty title.
        description: Free text, never None.
        completed: Completion flag.
        due_date: Optional deadline.
        created_at: Creation time, kept as-is once persisted.
        updated_at: Refreshed by the store on every successful write.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: int = Field(0, ge=0)
    title: str
    description: str = ""
    completed: bool = False
    due_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except PydanticValidationError as e:
            raise ValidationError(_describe(e)) from e

    def __setattr__(self, name: str, value: Any) -> None:
        try:
            super().__setattr__(name, value)
        except PydanticValidationError as e:
            raise ValidationError(_describe(e)) from e

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Title cannot be null or empty")
        return v.strip()

    @field_validator("description", mode="before")
    @classmethod
    def validate_description(cls, v):
        return "" if v is None else v

    @field_validator("created_at", mode="before")
    @classmethod
    def default_created_at(cls, v):
        return datetime.now() if v is None else v

    @field_validator("due_date", "created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v):
        return to_local_naive(v)

    @classmethod
    def from_store(
        cls,
        id: int,
        title: str,
        description: Optional[str],
        completed: bool,
        due_date: Optional[datetime],
        created_at: Optional[datetime],
        updated_at: Optional[datetime] = None,
    ) -> "Task":
        """Build a Task from values loaded out of the backing store."""
        return cls(
            id=id,
            title=title,
            description=description,
            completed=completed,
            due_date=due_date,
            created_at=created_at,
            updated_at=updated_at,
        )

    @property
    def is_persisted(self) -> bool:
        """True once the store has assigned an id."""
        return self.id > 0

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """
        Determine whether the task is past its due date.

        Args:
            now: Reference time, defaults to the current local time

        Returns:
            True if a due date is set, lies strictly before now and the task
            is not completed
        """
        if self.due_date is None or self.completed:
            return False
        reference = to_local_naive(now) if now is not None else datetime.now()
        return self.due_date < reference

    def __str__(self) -> str:
        return self.title + (" (Done)" if self.completed else "")


class WriteResult(BaseModel):
    """Outcome of insert/update/delete.

    Falsy when nothing was written. ``error`` is None when the statement ran
    but matched no row, and carries the database message when the store
    itself failed.
    """

    success: bool
    affected: int = 0
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, affected: int = 1) -> "WriteResult":
        return cls(success=True, affected=affected)

    @classmethod
    def not_found(cls) -> "WriteResult":
        return cls(success=False, affected=0)

    @classmethod
    def failed(cls, error: str) -> "WriteResult":
        return cls(success=False, affected=0, error=error)
