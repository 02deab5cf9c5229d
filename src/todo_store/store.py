"""
Task Store

CRUD and pre-defined filtered reads over the todos table. Every call takes
the live connection from the ConnectionManager. Invalid input raises
ValidationError before the database is touched; database failures are
logged and reduced to a falsy WriteResult, an empty list or None.
"""

import logging
import sqlite3
import threading
from contextlib import closing, contextmanager
from datetime import datetime, timedelta
from typing import Any, Iterable, Iterator, List, Optional, Sequence

from .connection import ConnectionManager
from .errors import TransactionNotOpen, ValidationError
from .mapper import encode_timestamp, row_to_task, task_to_row
from .models import Task, WriteResult, to_local_naive

logger = logging.getLogger(__name__)

SELECT_COLUMNS = "SELECT id, title, description, completed, due_date, created_at, updated_at FROM todos"

INSERT_SQL = """
    INSERT INTO todos (title, description, completed, due_date, created_at, updated_at)
    VALUES (:title, :description, :completed, :due_date, :created_at, :updated_at)
"""

UPDATE_SQL = """
    UPDATE todos
    SET title = :title, description = :description, completed = :completed,
        due_date = :due_date, updated_at = :updated_at
    WHERE id = :id
"""


class TaskStore:
    """
    Record-access layer consumed by the presentation layer.

    Mutations return WriteResult, which is falsy on failure so callers can
    keep treating the outcome as a boolean. Reads return Task objects.
    """

    def __init__(self, manager: ConnectionManager):
        self._manager = manager
        self._clock_lock = threading.Lock()
        self._last_stamp: Optional[datetime] = None

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    # ---- writes ----

    def insert(self, task: Task) -> WriteResult:
        """
        Persist a new task and assign its id.

        created_at keeps the caller's value; updated_at is set to now. On
        success the caller's task receives the generated id and updated_at.

        Raises:
            ValidationError: If task is None or already has an id
            StoreUnavailable: If no connection can be established
        """
        self._check_new(task)

        stamp = self._now()
        row = self._insert_row(task, stamp)
        try:
            with self._cursor() as cursor:
                cursor.execute(INSERT_SQL, row)
                new_id = cursor.lastrowid
        except sqlite3.Error as e:
            logger.error(f"Error inserting task '{task.title}': {e}")
            return WriteResult.failed(str(e))

        if not new_id:
            logger.error(f"Insert of task '{task.title}' returned no row id")
            return WriteResult.failed("No row id returned")

        task.id = new_id
        task.updated_at = stamp
        logger.debug(f"Task inserted id={new_id} title='{task.title}'")
        return WriteResult.ok()

    def insert_many(self, tasks: Iterable[Task]) -> WriteResult:
        """
        Insert several tasks in one transaction: either all rows are written or none.

        Ids are assigned to the caller's tasks only after the commit succeeded.
        A batch from another thread waits for a running transaction to finish.

        Raises:
            ValidationError: If any task is None or already has an id
            TransactionAlreadyOpen: If the calling thread already has a transaction open
        """
        tasks = list(tasks)
        for task in tasks:
            self._check_new(task)
        if not tasks:
            return WriteResult.ok(0)

        stamp = self._now()
        rows = [self._insert_row(task, stamp) for task in tasks]
        new_ids: List[int] = []
        try:
            with self._manager.lock:
                with self._manager.transaction() as connection, closing(connection.cursor()) as cursor:
                    for row in rows:
                        cursor.execute(INSERT_SQL, row)
                        new_ids.append(cursor.lastrowid)
        except sqlite3.Error as e:
            logger.error(f"Error inserting {len(tasks)} tasks, transaction rolled back: {e}")
            return WriteResult.failed(str(e))
        except TransactionNotOpen as e:
            # The connection was lost mid-batch; its rows went with it
            logger.error(f"Error inserting {len(tasks)} tasks, transaction lost: {e}")
            return WriteResult.failed(str(e))

        for task, new_id in zip(tasks, new_ids):
            task.id = new_id
            task.updated_at = stamp
        logger.debug(f"Inserted {len(tasks)} tasks in one transaction")
        return WriteResult.ok(len(tasks))

    def update(self, task: Task) -> WriteResult:
        """
        Overwrite title, description, completed and due_date of a stored task.

        created_at is never touched; updated_at is refreshed. A falsy result
        with ``error`` None means no row has this id.

        Raises:
            ValidationError: If task is None or has not been inserted
            StoreUnavailable: If no connection can be established
        """
        if task is None:
            raise ValidationError("Task must not be None")
        if task.id <= 0:
            raise ValidationError("Task has no id; insert it before updating")

        stamp = self._now()
        row = task_to_row(task)
        row["updated_at"] = encode_timestamp(stamp)
        try:
            with self._cursor() as cursor:
                cursor.execute(UPDATE_SQL, row)
                affected = cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Error updating task {task.id}: {e}")
            return WriteResult.failed(str(e))

        if affected <= 0:
            logger.debug(f"Update matched no task with id {task.id}")
            return WriteResult.not_found()

        task.updated_at = stamp
        return WriteResult.ok(affected)

    def delete(self, task_id: Optional[int]) -> WriteResult:
        """Delete a task by id. Ids <= 0 are never stored, so nothing is queried."""
        if task_id is None or task_id <= 0:
            return WriteResult.not_found()

        try:
            with self._cursor() as cursor:
                cursor.execute("DELETE FROM todos WHERE id = ?", (task_id,))
                affected = cursor.rowcount
        except sqlite3.Error as e:
            logger.error(f"Error deleting task {task_id}: {e}")
            return WriteResult.failed(str(e))

        if affected <= 0:
            return WriteResult.not_found()
        logger.debug(f"Task deleted id={task_id}")
        return WriteResult.ok(affected)

    # ---- reads ----

    def get_all(self) -> List[Task]:
        """All tasks, newest first."""
        return self._query(f"{SELECT_COLUMNS} ORDER BY created_at DESC")

    def get_by_id(self, task_id: Optional[int]) -> Optional[Task]:
        """Return the task with this id, or None when there is none."""
        if task_id is None or task_id <= 0:
            return None
        tasks = self._query(f"{SELECT_COLUMNS} WHERE id = ?", (task_id,))
        return tasks[0] if tasks else None

    def get_pending(self) -> List[Task]:
        """Open tasks by due date (no due date last), newest first among equals."""
        return self._query(
            f"""{SELECT_COLUMNS}
            WHERE completed = 0
            ORDER BY due_date IS NULL, due_date ASC, created_at DESC"""
        )

    def get_completed(self) -> List[Task]:
        """Completed tasks, newest first."""
        return self._query(f"{SELECT_COLUMNS} WHERE completed = 1 ORDER BY created_at DESC")

    def get_overdue(self, now: Optional[datetime] = None) -> List[Task]:
        """Open tasks whose due date lies strictly before now, most overdue first."""
        reference = to_local_naive(now) if now is not None else datetime.now()
        candidates = self._query(
            f"""{SELECT_COLUMNS}
            WHERE completed = 0 AND due_date IS NOT NULL AND due_date <= ?
            ORDER BY due_date ASC, created_at DESC""",
            (encode_timestamp(reference),),
        )
        # Rows written by the legacy desktop client use shorter timestamp text
        return [task for task in candidates if task.is_overdue(reference)]

    def count(self) -> int:
        """Number of stored tasks; 0 if the table cannot be read."""
        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT COUNT(*) FROM todos")
                (total,) = cursor.fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error counting tasks: {e}")
            return 0
        return int(total)

    # ---- helpers ----

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Cursor on the live connection, used while holding the manager lock."""
        with self._manager.lock:
            connection = self._manager.get_connection()
            with closing(connection.cursor()) as cursor:
                yield cursor

    @staticmethod
    def _check_new(task: Optional[Task]) -> None:
        if task is None:
            raise ValidationError("Task must not be None")
        if task.id > 0:
            raise ValidationError(f"Task already stored with id {task.id}; use update instead")

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[Task]:
        """Run a SELECT and decode the rows. DecodeError is left to the caller."""
        try:
            with self._cursor() as cursor:
                cursor.execute(sql, params)
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Error reading tasks: {e}")
            return []
        return [row_to_task(row) for row in rows]

    def _insert_row(self, task: Task, stamp: datetime) -> dict:
        row = task_to_row(task)
        row.pop("id")
        row["created_at"] = encode_timestamp(task.created_at or stamp)
        row["updated_at"] = encode_timestamp(stamp)
        return row

    def _now(self) -> datetime:
        """Current local time, strictly later than any stamp this store handed out before."""
        with self._clock_lock:
            stamp = datetime.now()
            if self._last_stamp is not None and stamp <= self._last_stamp:
                stamp = self._last_stamp + timedelta(microseconds=1)
            self._last_stamp = stamp
            return stamp
