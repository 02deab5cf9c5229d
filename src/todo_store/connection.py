"""
Connection Lifecycle Manager

Owns the single SQLite connection shared by every TaskStore call. The
connection is created lazily, probed for liveness on each request and
recreated transparently after it has been lost. Transaction boundaries
are exposed here because they are scoped to that shared connection.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from .config import DEFAULT_BUSY_TIMEOUT_MS, StoreSettings
from .errors import StoreUnavailable, TransactionAlreadyOpen, TransactionNotOpen
from .schema import create_schema

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


class ConnectionManager:
    """
    Lazily created, self-healing SQLite connection with explicit transactions.

    Features:
    - WAL journal with synchronous=NORMAL, foreign keys enforced
    - Double-checked creation: lock-free when the connection is live,
      at most one connection built under concurrent first access
    - Reconnect on the next call after the connection has been closed
    - One transaction at a time across all threads; the owning thread holds
      the lock from begin to commit or rollback, so other threads wait

    Construct one per process, pass it to TaskStore and call close() once
    at shutdown.
    """

    def __init__(self, db_path: Union[str, Path], busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS):
        """
        Args:
            db_path: Path to the SQLite file (":memory:" for a private in-memory database)
            busy_timeout_ms: How long SQLite waits on a locked database before failing
        """
        self.db_path = db_path if str(db_path) == MEMORY_DATABASE else Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms

        self._lock = threading.RLock()
        self._connection: Optional[sqlite3.Connection] = None
        self._schema_ready = False
        self._in_transaction = False
        self._transaction_owner: Optional[int] = None
        self._closed = False

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> "ConnectionManager":
        return cls(settings.database_path, busy_timeout_ms=settings.busy_timeout_ms)

    @property
    def lock(self):
        """Lock serializing statements on the shared connection."""
        return self._lock

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def closed(self) -> bool:
        return self._closed

    def get_connection(self) -> sqlite3.Connection:
        """
        Return a live connection, creating or recreating it when needed.

        Raises:
            StoreUnavailable: If the database cannot be opened or the manager is closed
        """
        connection = self._connection
        if connection is not None and self._probe(connection):
            return connection

        with self._lock:
            if self._closed:
                raise StoreUnavailable(f"Connection manager for {self.db_path} is closed")

            # Another thread may have finished creating it while we waited
            connection = self._connection
            if connection is not None:
                if self._probe(connection):
                    return connection
                logger.warning(f"Connection to {self.db_path} lost, reconnecting")
                self._discard(connection)

            self._connection = self._open()
            return self._connection

    def is_alive(self) -> bool:
        """True when a connection exists and answers a trivial query."""
        connection = self._connection
        return connection is not None and self._probe(connection)

    def init_schema(self) -> None:
        """Ensure the todos table and its indexes exist (idempotent)."""
        with self._lock:
            create_schema(self.get_connection())
            self._schema_ready = True

    def begin_transaction(self) -> None:
        """
        Open a transaction on the shared connection.

        The calling thread keeps the manager lock until commit() or
        rollback(), so statements from other threads wait instead of
        running inside this transaction.

        Raises:
            TransactionAlreadyOpen: If a transaction is already open anywhere in the process
        """
        if self._in_transaction:
            raise TransactionAlreadyOpen("A transaction is already open on the shared connection")

        self._lock.acquire()
        try:
            # Re-check now that no other thread can be mid-begin
            if self._in_transaction:
                raise TransactionAlreadyOpen("A transaction is already open on the shared connection")
            self.get_connection().execute("BEGIN")
        except BaseException:
            self._lock.release()
            raise

        self._in_transaction = True
        self._transaction_owner = threading.get_ident()
        logger.debug("Transaction started")

    def commit(self) -> None:
        """Commit the open transaction and return to autocommit mode."""
        self._end_transaction("COMMIT")

    def rollback(self) -> None:
        """Roll back the open transaction and return to autocommit mode."""
        self._end_transaction("ROLLBACK")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager: commit on success, roll back and re-raise on error."""
        self.begin_transaction()
        try:
            yield self.get_connection()
        except BaseException:
            if self._owns_transaction():
                self.rollback()
            raise
        else:
            self.commit()

    def close(self) -> None:
        """
        Close the connection. Calling it again is a no-op.

        Called from a thread other than the transaction owner, this waits
        until that transaction has finished.
        """
        with self._lock:
            self._closed = True
            connection, self._connection = self._connection, None
            if self._in_transaction:
                logger.warning("Closing connection with an open transaction; it will be rolled back")
                self._drop_transaction()

        if connection is None:
            return
        try:
            connection.close()
            logger.info(f"Database connection to {self.db_path} closed")
        except sqlite3.Error as e:
            logger.error(f"Error closing database {self.db_path}: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _open(self) -> sqlite3.Connection:
        """Create and configure a new connection. Caller holds the lock."""
        if self._in_transaction:
            logger.warning("Open transaction was lost together with the previous connection")
            self._drop_transaction()

        is_memory = self.db_path == MEMORY_DATABASE
        try:
            if not is_memory:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(
                str(self.db_path),
                isolation_level=None,  # autocommit; transactions are explicit
                check_same_thread=False,
            )
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailable(f"Failed to open database at {self.db_path}: {e}") from e

        try:
            connection.row_factory = sqlite3.Row
            cursor = connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            cursor.execute("PRAGMA foreign_keys=ON")

            # A new in-memory connection is a new, empty database
            if not self._schema_ready or is_memory:
                create_schema(connection)
                self._schema_ready = True
        except sqlite3.Error as e:
            connection.close()
            raise StoreUnavailable(f"Failed to initialize database at {self.db_path}: {e}") from e

        logger.info(f"Database connection to {self.db_path} established")
        return connection

    def _owns_transaction(self) -> bool:
        return self._in_transaction and self._transaction_owner == threading.get_ident()

    def _drop_transaction(self) -> None:
        """Forget the open transaction and release the lock held since begin. Owner only."""
        self._in_transaction = False
        self._transaction_owner = None
        self._lock.release()

    def _end_transaction(self, statement: str) -> None:
        if not self._in_transaction:
            raise TransactionNotOpen(f"{statement} called without an open transaction")
        if not self._owns_transaction():
            raise TransactionNotOpen(f"{statement} called from a thread that does not own the transaction")

        connection = self._connection
        try:
            if connection is None:
                raise TransactionNotOpen(f"{statement} called after the connection was closed")
            connection.execute(statement)
            logger.debug(f"Transaction finished with {statement}")
        except sqlite3.Error:
            # Leave the connection usable for the next transaction
            if statement == "COMMIT":
                self._rollback_quietly(connection)
            raise
        finally:
            self._drop_transaction()

    @staticmethod
    def _probe(connection: sqlite3.Connection) -> bool:
        try:
            connection.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error:
            return False

    @staticmethod
    def _rollback_quietly(connection: sqlite3.Connection) -> None:
        try:
            if connection.in_transaction:
                connection.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error(f"Rollback after failed commit also failed: {e}")

    @staticmethod
    def _discard(connection: sqlite3.Connection) -> None:
        try:
            connection.close()
        except sqlite3.Error:
            logger.debug("Ignoring error while discarding a dead connection")
