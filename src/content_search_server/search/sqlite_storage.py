"""SQLite storage handle for the content index.

One ``SqliteDatabase`` is created at startup and passed explicitly to the
repository. Each worker thread gets its own connection (SQLite connections
are not meant to be shared across concurrent threads); the pool remembers
every connection it opened so shutdown can close them all.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import logging
from pathlib import Path
import sqlite3
import threading

from content_search_server.search.schema import create_schema
from content_search_server.search.sqlite_pragmas import apply_connection_pragmas, apply_shutdown_pragmas


logger = logging.getLogger(__name__)


def _casefold(value: str | None) -> str | None:
    """Unicode case folding for SQL; SQLite lower() folds ASCII only."""
    return value.casefold() if isinstance(value, str) else value


class SQLiteConnectionPool:
    """Thread-safe pool handing out one connection per thread."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int | None = 5000) -> None:
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []
        self._closed = False

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get the calling thread's connection, opening it on first use."""
        if self._closed:
            raise sqlite3.ProgrammingError("Connection pool is closed")
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = self._create_connection()
            self._local.connection = conn
        yield conn

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        apply_connection_pragmas(conn, busy_timeout_ms=self.busy_timeout_ms)
        with self._lock:
            self._connections.append(conn)
        logger.debug("Opened SQLite connection to %s (thread %s)", self.db_path, threading.get_ident())
        return conn

    def close_all(self) -> None:
        """Close every connection handed out by this pool."""
        with self._lock:
            connections, self._connections = self._connections, []
            self._closed = True
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as exc:
                logger.warning("Failed to close SQLite connection for %s: %s", self.db_path, exc)
        self._local = threading.local()


class SqliteDatabase:
    """Owns the database file, its schema and the connection pool."""

    def __init__(self, path: str | Path, *, busy_timeout_ms: int | None = 5000) -> None:
        self.path = Path(path)
        self._pool = SQLiteConnectionPool(self.path, busy_timeout_ms=busy_timeout_ms)

    def initialize(self) -> None:
        """Create the parent directory and schema if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._pool.get_connection() as conn:
            create_schema(conn)
        logger.info("Content index ready at %s", self.path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield the calling thread's autocommit connection."""
        with self._pool.get_connection() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block in one write transaction, rolling back on error."""
        with self._pool.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def ping(self) -> bool:
        """Round-trip a trivial query; raises ``sqlite3.Error`` when unavailable."""
        with self._pool.get_connection() as conn:
            row = conn.execute("SELECT 1").fetchone()
        return bool(row and row[0] == 1)

    def close(self) -> None:
        """Checkpoint the WAL and close all pooled connections."""
        try:
            with self._pool.get_connection() as conn:
                apply_shutdown_pragmas(conn)
        except sqlite3.Error as exc:
            logger.warning("Skipping shutdown PRAGMAs for %s: %s", self.path, exc)
        self._pool.close_all()
        logger.info("Closed content index at %s", self.path)
