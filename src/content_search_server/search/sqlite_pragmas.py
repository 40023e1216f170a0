"""Shared SQLite PRAGMA helpers for consistent connection tuning."""

from __future__ import annotations

import sqlite3


def apply_connection_pragmas(
    conn: sqlite3.Connection,
    *,
    busy_timeout_ms: int | None = 5000,
    cache_size_kb: int = -16384,
    mmap_size_bytes: int = 67108864,
    temp_store: str = "MEMORY",
) -> None:
    """Apply read/write PRAGMAs to a long-lived service connection.

    WAL lets readers proceed while a single writer commits; ``busy_timeout``
    bounds how long a writer waits for the lock before ``database is locked``.
    """
    if busy_timeout_ms is not None:
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute(f"PRAGMA cache_size = {int(cache_size_kb)}")
    conn.execute(f"PRAGMA mmap_size = {int(mmap_size_bytes)}")
    conn.execute(f"PRAGMA temp_store = {temp_store}")


def apply_shutdown_pragmas(conn: sqlite3.Connection) -> None:
    """Refresh planner statistics and truncate the WAL before closing."""
    conn.execute("PRAGMA optimize")
    conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
