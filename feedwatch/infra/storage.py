"""SQLite storage shared by the dedup ledger, health table and token cache."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Dict, Iterator

import structlog

from ..errors import StoreError

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS sent_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        dedup_hash TEXT NOT NULL UNIQUE,
        channel_key TEXT NOT NULL,
        subscription_url TEXT NOT NULL,
        title TEXT,
        link TEXT,
        sent_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sent_items_sent_at ON sent_items(sent_at)",
    "CREATE INDEX IF NOT EXISTS idx_sent_items_channel_key ON sent_items(channel_key)",
    "CREATE INDEX IF NOT EXISTS idx_sent_items_subscription_url ON sent_items(subscription_url)",
    """
    CREATE TABLE IF NOT EXISTS health (
        channel_key TEXT NOT NULL,
        subscription_url TEXT NOT NULL,
        consecutive_failures INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        last_failure_at TEXT,
        PRIMARY KEY (channel_key, subscription_url)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
)


class Database:
    """A single SQLite connection guarded by one lock.

    Every read or write goes through :meth:`transaction`, which holds the
    lock only for the duration of the statement block and commits (or rolls
    back) before releasing it.
    """

    def __init__(self, conn: sqlite3.Connection, path: Path) -> None:
        self.path = path
        self._conn = conn
        self._lock = Lock()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(
                    f"Database operation failed on {self.path}",
                    str(exc),
                    "Another process may hold the database lock. Retry the check.",
                ) from exc
            except BaseException:
                self._conn.rollback()
                raise

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class SQLiteManager:
    """Open SQLite databases with schema guarantees and corruption reset."""

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self._databases: Dict[Path, Database] = {}
        self._lock = Lock()
        self.logger = logger or structlog.get_logger("feedwatch.storage")

    def connect(self, path: Path) -> Database:
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            if path not in self._databases:
                self._databases[path] = self._open_or_reset(path)
            return self._databases[path]

    def _open_or_reset(self, path: Path) -> Database:
        try:
            return self._open(path)
        except sqlite3.DatabaseError as exc:
            self.logger.warning("store_corrupted", path=str(path), error=str(exc))
        self._remove_files(path)
        try:
            database = self._open(path)
        except sqlite3.DatabaseError as exc:
            raise StoreError(
                f"Failed to open database at {path}",
                str(exc),
                "Check filesystem permissions or set FEEDWATCH_DB_PATH to a writable location.",
            ) from exc
        self.logger.warning(
            "store_reset",
            path=str(path),
            detail="Dedup history lost; some items may be re-sent on next check.",
        )
        return database

    def _open(self, path: Path) -> Database:
        conn = sqlite3.connect(path, check_same_thread=False)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA busy_timeout = 5000")
            self._ensure_schema(conn)
        except sqlite3.DatabaseError:
            conn.close()
            raise
        return Database(conn, path)

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()

    @staticmethod
    def _remove_files(path: Path) -> None:
        for candidate in (path, Path(f"{path}-wal"), Path(f"{path}-shm")):
            if candidate.exists():
                candidate.unlink()

    def reset(self, path: Path) -> None:
        with self._lock:
            database = self._databases.pop(path, None)
            if database is not None:
                database.close()
        self._remove_files(path)

    def close_all(self) -> None:
        with self._lock:
            for database in self._databases.values():
                database.close()
            self._databases.clear()


__all__ = ["Database", "SQLiteManager"]
