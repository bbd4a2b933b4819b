from __future__ import annotations

import sqlite3

import pytest

from feedwatch.errors import StoreError
from feedwatch.infra import SQLiteManager


def test_sqlite_manager_initialises_schema(tmp_path) -> None:
    manager = SQLiteManager()
    database = manager.connect(tmp_path / "feedwatch.db")
    with database.transaction() as conn:
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(sent_items)").fetchall()}
        tables = {row["name"] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        journal = conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert {"dedup_hash", "channel_key", "subscription_url", "title", "link", "sent_at"} <= columns
    assert {"sent_items", "health", "meta"} <= tables
    assert journal.lower() == "wal"
    manager.close_all()


def test_connect_reuses_database_per_path(tmp_path) -> None:
    manager = SQLiteManager()
    path = tmp_path / "feedwatch.db"
    assert manager.connect(path) is manager.connect(path)
    manager.close_all()


def test_transaction_rolls_back_on_error(database) -> None:
    with pytest.raises(RuntimeError):
        with database.transaction() as conn:
            conn.execute("INSERT INTO meta(key, value) VALUES ('k', 'v')")
            raise RuntimeError("abort")
    with database.transaction() as conn:
        assert conn.execute("SELECT count(*) FROM meta").fetchone()[0] == 0


def test_transaction_wraps_sqlite_errors(database) -> None:
    with pytest.raises(StoreError) as excinfo:
        with database.transaction() as conn:
            conn.execute("INSERT INTO meta(key, value) VALUES ('k', 'v')")
            conn.execute("INSERT INTO missing_table(value) VALUES (1)")
    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    with database.transaction() as conn:
        assert conn.execute("SELECT count(*) FROM meta").fetchone()[0] == 0


def test_corrupted_file_is_reset(tmp_path) -> None:
    path = tmp_path / "feedwatch.db"
    path.write_bytes(b"definitely not sqlite" * 500)
    (tmp_path / "feedwatch.db-wal").write_bytes(b"junk")

    manager = SQLiteManager()
    database = manager.connect(path)
    with database.transaction() as conn:
        assert conn.execute("SELECT count(*) FROM sent_items").fetchone()[0] == 0
    manager.close_all()


def test_failed_reset_raises_store_error(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = SQLiteManager()

    def broken_open(path):
        raise sqlite3.DatabaseError("file is not a database")

    monkeypatch.setattr(manager, "_open", broken_open)
    with pytest.raises(StoreError):
        manager.connect(tmp_path / "feedwatch.db")


def test_sqlite_manager_reset_removes_files(tmp_path) -> None:
    manager = SQLiteManager()
    path = tmp_path / "feedwatch.db"
    database = manager.connect(path)
    with database.transaction() as conn:
        conn.execute("INSERT INTO meta(key, value) VALUES ('k', 'v')")
    manager.reset(path)
    assert not path.exists()
    database = manager.connect(path)
    with database.transaction() as conn:
        assert conn.execute("SELECT count(*) FROM meta").fetchone()[0] == 0
    manager.close_all()
