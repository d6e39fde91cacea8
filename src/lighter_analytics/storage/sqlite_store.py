from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Protocol


class StorageError(RuntimeError):
    pass


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStorage:
    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class SqliteStorage:
    """Persistent string key-value table in a SQLite file."""

    def __init__(self, db_path: Path) -> None:
        self._lock = threading.Lock()
        try:
            self._conn = connect(db_path)
            init_db(self._conn)
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"Unable to open cache database {db_path}: {exc}") from exc

    def get_item(self, key: str) -> str | None:
        with self._lock:
            try:
                row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        return None if row is None else str(row[0])

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO kv_store (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    def remove_item(self, key: str) -> None:
        with self._lock:
            try:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    def keys(self) -> list[str]:
        with self._lock:
            try:
                rows = self._conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        return [str(row[0]) for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(db_path), check_same_thread=False)


def init_db(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )
    conn.commit()
