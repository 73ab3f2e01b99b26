"""SQLite implementation of EventStorePort.

All SQL, schema management, and low-level persistence lives here.
Application code should depend on the port, not on this module directly.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from tgnotify.models import NotificationEvent, format_timestamp, parse_timestamp
from tgnotify.ports import StorageError


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS notifies (
    id       INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT,
    type     TEXT NOT NULL,
    time     TEXT NOT NULL,
    message  TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_notifies_type_time ON notifies(type, time);
"""


# ---------------------------------------------------------------------------
# SqliteStore
# ---------------------------------------------------------------------------

class SqliteStore:
    """EventStorePort backed by a single SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"cannot open event store at {self._db_path}: {e}") from e

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        pass  # connections are per-call; nothing to tear down

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    # ------------------------------------------------------------------
    # EventStorePort
    # ------------------------------------------------------------------

    def append(self, event: NotificationEvent) -> NotificationEvent:
        try:
            conn = self._connect()
            try:
                with conn:
                    cur = conn.execute(
                        "INSERT INTO notifies (type, time, message) VALUES (?, ?, ?)",
                        (event.type, format_timestamp(event.timestamp), event.message),
                    )
                    new_id = cur.lastrowid
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"append failed for type {event.type!r}: {e}") from e
        return NotificationEvent(
            id=new_id, type=event.type, timestamp=event.timestamp, message=event.message,
        )

    def most_recent(self, event_type: str) -> NotificationEvent | None:
        row = self._fetchone(
            "SELECT id, type, time, message FROM notifies WHERE type = ? "
            "ORDER BY time DESC, id DESC LIMIT 1",
            (event_type,),
        )
        return _row_to_event(row) if row is not None else None

    def query(
        self,
        *,
        event_type: str | None = None,
        limit: int = 100,
    ) -> list[NotificationEvent]:
        clauses: list[str] = []
        params: list[object] = []
        if event_type:
            clauses.append("type = ?")
            params.append(event_type)
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        params.append(limit)
        sql = f"SELECT id, type, time, message FROM notifies{where} ORDER BY time DESC, id DESC LIMIT ?"
        try:
            conn = self._connect()
            try:
                rows = conn.execute(sql, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"query failed: {e}") from e
        return [_row_to_event(r) for r in rows]

    def count(self, event_type: str | None = None) -> int:
        if event_type:
            row = self._fetchone("SELECT COUNT(*) FROM notifies WHERE type = ?", (event_type,))
        else:
            row = self._fetchone("SELECT COUNT(*) FROM notifies", ())
        return int(row[0])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetchone(self, sql: str, params: tuple) -> sqlite3.Row | None:
        try:
            conn = self._connect()
            try:
                return conn.execute(sql, params).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"read failed: {e}") from e


def _row_to_event(row: sqlite3.Row) -> NotificationEvent:
    try:
        ts = parse_timestamp(row["time"])
    except (TypeError, ValueError) as e:
        raise StorageError(f"corrupt timestamp in row {row['id']}: {row['time']!r}") from e
    return NotificationEvent(
        id=row["id"],
        type=row["type"],
        timestamp=ts,
        message=row["message"] or "",
    )
