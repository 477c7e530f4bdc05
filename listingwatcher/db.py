"""SQLite-backed persistence for the poll cursor, run history and event log."""

from __future__ import annotations

import datetime as dt
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple

from openpyxl import Workbook

from .models import ChangeEvent, describe_event


SQLITE_PREFIX = "sqlite://"

EVENT_EXPORT_HEADERS = ["occurred_at", "listing_id", "event_type", "details"]


def resolve_sqlite_path(database_url: str) -> Path:
    """Translate a DATABASE_URL into a filesystem path."""
    if not database_url:
        raise ValueError("DATABASE_URL must not be empty")

    if database_url.startswith(SQLITE_PREFIX):
        raw_path = database_url[len(SQLITE_PREFIX) :]
        # Allow sqlite:///path/to/file and sqlite://path/to/file styles.
        if raw_path.startswith("/"):
            raw_path = raw_path[1:]
        path = Path(raw_path)
    else:
        path = Path(database_url)

    if not path.is_absolute():
        path = Path.cwd() / path

    return path.expanduser().resolve()


@dataclass
class Database:
    """Thin wrapper around sqlite3 holding the cursor and delivery history."""

    path: Path

    def connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.path)

    def initialize(self) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    executed_at TEXT NOT NULL,
                    status TEXT NOT NULL,
                    notes TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cursor (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    modified_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS listing_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    listing_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    details TEXT
                )
                """
            )
            conn.commit()

    def add_run(self, executed_at: str, status: str, notes: str | None) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT INTO runs (executed_at, status, notes) VALUES (?, ?, ?)",
                (executed_at, status, notes),
            )
            conn.commit()

    def recent_runs(self, limit: int = 10) -> Iterable[Tuple[str, str, str | None]]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT executed_at, status, notes FROM runs ORDER BY id DESC LIMIT ?",
                (limit,),
            )
            yield from cursor.fetchall()

    def read_cursor(self) -> Optional[dt.datetime]:
        """Return the latest modification timestamp seen by a completed cycle."""
        with self.connect() as conn:
            row = conn.execute("SELECT modified_at FROM cursor WHERE id = 1").fetchone()
        if not row:
            return None
        return dt.datetime.fromisoformat(row[0])

    def write_cursor(self, modified_at: dt.datetime) -> None:
        updated_at = dt.datetime.now(dt.timezone.utc).isoformat()
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO cursor (id, modified_at, updated_at)
                VALUES (1, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    modified_at=excluded.modified_at,
                    updated_at=excluded.updated_at
                """,
                (modified_at.isoformat(), updated_at),
            )
            conn.commit()

    def record_events(self, occurred_at: str, events: Iterable[ChangeEvent]) -> int:
        rows = []
        for event in events:
            described = describe_event(event)
            rows.append(
                (
                    described["listing_id"],
                    described["event_type"],
                    occurred_at,
                    described["details"],
                )
            )
        if not rows:
            return 0
        with self.connect() as conn:
            conn.executemany(
                """
                INSERT INTO listing_events (listing_id, event_type, occurred_at, details)
                VALUES (?, ?, ?, ?)
                """,
                rows,
            )
            conn.commit()
        return len(rows)

    def fetch_events(
        self, listing_id: str | None = None
    ) -> list[Tuple[str, str, str, str | None]]:
        """Return (occurred_at, listing_id, event_type, details) in insertion order."""
        query = "SELECT occurred_at, listing_id, event_type, details FROM listing_events"
        params: tuple = ()
        if listing_id is not None:
            query += " WHERE listing_id = ?"
            params = (listing_id,)
        query += " ORDER BY id"
        with self.connect() as conn:
            return list(conn.execute(query, params).fetchall())

    def export_events_to_xlsx(self, export_path: Path) -> int:
        """Write the event log to a spreadsheet and return the row count."""
        events = self.fetch_events()
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = "listing_events"
        worksheet.append(EVENT_EXPORT_HEADERS)
        for row in events:
            worksheet.append(list(row))
        export_path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(export_path)
        return len(events)
