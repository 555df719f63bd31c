"""Persistence of signed audit-ledger events and game input logs."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from scorearena.errors import DatabaseError

_EVENT_COLUMNS = (
    "id, event_id, event_type, event_json, related_user_id, related_date, created_at"
)


@contextmanager
def _database_errors() -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as err:
        raise DatabaseError(str(err)) from err


@dataclass
class LedgerEvent:
    """A stored ledger event together with its signed JSON."""

    id: int
    event_id: str
    event_type: str
    event_json: str
    related_user_id: int | None
    related_date: str | None
    created_at: str

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> LedgerEvent:
        return cls(**dict(row))


@dataclass
class GameInputLog:
    """The recorded inputs of one game session."""

    id: int
    session_id: str
    input_log: bytes
    input_hash: str
    created_at: str

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> GameInputLog:
        fields = dict(row)
        fields["input_log"] = bytes(fields["input_log"])
        return cls(**fields)


class LedgerStore:
    """Reads and writes the ``ledger_events`` and ``game_input_logs`` tables."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self.db = db

    def save_event(
        self,
        event_id: str,
        event_type: str,
        event_json: str,
        user_id: int | None = None,
        date: str | None = None,
    ) -> None:
        with _database_errors():
            self.db.execute(
                "INSERT INTO ledger_events "
                "(event_id, event_type, event_json, related_user_id, related_date) "
                "VALUES (?, ?, ?, ?, ?)",
                (event_id, event_type, event_json, user_id, date),
            )

    def _events_where(self, where: str, value: object) -> list[LedgerEvent]:
        with _database_errors():
            rows = self.db.execute(
                f"SELECT {_EVENT_COLUMNS} FROM ledger_events WHERE {where} "
                "ORDER BY created_at ASC, id ASC",
                (value,),
            ).fetchall()
        return [LedgerEvent._from_row(row) for row in rows]

    def get_events_by_date(self, date: str) -> list[LedgerEvent]:
        return self._events_where("related_date = ?", date)

    def get_events_by_type(self, event_type: str) -> list[LedgerEvent]:
        return self._events_where("event_type = ?", event_type)

    def get_events_by_user(self, user_id: int) -> list[LedgerEvent]:
        return self._events_where("related_user_id = ?", user_id)

    def get_event_by_id(self, event_id: str) -> LedgerEvent | None:
        with _database_errors():
            row = self.db.execute(
                f"SELECT {_EVENT_COLUMNS} FROM ledger_events WHERE event_id = ?",
                (event_id,),
            ).fetchone()
        return LedgerEvent._from_row(row) if row is not None else None

    def save_input_log(self, session_id: str, input_log: bytes, input_hash: str) -> None:
        with _database_errors():
            self.db.execute(
                "INSERT INTO game_input_logs (session_id, input_log, input_hash) "
                "VALUES (?, ?, ?)",
                (session_id, bytes(input_log), input_hash),
            )

    def get_input_log(self, session_id: str) -> GameInputLog | None:
        with _database_errors():
            row = self.db.execute(
                "SELECT id, session_id, input_log, input_hash, created_at "
                "FROM game_input_logs WHERE session_id = ?",
                (session_id,),
            ).fetchone()
        return GameInputLog._from_row(row) if row is not None else None