"""Persistence of entry-fee payments, plays and daily prize payouts."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator

from scorearena.errors import DatabaseError

_PAYMENT_COLUMNS = (
    "id, user_id, payment_id, invoice, amount_sats, status, plays_remaining, "
    "expires_at, created_at, updated_at, paid_at"
)
_PAYOUT_COLUMNS = (
    "id, user_id, date, score, amount_sats, payment_request, payment_id, status, "
    "created_at, updated_at, paid_at"
)
_ACTIVE_PLAYS = (
    "user_id = ? AND status = 'paid' AND plays_remaining > 0 "
    "AND (expires_at IS NULL OR expires_at > datetime('now'))"
)


@contextmanager
def _database_errors() -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as err:
        raise DatabaseError(str(err)) from err


def _format_time(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S.%f +00:00:00")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _day_bounds(date: str) -> tuple[str, str]:
    return f"{date} 00:00:00", f"{date} 23:59:59"


@dataclass
class GamePayment:
    """An entry-fee invoice and the plays it grants."""

    id: int
    user_id: int
    payment_id: str
    invoice: str
    amount_sats: int
    status: str
    plays_remaining: int
    expires_at: str | None
    created_at: str
    updated_at: str
    paid_at: str | None

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> GamePayment:
        return cls(**dict(row))


@dataclass
class PrizePayout:
    """A daily prize owed to, or paid to, the top scorer."""

    id: int
    user_id: int
    date: str
    score: int
    amount_sats: int
    payment_request: str | None
    payment_id: str | None
    status: str
    created_at: str
    updated_at: str
    paid_at: str | None

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> PrizePayout:
        return cls(**dict(row))


@dataclass
class TopScorer:
    """The best player of a day."""

    user_id: int
    score: int
    games_played: int
    username: str


@dataclass
class UserStats:
    """Aggregate figures shown on a player's profile."""

    total_games_purchased: int
    total_spent_sats: int
    prizes_won: int
    total_earned_sats: int
    high_score: int
    total_plays: int


class PaymentStore:
    """Reads and writes the ``game_payments`` and ``prize_payouts`` tables."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self.db = db

    def ping(self) -> None:
        """Raise DatabaseError if the database cannot be reached."""
        with _database_errors():
            self.db.execute("SELECT 1 AS ping").fetchone()

    def _one(self, sql: str, *params: object) -> sqlite3.Row | None:
        with _database_errors():
            return self.db.execute(sql, params).fetchone()

    def _all(self, sql: str, *params: object) -> list[sqlite3.Row]:
        with _database_errors():
            return self.db.execute(sql, params).fetchall()

    def _execute(self, sql: str, *params: object) -> sqlite3.Cursor:
        with _database_errors():
            return self.db.execute(sql, params)

    # --- entry-fee payments -------------------------------------------------

    def create_game_payment(
        self, user_id: int, payment_id: str, invoice: str, amount_sats: int
    ) -> GamePayment:
        """Record a new pending payment for a game entry."""
        now = _format_time(_utcnow())
        cursor = self._execute(
            "INSERT INTO game_payments (user_id, payment_id, invoice, amount_sats, status, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            user_id, payment_id, invoice, amount_sats, "pending", now, now,
        )
        return GamePayment(
            id=cursor.lastrowid,
            user_id=user_id,
            payment_id=payment_id,
            invoice=invoice,
            amount_sats=amount_sats,
            status="pending",
            plays_remaining=0,
            expires_at=None,
            created_at=now,
            updated_at=now,
            paid_at=None,
        )

    def get_payment_by_id(self, payment_id: str) -> GamePayment | None:
        row = self._one(
            f"SELECT {_PAYMENT_COLUMNS} FROM game_payments WHERE payment_id = ?", payment_id
        )
        return GamePayment._from_row(row) if row is not None else None

    def update_payment_status(self, payment_id: str, status: str) -> GamePayment | None:
        """Set a payment's status; returns None if no such payment exists."""
        now = _format_time(_utcnow())
        paid_at = now if status == "paid" else None
        cursor = self._execute(
            "UPDATE game_payments SET status = ?, updated_at = ?, paid_at = ? "
            "WHERE payment_id = ?",
            status, now, paid_at, payment_id,
        )
        if cursor.rowcount == 0:
            return None
        return self.get_payment_by_id(payment_id)

    def get_pending_payment_for_user(self, user_id: int) -> GamePayment | None:
        """Return the user's most recent pending payment."""
        row = self._one(
            f"SELECT {_PAYMENT_COLUMNS} FROM game_payments "
            "WHERE user_id = ? AND status = 'pending' "
            "ORDER BY created_at DESC, id DESC LIMIT 1",
            user_id,
        )
        return GamePayment._from_row(row) if row is not None else None

    def get_remaining_plays(self, user_id: int) -> int:
        """Total unexpired plays left on the user's paid payments."""
        row = self._one(
            "SELECT COALESCE(SUM(plays_remaining), 0) AS total FROM game_payments "
            f"WHERE {_ACTIVE_PLAYS}",
            user_id,
        )
        return row["total"]

    def use_one_play(self, user_id: int) -> int:
        """Spend a play from the oldest paid payment; return the plays left."""
        now = _format_time(_utcnow())
        self._execute(
            "UPDATE game_payments SET plays_remaining = plays_remaining - 1, updated_at = ? "
            "WHERE id = (SELECT id FROM game_payments "
            f"WHERE {_ACTIVE_PLAYS} ORDER BY paid_at ASC LIMIT 1)",
            now, user_id,
        )
        return self.get_remaining_plays(user_id)

    def set_plays_remaining(self, payment_id: str, plays: int, ttl_minutes: int) -> None:
        """Grant plays to a payment; with ``ttl_minutes`` of 0 they never expire."""
        now = _utcnow()
        expires_at = (
            _format_time(now + timedelta(minutes=ttl_minutes)) if ttl_minutes > 0 else None
        )
        self._execute(
            "UPDATE game_payments SET plays_remaining = ?, expires_at = ?, updated_at = ? "
            "WHERE payment_id = ?",
            plays, expires_at, _format_time(now), payment_id,
        )

    def set_plays_with_expiry(self, payment_id: str, plays: int, expires_at: str) -> None:
        """Grant plays to a payment with an explicit expiry time."""
        self._execute(
            "UPDATE game_payments SET plays_remaining = ?, expires_at = ?, updated_at = ? "
            "WHERE payment_id = ?",
            plays, expires_at, _format_time(_utcnow()), payment_id,
        )

    def count_games_for_date(self, date: str) -> int:
        """Number of payments paid on the given day (``YYYY-MM-DD``)."""
        start, end = _day_bounds(date)
        row = self._one(
            "SELECT COUNT(*) AS count FROM game_payments "
            "WHERE status = 'paid' AND paid_at >= ? AND paid_at <= ?",
            start, end,
        )
        return row["count"]

    # --- prizes -------------------------------------------------------------

    def get_top_scorer_for_date(self, date: str) -> TopScorer | None:
        """The unbanned player with the best score on the given day."""
        start, end = _day_bounds(date)
        row = self._one(
            "SELECT s.user_id, COALESCE(MAX(s.score), 0) AS top_score, "
            "COUNT(*) AS games_played, u.username "
            "FROM scores s JOIN users u ON s.user_id = u.id "
            "WHERE s.created_at >= ? AND s.created_at <= ? AND u.banned = 0 "
            "GROUP BY s.user_id ORDER BY top_score DESC LIMIT 1",
            start, end,
        )
        if row is None:
            return None
        return TopScorer(
            user_id=row["user_id"],
            score=row["top_score"],
            games_played=row["games_played"],
            username=row["username"],
        )

    def check_top_scorer(self, user_id: int, date: str) -> bool:
        top = self.get_top_scorer_for_date(date)
        return top is not None and top.user_id == user_id

    def check_prize_claimed(self, user_id: int, date: str) -> bool:
        """Whether a prize record exists for the user on that day."""
        row = self._one(
            "SELECT COUNT(*) AS count FROM prize_payouts WHERE user_id = ? AND date = ?",
            user_id, date,
        )
        return row["count"] > 0

    def record_daily_winner(
        self, user_id: int, date: str, score: int, amount_sats: int
    ) -> PrizePayout:
        """Record a pending prize; an existing record for that day is left alone."""
        now = _format_time(_utcnow())
        cursor = self._execute(
            "INSERT INTO prize_payouts (user_id, date, score, amount_sats, status, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id, date) DO NOTHING",
            user_id, date, score, amount_sats, "pending", now, now,
        )
        return PrizePayout(
            id=cursor.lastrowid,
            user_id=user_id,
            date=date,
            score=score,
            amount_sats=amount_sats,
            payment_request=None,
            payment_id=None,
            status="pending",
            created_at=now,
            updated_at=now,
            paid_at=None,
        )

    def update_prize_with_invoice(
        self, user_id: int, date: str, invoice: str
    ) -> PrizePayout | None:
        """Attach an invoice to a pending prize; None if there is none pending."""
        now = _format_time(_utcnow())
        cursor = self._execute(
            "UPDATE prize_payouts SET payment_request = ?, updated_at = ? "
            "WHERE user_id = ? AND date = ? AND status = 'pending'",
            invoice, now, user_id, date,
        )
        if cursor.rowcount == 0:
            return None
        row = self._one(
            f"SELECT {_PAYOUT_COLUMNS} FROM prize_payouts WHERE user_id = ? AND date = ?",
            user_id, date,
        )
        return PrizePayout._from_row(row) if row is not None else None

    def update_prize_status(
        self, id: int, status: str, payment_id: str | None = None
    ) -> PrizePayout | None:
        """Set a prize's status and payment id; None if no such prize exists."""
        now = _format_time(_utcnow())
        paid_at = now if status == "paid" else None
        cursor = self._execute(
            "UPDATE prize_payouts SET status = ?, payment_id = ?, updated_at = ?, paid_at = ? "
            "WHERE id = ?",
            status, payment_id, now, paid_at, id,
        )
        if cursor.rowcount == 0:
            return None
        row = self._one(f"SELECT {_PAYOUT_COLUMNS} FROM prize_payouts WHERE id = ?", id)
        return PrizePayout._from_row(row) if row is not None else None

    def get_claimable_prize(self, user_id: int, date: str) -> PrizePayout | None:
        """A pending or failed prize for the user on that day."""
        row = self._one(
            f"SELECT {_PAYOUT_COLUMNS} FROM prize_payouts "
            "WHERE user_id = ? AND date = ? AND status IN ('pending', 'failed')",
            user_id, date,
        )
        return PrizePayout._from_row(row) if row is not None else None

    def get_claimable_prizes(self, user_id: int) -> list[PrizePayout]:
        """All pending or failed prizes of the user, newest day first."""
        rows = self._all(
            f"SELECT {_PAYOUT_COLUMNS} FROM prize_payouts "
            "WHERE user_id = ? AND status IN ('pending', 'failed') ORDER BY date DESC",
            user_id,
        )
        return [PrizePayout._from_row(row) for row in rows]

    def get_recent_paid_prizes(self, user_id: int, limit: int) -> list[PrizePayout]:
        """The user's most recently paid prizes."""
        rows = self._all(
            f"SELECT {_PAYOUT_COLUMNS} FROM prize_payouts "
            "WHERE user_id = ? AND status = 'paid' ORDER BY paid_at DESC LIMIT ?",
            user_id, limit,
        )
        return [PrizePayout._from_row(row) for row in rows]

    def get_user_stats(self, user_id: int) -> UserStats:
        games = self._one(
            "SELECT COUNT(*) AS total_games, COALESCE(SUM(amount_sats), 0) AS total_spent "
            "FROM game_payments WHERE user_id = ? AND status = 'paid'",
            user_id,
        )
        prizes = self._one(
            "SELECT COUNT(*) AS prizes_won, COALESCE(SUM(amount_sats), 0) AS total_earned "
            "FROM prize_payouts WHERE user_id = ? AND status = 'paid'",
            user_id,
        )
        scores = self._one(
            "SELECT COALESCE(MAX(score), 0) AS high_score, COUNT(*) AS total_plays "
            "FROM scores WHERE user_id = ?",
            user_id,
        )
        return UserStats(
            total_games_purchased=games["total_games"],
            total_spent_sats=games["total_spent"],
            prizes_won=prizes["prizes_won"],
            total_earned_sats=prizes["total_earned"],
            high_score=scores["high_score"],
            total_plays=scores["total_plays"],
        )

    def get_pending_prize_for_user(self, user_id: int, date: str) -> PrizePayout | None:
        row = self._one(
            f"SELECT {_PAYOUT_COLUMNS} FROM prize_payouts "
            "WHERE user_id = ? AND date = ? AND status = 'pending'",
            user_id, date,
        )
        return PrizePayout._from_row(row) if row is not None else None