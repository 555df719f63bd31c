"""Persistence of player accounts."""

from __future__ import annotations

import logging
import os
import sqlite3
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator

from scorearena.errors import DatabaseError, InvalidInputError

logger = logging.getLogger(__name__)

_USER_COLUMNS = (
    "id, nostr_pubkey, username, password_hash, encrypted_nsec, "
    "lightning_address, banned, ban_reason, created_at, updated_at"
)
_DEFAULT_NAME_PREFIX = "player_"
_DEFAULT_NAME_KEY_CHARS = 8


@contextmanager
def _database_errors() -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as err:
        raise DatabaseError(str(err)) from err


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f +00:00:00")


def _uuid7() -> uuid.UUID:
    """A time-ordered UUID (version 7)."""
    millis = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (millis & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= ((rand >> 68) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & ((1 << 62) - 1)
    return uuid.UUID(int=value)


def _new_session_id() -> str:
    return f"session_{_uuid7()}"


def _default_username(pubkey: str) -> str:
    if len(pubkey) < _DEFAULT_NAME_KEY_CHARS:
        raise InvalidInputError(f"Public key too short: {pubkey}")
    return _DEFAULT_NAME_PREFIX + pubkey[:_DEFAULT_NAME_KEY_CHARS]


@dataclass
class User:
    """A stored player account."""

    id: int
    nostr_pubkey: str
    username: str
    password_hash: str | None
    encrypted_nsec: str | None
    lightning_address: str | None
    banned: int
    ban_reason: str | None
    created_at: str
    updated_at: str

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> User:
        return cls(**dict(row))


@dataclass
class UserInfo:
    """What a client learns about itself after logging in or registering."""

    username: str
    pubkey: str
    session_id: str
    lightning_address: str | None
    banned: bool
    ban_reason: str | None


class UserStore:
    """Reads and writes the ``users`` table."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self.db = db

    def ping(self) -> None:
        """Raise DatabaseError if the database cannot be reached."""
        with _database_errors():
            self.db.execute("SELECT 1 AS ping").fetchone()

    def _fetch_one(self, where: str, *params: object) -> User | None:
        with _database_errors():
            row = self.db.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE {where}", params
            ).fetchone()
        return User._from_row(row) if row is not None else None

    def find_by_id(self, id: int) -> User | None:
        return self._fetch_one("id = ?", id)

    def find_by_pubkey(self, pubkey: str) -> User | None:
        return self._fetch_one("nostr_pubkey = ?", pubkey)

    def find_by_username(self, username: str) -> User | None:
        """Find a password-holding account by its username."""
        return self._fetch_one("username = ? AND password_hash IS NOT NULL", username)

    def username_exists(self, username: str) -> bool:
        with _database_errors():
            (count,) = self.db.execute(
                "SELECT COUNT(*) FROM users WHERE username = ? AND password_hash IS NOT NULL",
                (username,),
            ).fetchone()
        return count > 0

    def login(self, pubkey: str) -> UserInfo:
        """Log in by public key, creating the account on first sight."""
        user = self.find_by_pubkey(pubkey)
        if user is None:
            user = self._create_user(pubkey, _default_username(pubkey))
        logger.info("User logged in: %s", user.username)
        return UserInfo(
            username=user.username,
            pubkey=pubkey,
            session_id=_new_session_id(),
            lightning_address=user.lightning_address,
            banned=user.banned != 0,
            ban_reason=user.ban_reason,
        )

    def register(self, pubkey: str, username: str | None = None) -> UserInfo:
        """Create a new account; raise InvalidInputError if the key is taken."""
        if self.find_by_pubkey(pubkey) is not None:
            raise InvalidInputError(f"User already exists with pubkey: {pubkey}")
        name = username if username is not None else _default_username(pubkey)
        user = self._create_user(pubkey, name)
        logger.info("User registered: %s", user.username)
        return UserInfo(
            username=user.username,
            pubkey=pubkey,
            session_id=_new_session_id(),
            lightning_address=None,
            banned=False,
            ban_reason=None,
        )

    def register_username_user(
        self,
        nostr_pubkey: str,
        username: str,
        password_hash: str,
        encrypted_nsec: str,
    ) -> User:
        """Create an account that logs in with a username and password."""
        now = _now()
        with _database_errors():
            cursor = self.db.execute(
                "INSERT INTO users (nostr_pubkey, username, password_hash, encrypted_nsec, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                (nostr_pubkey, username, password_hash, encrypted_nsec, now, now),
            )
        return User(
            id=cursor.lastrowid,
            nostr_pubkey=nostr_pubkey,
            username=username,
            password_hash=password_hash,
            encrypted_nsec=encrypted_nsec,
            lightning_address=None,
            banned=0,
            ban_reason=None,
            created_at=now,
            updated_at=now,
        )

    def _update(self, assignments: str, user_id: int, *params: object) -> None:
        with _database_errors():
            self.db.execute(
                f"UPDATE users SET {assignments}, updated_at = ? WHERE id = ?",
                (*params, _now(), user_id),
            )

    def update_password(self, user_id: int, password_hash: str, encrypted_nsec: str) -> None:
        self._update("password_hash = ?, encrypted_nsec = ?", user_id, password_hash, encrypted_nsec)

    def ban_user(self, user_id: int, reason: str) -> None:
        self._update("banned = 1, ban_reason = ?", user_id, reason)

    def unban_user(self, user_id: int) -> None:
        self._update("banned = 0, ban_reason = NULL", user_id)

    def update_lightning_address(self, user_id: int, lightning_address: str | None) -> None:
        self._update("lightning_address = ?", user_id, lightning_address)

    def _create_user(self, pubkey: str, username: str) -> User:
        now = _now()
        with _database_errors():
            cursor = self.db.execute(
                "INSERT INTO users (nostr_pubkey, username, created_at, updated_at) "
                "VALUES (?, ?, ?, ?)",
                (pubkey, username, now, now),
            )
        return User(
            id=cursor.lastrowid,
            nostr_pubkey=pubkey,
            username=username,
            password_hash=None,
            encrypted_nsec=None,
            lightning_address=None,
            banned=0,
            ban_reason=None,
            created_at=now,
            updated_at=now,
        )