"""Persistence of game sessions, configs, scores and replays."""

from __future__ import annotations

import base64
import json
import os
import re
import secrets
import sqlite3
import time
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Mapping

from scorearena.errors import DatabaseError, InvalidInputError, NotFoundError

CONFIG_VERSION = "1.0.0"
FPS = 60
CONFIG_LIFETIME = timedelta(minutes=5)
MAX_DIFFICULTY = 3.0
DIFFICULTY_PER_MINUTE = 0.1

_SESSION_COLUMNS = (
    "id, session_id, user_id, start_time, last_active, difficulty_factor, "
    "seed, engine_config, client_ip"
)
_REPLAY_SELECT = """
    SELECT sm.username, sm.score, sm.level, sm.frames,
           gs.seed, gs.engine_config, gil.input_log
    FROM score_metadata sm
    JOIN game_sessions gs ON gs.session_id = sm.session_id
    JOIN game_input_logs gil ON gil.session_id = sm.session_id
"""
_REPLAY_FILTER = """
      AND sm.rejected = 0
      AND gs.seed IS NOT NULL
      AND gs.engine_config IS NOT NULL
"""
_TIMESTAMP = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[ T](\d{2}:\d{2}:\d{2})(?:\.(\d+))?"
    r"\s*(?:(Z)|([+-])(\d{2}):?(\d{2})(?::?(\d{2}))?)?$"
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


def _parse_time(text: str) -> datetime:
    match = _TIMESTAMP.match(text.strip())
    if match is None:
        raise ValueError(f"unrecognised timestamp: {text}")
    date_part, time_part, fraction, zulu, sign, hours, minutes, seconds = match.groups()
    micros = int((fraction or "0")[:6].ljust(6, "0"))
    moment = datetime.strptime(f"{date_part} {time_part}", "%Y-%m-%d %H:%M:%S")
    moment = moment.replace(microsecond=micros)
    offset = timedelta(0)
    if sign is not None and not zulu:
        offset = timedelta(hours=int(hours), minutes=int(minutes), seconds=int(seconds or 0))
        if sign == "-":
            offset = -offset
    return moment.replace(tzinfo=timezone(offset))


def _uuid7() -> uuid.UUID:
    """A time-ordered UUID (version 7)."""
    millis = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (millis & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= ((rand >> 62) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & ((1 << 62) - 1)
    return uuid.UUID(int=value)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _camel_dict(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        return {_camel(f.name): _camel_dict(getattr(obj, f.name)) for f in fields(obj)}
    return obj


@dataclass
class GameSession:
    """One play session of one user."""

    id: int
    session_id: str
    user_id: int
    start_time: str
    last_active: str
    difficulty_factor: float
    seed: str | None
    engine_config: str | None
    client_ip: str | None

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> GameSession:
        return cls(**dict(row))


@dataclass
class Score:
    """A submitted score."""

    id: int
    user_id: int
    score: int
    level: int
    play_time: int
    created_at: str


@dataclass
class ScoreWithUsername:
    """A leaderboard entry."""

    id: int
    username: str
    score: int
    level: int
    play_time: int
    created_at: str
    banned: int


@dataclass
class ReplayData:
    """Everything a client needs to replay a verified game."""

    username: str
    score: int
    level: int
    frames: int
    seed: str
    engine_config: str
    input_log_base64: str

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> ReplayData:
        return cls(
            username=row["username"],
            score=row["score"],
            level=row["level"],
            frames=row["frames"],
            seed=row["seed"],
            engine_config=row["engine_config"],
            input_log_base64=base64.b64encode(bytes(row["input_log"])).decode("ascii"),
        )


@dataclass
class ShipConfig:
    radius: int
    turn_speed: float
    thrust: float
    friction: float
    invulnerability_time: int


@dataclass
class BulletsConfig:
    speed: int
    radius: int
    max_count: int
    life_time: int


@dataclass
class VerticesConfig:
    min: int
    max: int


@dataclass
class AsteroidsConfig:
    initial_count: int
    speed: int
    size: int
    vertices: VerticesConfig


@dataclass
class ScoringConfig:
    points_per_asteroid: int
    level_multiplier: float


@dataclass
class GameConfigResponse:
    """The game configuration handed to a client for one session."""

    version: str
    config_id: str
    session_id: str
    expiration_time: int
    fps: int
    seed: str
    engine_config: Any
    ship: ShipConfig
    bullets: BulletsConfig
    asteroids: AsteroidsConfig
    scoring: ScoringConfig

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form, with camelCase keys."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[_camel(f.name)] = value if f.name == "engine_config" else _camel_dict(value)
        return result


@dataclass
class ScoreMetadata:
    """Verification and bot-detection signals recorded for a score."""

    score_id: int
    session_id: str
    user_id: int
    username: str
    client_ip: str | None
    score: int
    level: int
    frames: int
    play_time: int
    server_elapsed_secs: float
    expected_play_secs: float
    server_timing_ratio: float
    client_claimed_secs: float | None = None
    timing_cross_ref_ratio: float | None = None
    timing_variance_us2: float | None = None
    timing_mean_offset_us: float | None = None
    ip_session_count: int | None = None
    ip_account_count: int | None = None
    flags: list[str] = field(default_factory=list)
    rejected: bool = False


class GameStore:
    """Reads and writes sessions, configs, scores, bans and replays."""

    def __init__(self, db: sqlite3.Connection) -> None:
        self.db = db

    def ping(self) -> None:
        """Raise DatabaseError if the database cannot be reached."""
        with _database_errors():
            self.db.execute("SELECT 1 AS ping").fetchone()

    def create_session(
        self,
        user_id: int,
        client_ip: str,
        engine_config: Mapping[str, Any] | None = None,
    ) -> GameSession:
        """Start a session with a fresh random seed and the given engine config."""
        session_id = f"session_{_uuid7()}"
        now = _format_time(_utcnow())
        seed_hex = f"{secrets.randbits(64):016x}"
        config_json = json.dumps(
            dict(engine_config) if engine_config is not None else {},
            separators=(",", ":"),
        )
        with _database_errors():
            cursor = self.db.execute(
                "INSERT INTO game_sessions (session_id, user_id, start_time, last_active, "
                "difficulty_factor, seed, engine_config, client_ip) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (session_id, user_id, now, now, 1.0, seed_hex, config_json, client_ip),
            )
        return GameSession(
            id=cursor.lastrowid,
            session_id=session_id,
            user_id=user_id,
            start_time=now,
            last_active=now,
            difficulty_factor=1.0,
            seed=seed_hex,
            engine_config=config_json,
            client_ip=client_ip,
        )

    def find_session(self, session_id: str) -> GameSession | None:
        with _database_errors():
            row = self.db.execute(
                f"SELECT {_SESSION_COLUMNS} FROM game_sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()
        return GameSession._from_row(row) if row is not None else None

    def update_session_activity(self, session_id: str) -> GameSession:
        """Touch a session and raise its difficulty with its age."""
        now = _utcnow()
        now_str = _format_time(now)
        session = self.find_session(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        try:
            start = _parse_time(session.start_time)
        except ValueError as err:
            raise InvalidInputError("Invalid date format in session start time") from err

        minutes = int((now - start) / timedelta(minutes=1))
        difficulty = min(1.0 + minutes * DIFFICULTY_PER_MINUTE, MAX_DIFFICULTY)

        with _database_errors():
            self.db.execute(
                "UPDATE game_sessions SET last_active = ?, difficulty_factor = ? "
                "WHERE session_id = ?",
                (now_str, difficulty, session_id),
            )
        session.last_active = now_str
        session.difficulty_factor = difficulty
        return session

    def create_game_config(self, session: GameSession) -> GameConfigResponse:
        """Record and return a config for the session, scaled by its difficulty."""
        config_id = f"config_{_uuid7()}"
        now = _utcnow()
        expires = now + CONFIG_LIFETIME
        with _database_errors():
            self.db.execute(
                "INSERT INTO game_configs (config_id, user_id, version, created_at, "
                "expiration_time) VALUES (?, ?, ?, ?, ?)",
                (config_id, session.user_id, CONFIG_VERSION, _format_time(now), _format_time(expires)),
            )

        engine_config: Any = {}
        if session.engine_config is not None:
            try:
                engine_config = json.loads(session.engine_config)
            except ValueError:
                engine_config = {}

        difficulty = session.difficulty_factor
        return GameConfigResponse(
            version=CONFIG_VERSION,
            config_id=config_id,
            session_id=session.session_id,
            expiration_time=int(expires.timestamp()) * 1000,
            fps=FPS,
            seed=session.seed or "",
            engine_config=engine_config,
            ship=ShipConfig(
                radius=10,
                turn_speed=0.1,
                thrust=0.1,
                friction=0.05,
                invulnerability_time=3000,
            ),
            bullets=BulletsConfig(speed=5, radius=2, max_count=10, life_time=60),
            asteroids=AsteroidsConfig(
                initial_count=int(5.0 * difficulty),
                speed=int(1.0 * difficulty),
                size=30,
                vertices=VerticesConfig(min=7, max=15),
            ),
            scoring=ScoringConfig(
                points_per_asteroid=int(10.0 * difficulty),
                level_multiplier=1.5,
            ),
        )

    def submit_score(self, user_id: int, score: int, level: int, play_time: int) -> Score:
        now = _format_time(_utcnow())
        with _database_errors():
            cursor = self.db.execute(
                "INSERT INTO scores (user_id, score, level, play_time, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (user_id, score, level, play_time, now),
            )
        return Score(
            id=cursor.lastrowid,
            user_id=user_id,
            score=score,
            level=level,
            play_time=play_time,
            created_at=now,
        )

    def get_top_scores(self, limit: int = 10) -> list[ScoreWithUsername]:
        with _database_errors():
            rows = self.db.execute(
                "SELECT s.id, u.username, s.score, s.level, s.play_time, s.created_at, u.banned "
                "FROM scores s JOIN users u ON s.user_id = u.id "
                "ORDER BY s.score DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [ScoreWithUsername(**dict(row)) for row in rows]

    def get_user_scores(self, user_id: int, limit: int = 10) -> list[Score]:
        with _database_errors():
            rows = self.db.execute(
                "SELECT id, user_id, score, level, play_time, created_at FROM scores "
                "WHERE user_id = ? ORDER BY score DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [Score(**dict(row)) for row in rows]

    def is_ip_banned(self, ip: str) -> bool:
        with _database_errors():
            (count,) = self.db.execute(
                "SELECT COUNT(*) FROM banned_ips WHERE ip = ?", (ip,)
            ).fetchone()
        return count > 0

    def ban_ip(self, ip: str, reason: str | None = None, banned_by: str | None = None) -> None:
        """Ban an address; banning it again leaves the first ban in place."""
        with _database_errors():
            self.db.execute(
                "INSERT OR IGNORE INTO banned_ips (ip, reason, banned_by) VALUES (?, ?, ?)",
                (ip, reason, banned_by),
            )

    def unban_ip(self, ip: str) -> None:
        with _database_errors():
            self.db.execute("DELETE FROM banned_ips WHERE ip = ?", (ip,))

    def get_ip_activity(self, client_ip: str) -> tuple[int, int]:
        """Return (sessions, distinct accounts) started from the address in the last hour."""
        with _database_errors():
            row = self.db.execute(
                "SELECT COUNT(*) AS session_count, COUNT(DISTINCT user_id) AS account_count "
                "FROM game_sessions WHERE client_ip = ? "
                "AND start_time >= datetime('now', '-1 hour')",
                (client_ip,),
            ).fetchone()
        return row["session_count"], row["account_count"]

    def save_score_metadata(self, meta: ScoreMetadata) -> None:
        values = asdict(meta)
        values["flags"] = ",".join(meta.flags) if meta.flags else None
        values["rejected"] = int(meta.rejected)
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with _database_errors():
            self.db.execute(
                f"INSERT INTO score_metadata ({columns}) VALUES ({placeholders})",
                tuple(values.values()),
            )

    def get_top_replays(self, limit: int = 3) -> list[ReplayData]:
        """Return today's best accepted games with everything needed to replay them."""
        today = _utcnow().date().isoformat()
        with _database_errors():
            rows = self.db.execute(
                _REPLAY_SELECT
                + " WHERE sm.created_at >= ? AND sm.created_at <= ? "
                + _REPLAY_FILTER
                + " ORDER BY sm.score DESC LIMIT ?",
                (f"{today} 00:00:00", f"{today} 23:59:59", limit),
            ).fetchall()
        return [ReplayData._from_row(row) for row in rows]

    def get_replay_by_score_id(self, score_id: int) -> ReplayData | None:
        with _database_errors():
            row = self.db.execute(
                _REPLAY_SELECT + " WHERE sm.score_id = ? " + _REPLAY_FILTER,
                (score_id,),
            ).fetchone()
        return ReplayData._from_row(row) if row is not None else None

    def save_input_log(self, session_id: str, input_log: bytes, input_hash: str) -> None:
        """Store a session's input log, replacing any earlier one."""
        now = _format_time(_utcnow())
        with _database_errors():
            self.db.execute(
                "INSERT INTO game_input_logs (session_id, input_log, input_hash, created_at) "
                "VALUES (?, ?, ?, ?) ON CONFLICT(session_id) DO UPDATE SET "
                "input_log = excluded.input_log, input_hash = excluded.input_hash",
                (session_id, bytes(input_log), input_hash, now),
            )