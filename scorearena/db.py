"""SQLite connection handling and schema."""

from __future__ import annotations

import os
import sqlite3

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    nostr_pubkey TEXT NOT NULL UNIQUE,
    username TEXT NOT NULL,
    password_hash TEXT,
    encrypted_nsec TEXT,
    lightning_address TEXT,
    banned INTEGER NOT NULL DEFAULT 0,
    ban_reason TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS game_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL UNIQUE,
    user_id INTEGER NOT NULL REFERENCES users(id),
    start_time TEXT NOT NULL,
    last_active TEXT NOT NULL,
    difficulty_factor REAL NOT NULL DEFAULT 1.0,
    seed TEXT,
    engine_config TEXT,
    client_ip TEXT
);

CREATE TABLE IF NOT EXISTS game_configs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    config_id TEXT NOT NULL UNIQUE,
    user_id INTEGER NOT NULL REFERENCES users(id),
    version TEXT NOT NULL,
    created_at TEXT NOT NULL,
    expiration_time TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS scores (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    score INTEGER NOT NULL,
    level INTEGER NOT NULL,
    play_time INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS banned_ips (
    ip TEXT PRIMARY KEY,
    reason TEXT,
    banned_by TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS score_metadata (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    score_id INTEGER NOT NULL,
    session_id TEXT NOT NULL,
    user_id INTEGER NOT NULL,
    username TEXT NOT NULL,
    client_ip TEXT,
    score INTEGER NOT NULL,
    level INTEGER NOT NULL,
    frames INTEGER NOT NULL,
    play_time INTEGER NOT NULL,
    server_elapsed_secs REAL NOT NULL,
    expected_play_secs REAL NOT NULL,
    server_timing_ratio REAL NOT NULL,
    client_claimed_secs REAL,
    timing_cross_ref_ratio REAL,
    timing_variance_us2 REAL,
    timing_mean_offset_us REAL,
    ip_session_count INTEGER,
    ip_account_count INTEGER,
    flags TEXT,
    rejected INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS game_input_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL UNIQUE,
    input_log BLOB NOT NULL,
    input_hash TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS ledger_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL UNIQUE,
    event_type TEXT NOT NULL,
    event_json TEXT NOT NULL,
    related_user_id INTEGER,
    related_date TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS game_payments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    payment_id TEXT NOT NULL UNIQUE,
    invoice TEXT NOT NULL,
    amount_sats INTEGER NOT NULL,
    status TEXT NOT NULL,
    plays_remaining INTEGER NOT NULL DEFAULT 0,
    expires_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    paid_at TEXT
);

CREATE TABLE IF NOT EXISTS prize_payouts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    date TEXT NOT NULL,
    score INTEGER NOT NULL,
    amount_sats INTEGER NOT NULL,
    payment_request TEXT,
    payment_id TEXT,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    paid_at TEXT,
    UNIQUE (user_id, date)
);

CREATE INDEX IF NOT EXISTS idx_game_sessions_client_ip ON game_sessions (client_ip);
CREATE INDEX IF NOT EXISTS idx_scores_user_id ON scores (user_id);
CREATE INDEX IF NOT EXISTS idx_ledger_events_date ON ledger_events (related_date);
CREATE INDEX IF NOT EXISTS idx_ledger_events_type ON ledger_events (event_type);
CREATE INDEX IF NOT EXISTS idx_game_payments_user ON game_payments (user_id, status);
"""


def connect(path: str | os.PathLike[str]) -> sqlite3.Connection:
    """Open a database in autocommit mode with named-column rows and foreign keys on."""
    conn = sqlite3.connect(os.fspath(path), isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize(conn: sqlite3.Connection) -> None:
    """Create every table and index the stores use; safe to run repeatedly."""
    conn.executescript(SCHEMA)