"""SQLite stores, anti-cheat checks, invoice helpers and ledger summaries for an arcade score competition."""

__version__ = "0.1.0"