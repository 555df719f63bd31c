"""Queries and daily summaries over the public audit ledger."""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from scorearena.errors import InvalidInputError
from scorearena.ledger_store import LedgerEvent, LedgerStore

MISSING_FILTER_MESSAGE = "Either 'date' or 'type' query parameter is required"

_INTEGER = re.compile(r"[+-]?[0-9]+")
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


def _parse_i64(value: Any) -> int | None:
    if not isinstance(value, str) or not _INTEGER.fullmatch(value):
        return None
    number = int(value)
    return number if _I64_MIN <= number <= _I64_MAX else None


def _load(event: LedgerEvent) -> Any:
    try:
        return json.loads(event.event_json)
    except ValueError:
        return None


def _tag_pairs(event: LedgerEvent) -> Iterable[tuple[Any, Any]]:
    """Yield (name, value) for every tag of the event with at least two items."""
    payload = _load(event)
    if not isinstance(payload, dict):
        return
    tags = payload.get("tags")
    if not isinstance(tags, list):
        return
    for tag in tags:
        if isinstance(tag, list) and len(tag) >= 2:
            yield tag[0], tag[1]


@dataclass
class LedgerSummary:
    """Totals and competition outcome recorded in the ledger for one day."""

    date: str
    total_entries: int
    total_scores_verified: int
    pool_sats: int
    winner_pubkey: str | None
    winning_score: int | None
    prize_sats: int | None
    payout_completed: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def query_events(
    store: LedgerStore, date: str | None = None, event_type: str | None = None
) -> list[LedgerEvent]:
    """Select events by date, by type, or by both; one of them is required."""
    if date is not None:
        events = store.get_events_by_date(date)
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return events
    if event_type is not None:
        return store.get_events_by_type(event_type)
    raise InvalidInputError(MISSING_FILTER_MESSAGE)


def event_payloads(events: Iterable[LedgerEvent]) -> list[Any]:
    """Return the parsed signed JSON of each event, skipping unreadable ones."""
    payloads = []
    for event in events:
        try:
            payloads.append(json.loads(event.event_json))
        except ValueError:
            continue
    return payloads


def summarize_ledger(date: str, events: Iterable[LedgerEvent]) -> LedgerSummary:
    """Build the day's summary from its ledger events."""
    events = list(events)
    entries = [e for e in events if e.event_type == "game_entry"]

    pool_sats = 0
    for event in entries:
        for name, value in _tag_pairs(event):
            if name == "amount":
                amount = _parse_i64(value)
                if amount is not None:
                    pool_sats += amount

    winner_pubkey: str | None = None
    winning_score: int | None = None
    prize_sats: int | None = None
    competition = next((e for e in events if e.event_type == "competition_result"), None)
    if competition is not None:
        for name, value in _tag_pairs(competition):
            if name == "winner":
                winner_pubkey = value if isinstance(value, str) else None
            elif name == "winning_score":
                winning_score = _parse_i64(value)
            elif name == "prize_sats":
                prize_sats = _parse_i64(value)

    return LedgerSummary(
        date=date,
        total_entries=len(entries),
        total_scores_verified=sum(1 for e in events if e.event_type == "score_verified"),
        pool_sats=pool_sats,
        winner_pubkey=winner_pubkey,
        winning_score=winning_score,
        prize_sats=prize_sats,
        payout_completed=any(e.event_type == "prize_payout" for e in events),
    )