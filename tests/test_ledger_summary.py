import json

import pytest

from scorearena import db
from scorearena.errors import InvalidInputError
from scorearena.ledger_store import LedgerEvent, LedgerStore
from scorearena.ledger_summary import (
    MISSING_FILTER_MESSAGE,
    event_payloads,
    query_events,
    summarize_ledger,
)

DATE = "2024-05-01"
WINNER = "ef" * 32


def _event(index, event_type, tags, raw=None):
    body = raw if raw is not None else json.dumps({"kind": 10100, "tags": tags})
    return LedgerEvent(index, f"ev{index}", event_type, body, None, DATE, "2024-05-01 10:00:00")


@pytest.fixture
def store():
    connection = db.connect(":memory:")
    db.initialize(connection)
    yield LedgerStore(connection)
    connection.close()


def test_query_requires_a_filter(store):
    with pytest.raises(InvalidInputError) as excinfo:
        query_events(store)
    assert excinfo.value.message == MISSING_FILTER_MESSAGE


def test_query_by_date_and_type(store):
    store.save_event("a", "game_entry", "{}", None, DATE)
    store.save_event("b", "score_verified", "{}", None, DATE)
    store.save_event("c", "game_entry", "{}", None, "2024-05-02")
    assert [e.event_id for e in query_events(store, DATE)] == ["a", "b"]
    assert [e.event_id for e in query_events(store, DATE, "game_entry")] == ["a"]
    assert [e.event_id for e in query_events(store, event_type="game_entry")] == ["a", "c"]


def test_event_payloads_skip_invalid_json():
    events = [_event(1, "game_entry", [["t", "game_entry"]]), _event(2, "game_entry", [], raw="not json")]
    payloads = event_payloads(events)
    assert payloads == [{"kind": 10100, "tags": [["t", "game_entry"]]}]


def test_pool_sums_entry_amounts():
    events = [
        _event(1, "game_entry", [["t", "game_entry"], ["amount", "100"]]),
        _event(2, "game_entry", [["amount", "250"]]),
        _event(3, "score_verified", [["amount", "999"]]),
    ]
    summary = summarize_ledger(DATE, events)
    assert summary.pool_sats == 100 + 250
    assert summary.total_entries == len(events) - 1
    assert summary.total_scores_verified == 1


def test_malformed_amounts_ignored():
    events = [
        _event(1, "game_entry", [["amount", "100"]]),
        _event(2, "game_entry", [["amount", "lots"]]),
        _event(3, "game_entry", [["amount", 50]]),
        _event(4, "game_entry", [["amount"]]),
        _event(5, "game_entry", [], raw="{broken"),
    ]
    summary = summarize_ledger(DATE, events)
    assert summary.pool_sats == 100
    assert summary.total_entries == len(events)


def test_competition_result_and_payout():
    events = [
        _event(1, "competition_result", [
            ["winner", WINNER],
            ["winning_score", "4200"],
            ["prize_sats", "900"],
        ]),
        _event(2, "prize_payout", [["amount", "900"]]),
    ]
    summary = summarize_ledger(DATE, events)
    assert summary.winner_pubkey == WINNER
    assert summary.winning_score == 4200
    assert summary.prize_sats == 900
    assert summary.payout_completed is True


def test_empty_day():
    summary = summarize_ledger(DATE, [])
    assert summary.to_dict() == {
        "date": DATE,
        "total_entries": 0,
        "total_scores_verified": 0,
        "pool_sats": 0,
        "winner_pubkey": None,
        "winning_score": None,
        "prize_sats": None,
        "payout_completed": False,
    }


def test_summary_from_store_round_trip(store):
    body = json.dumps({"tags": [["amount", "100"]]})
    store.save_event("a", "game_entry", body, None, DATE)
    summary = summarize_ledger(DATE, query_events(store, DATE))
    assert summary.pool_sats == 100
    assert summary.to_dict()["date"] == DATE