import pytest

from scorearena import db
from scorearena.errors import DatabaseError
from scorearena.ledger_store import LedgerStore


@pytest.fixture
def conn():
    connection = db.connect(":memory:")
    db.initialize(connection)
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    return LedgerStore(conn)


def test_event_round_trip(store):
    store.save_event("ev1", "game_entry", '{"tags": []}', 7, "2024-05-01")
    event = store.get_event_by_id("ev1")
    assert event.event_id == "ev1"
    assert event.event_type == "game_entry"
    assert event.event_json == '{"tags": []}'
    assert event.related_user_id == 7
    assert event.related_date == "2024-05-01"
    assert event.created_at


def test_missing_event_is_none(store):
    store.save_event("ev1", "game_entry", "{}")
    assert store.get_event_by_id("nope") is None


def test_optional_fields_default_to_none(store):
    store.save_event("ev1", "game_entry", "{}")
    event = store.get_event_by_id("ev1")
    assert event.related_user_id is None
    assert event.related_date is None


def test_events_by_date_filters_and_keeps_order(store):
    store.save_event("a", "game_entry", "{}", None, "2024-05-01")
    store.save_event("b", "score_verified", "{}", None, "2024-05-02")
    store.save_event("c", "prize_payout", "{}", None, "2024-05-01")
    events = store.get_events_by_date("2024-05-01")
    assert [e.event_id for e in events] == ["a", "c"]


def test_events_by_type(store):
    store.save_event("a", "game_entry", "{}", None, "2024-05-01")
    store.save_event("b", "score_verified", "{}", None, "2024-05-01")
    store.save_event("c", "game_entry", "{}", None, "2024-05-02")
    assert [e.event_id for e in store.get_events_by_type("game_entry")] == ["a", "c"]
    assert store.get_events_by_type("competition_result") == []


def test_events_by_user(store):
    store.save_event("a", "game_entry", "{}", 1)
    store.save_event("b", "game_entry", "{}", 2)
    store.save_event("c", "game_entry", "{}", 1)
    assert [e.event_id for e in store.get_events_by_user(1)] == ["a", "c"]


def test_duplicate_event_id_rejected(store):
    store.save_event("a", "game_entry", "{}")
    with pytest.raises(DatabaseError):
        store.save_event("a", "score_verified", "{}")


def test_input_log_round_trip(store):
    payload = bytes([0, 1, 2, 255, 128])
    store.save_input_log("session_x", payload, "feed")
    log = store.get_input_log("session_x")
    assert log.session_id == "session_x"
    assert log.input_log == payload
    assert log.input_hash == "feed"


def test_missing_input_log_is_none(store):
    store.save_input_log("session_x", b"\x01", "feed")
    assert store.get_input_log("session_y") is None


def test_duplicate_input_log_rejected(store):
    store.save_input_log("session_x", b"\x01", "feed")
    with pytest.raises(DatabaseError):
        store.save_input_log("session_x", b"\x02", "beef")