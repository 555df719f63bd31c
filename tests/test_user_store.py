import uuid

import pytest

from scorearena import db
from scorearena.errors import DatabaseError, InvalidInputError
from scorearena.user_store import UserStore

PUBKEY = "ab" * 32
OTHER_PUBKEY = "cd" * 32
SESSION_PREFIX = "session_"


@pytest.fixture
def conn():
    connection = db.connect(":memory:")
    db.initialize(connection)
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    return UserStore(conn)


def test_login_creates_user_with_default_name(store):
    info = store.login(PUBKEY)
    assert info.username == "player_" + PUBKEY[:8]
    assert info.pubkey == PUBKEY
    assert info.session_id.startswith("session_")
    assert info.banned is False
    user = store.find_by_pubkey(PUBKEY)
    assert user.username == info.username
    assert user.password_hash is None


def test_login_twice_reuses_account(store):
    store.login(PUBKEY)
    first = store.find_by_pubkey(PUBKEY)
    second_info = store.login(PUBKEY)
    assert store.find_by_pubkey(PUBKEY).id == first.id
    assert second_info.username == first.username


def test_login_session_ids_are_unique_v7_uuids(store):
    first = store.login(PUBKEY).session_id
    second = store.login(PUBKEY).session_id
    assert first.startswith(SESSION_PREFIX)
    assert second.startswith(SESSION_PREFIX)
    first_uuid = uuid.UUID(first[len(SESSION_PREFIX):])
    second_uuid = uuid.UUID(second[len(SESSION_PREFIX):])
    assert first_uuid.version == 7
    assert second_uuid.version == 7
    assert len({first, second}) == 2


def test_login_short_pubkey_rejected(store):
    with pytest.raises(InvalidInputError):
        store.login("abc")


def test_register_uses_given_username(store):
    info = store.register(PUBKEY, "pilot")
    assert info.username == "pilot"
    assert info.lightning_address is None
    assert store.find_by_pubkey(PUBKEY).username == "pilot"


def test_register_existing_pubkey_rejected(store):
    store.register(PUBKEY)
    with pytest.raises(InvalidInputError) as excinfo:
        store.register(PUBKEY, "again")
    assert PUBKEY in excinfo.value.message


def test_username_user_lookup(store):
    created = store.register_username_user(PUBKEY, "pilot", "placeholder", "secret")
    found = store.find_by_username("pilot")
    assert found == created
    assert store.username_exists("pilot") is True
    assert store.username_exists("nobody") is False


def test_plain_user_not_found_by_username(store):
    store.register(PUBKEY, "pilot")
    assert store.find_by_username("pilot") is None
    assert store.username_exists("pilot") is False


def test_duplicate_pubkey_raises_database_error(store):
    store.register_username_user(PUBKEY, "pilot", "placeholder", "secret")
    with pytest.raises(DatabaseError):
        store.register_username_user(PUBKEY, "other", "placeholder", "secret")


def test_update_password(store):
    user = store.register_username_user(PUBKEY, "pilot", "placeholder", "secret")
    store.update_password(user.id, "token", "password")
    updated = store.find_by_id(user.id)
    assert updated.password_hash == "token"
    assert updated.encrypted_nsec == "password"


def test_ban_and_unban(store):
    store.register(PUBKEY)
    user = store.find_by_pubkey(PUBKEY)
    store.ban_user(user.id, "cheating")
    banned = store.find_by_id(user.id)
    assert banned.banned == 1
    assert banned.ban_reason == "cheating"
    info = store.login(PUBKEY)
    assert info.banned is True
    assert info.ban_reason == "cheating"
    store.unban_user(user.id)
    restored = store.find_by_id(user.id)
    assert restored.banned == 0
    assert restored.ban_reason is None


def test_lightning_address_round_trip(store):
    store.register(PUBKEY)
    user = store.find_by_pubkey(PUBKEY)
    store.update_lightning_address(user.id, "pilot@example.com")
    assert store.find_by_id(user.id).lightning_address == "pilot@example.com"
    assert store.login(PUBKEY).lightning_address == "pilot@example.com"
    store.update_lightning_address(user.id, None)
    assert store.find_by_id(user.id).lightning_address is None


def test_missing_user_lookups(store):
    store.register(OTHER_PUBKEY)
    assert store.find_by_id(9999) is None
    assert store.find_by_pubkey(PUBKEY) is None


def test_ping_on_closed_connection_raises(conn, store):
    conn.close()
    with pytest.raises(DatabaseError):
        store.ping()