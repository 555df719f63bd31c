# scorearena

Back-end building blocks for a daily arcade score competition. Players pay
a small Lightning entry fee, which grants them plays. They play sessions
and submit scores. The top scorer of the day wins a prize.

Everything works on a single SQLite database. The package needs nothing
beyond the Python standard library.

## What is inside

- `scorearena.db`: `connect(path)` opens a SQLite connection. The
  connection uses autocommit, rows addressable by column name, and foreign
  keys turned on. `initialize(conn)` creates every table and index. You can
  run it again without harm.
- `scorearena.user_store.UserStore`: finds players by id, public key or
  username. It also handles:
  - `login`, which creates the account with a `player_<first 8 key chars>`
    name the first time a key is seen.
  - `register`, which raises `InvalidInputError` if the key is taken.
  - `register_username_user`, `update_password`, `ban_user`, `unban_user`
    and `update_lightning_address`.
- `scorearena.game_store.GameStore`: manages the game itself:
  - Sessions with a random 64-bit seed and a stored engine config.
    `update_session_activity` raises difficulty by 0.1 per minute of session
    age, capped at 3.0.
  - Per-session game configs. `create_game_config` returns a
    `GameConfigResponse`, and its `to_dict()` gives camelCase keys.
  - Scores, the top-score list and per-user scores.
  - IP bans, and IP activity counts over the last hour.
  - Score metadata, input logs and replay data (`get_top_replays`,
    `get_replay_by_score_id`).
- `scorearena.payment_store.PaymentStore`: manages money and prizes:
  - Entry-fee payments and their status.
  - Plays granted per payment, with an optional expiry. `use_one_play`
    spends a play from the oldest paid payment.
  - The day's unbanned top scorer.
  - Prize payouts, which are claimable while pending or failed.
  - Per-user `UserStats`.
- `scorearena.ledger_store.LedgerStore`: stores and queries audit-ledger
  events by date, type, user or id, and stores game input logs.
- `scorearena.ledger_summary`: has three functions:
  - `query_events(store, date, event_type)` needs at least one of the two
    filters and raises `InvalidInputError` otherwise.
  - `event_payloads(events)` parses each event's JSON.
  - `summarize_ledger(date, events)` builds a `LedgerSummary` with these
    fields:
    - the number of entries and verified scores
    - the pool in sats
    - the winner, winning score and prize
    - whether a payout was made
- `scorearena.bot_detection`: plain functions returning a
  `BotDetectionResult` (`flags`, `reject`):
  - `analyze_server_timing` compares frame count with server-measured
    elapsed time.
  - `analyze_ip_activity` checks recent activity from one IP address.
  - `analyze_frame_timings` checks client frame-timing samples. It flags
    but never rejects.
  - `cross_reference_timings` compares claimed time with server time.
  - `extract_timing_signals` returns the raw statistics.

  Thresholds live in `BotDetectionSettings`.
- `scorearena.invoices`: has three functions:
  - `parse_bolt11_amount` reads the sats amount from a bolt11 invoice. It
    returns `None` for zero-amount or unreadable invoices.
  - `is_lightning_invoice` checks the network prefix.
  - `validate_tip_amount` accepts 1 to 1,000,000 sats and raises
    `InvalidInputError` for anything else.
- `scorearena.errors`: defines the domain errors. The base is `DomainError`
  and the subclasses are `DatabaseError`, `NotFoundError`,
  `InvalidInputError`, `AuthenticationError` and `ThreadError`.
  `status_for(error)` gives the HTTP status code and body text to report.
  Not-found, invalid-input and authentication errors carry their own
  message. Everything else is reported as a 500 "Internal server error".
- `scorearena.file_utils.create_folder(path)`: makes sure a directory
  exists. It logs failures instead of raising them.

## Example

```python
from scorearena.db import connect, initialize
from scorearena.user_store import UserStore
from scorearena.game_store import GameStore
from scorearena.payment_store import PaymentStore

conn = connect(":memory:")
initialize(conn)

users = UserStore(conn)
games = GameStore(conn)
payments = PaymentStore(conn)

users.login("a" * 64)
user = users.find_by_pubkey("a" * 64)

payment = payments.create_game_payment(user.id, "pay-1", "lnbc2500u1example", 250)
payments.update_payment_status("pay-1", "paid")
payments.set_plays_remaining("pay-1", 3, 0)   # 0: plays never expire
print(payments.use_one_play(user.id))         # 2

session = games.create_session(user.id, "203.0.113.7", {})
config = games.create_game_config(session)
print(config.to_dict()["sessionId"] == session.session_id)  # True

games.submit_score(user.id, 1200, 3, 95)
print(games.get_top_scores(10))
```

The anti-cheat and invoice checks work without a database:

```python
from scorearena.bot_detection import analyze_server_timing
from scorearena.invoices import parse_bolt11_amount

result = analyze_server_timing(3600, 1000, 1020)
print(result.reject, result.flags)             # True ['impossible_speed']

print(parse_bolt11_amount("lnbc2500u1example"))  # 250000
```

## What this package does not do

The package is a library of stores and checks. It does not include:

- an HTTP server or route handlers
- a client for a Lightning node or for resolving lightning addresses
- signing of ledger events
- the game engine that replays input logs to verify a score

A program built on it supplies those parts. It also supplies the engine
config that `GameStore.create_session` stores with each session.

## Running the tests

```
pip install -e .[test]
pytest
```