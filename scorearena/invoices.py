"""Lightning invoice checks used by the payment and tipping endpoints."""

from __future__ import annotations

import re

from scorearena.errors import InvalidInputError

MIN_TIP_SATS = 1
MAX_TIP_SATS = 1_000_000
TIP_AMOUNT_MESSAGE = "Amount must be between 1 and 1,000,000 sats"

# Longest prefixes first so "lnbcrt" is not mistaken for "lnbc".
_NETWORK_PREFIXES = ("lnbcrt", "lntbs", "lnbc", "lntb")
_ACCEPTED_PREFIXES = ("lnbc", "lnbcrt", "lntbs", "lntb")

# Millisatoshi per unit of each multiplier suffix.
_MSAT_PER_UNIT = {
    "m": 100_000_000,
    "u": 100_000,
    "n": 100,
}
_MSAT_PER_BTC = 100_000_000_000

_INTEGER = re.compile(r"[+-]?[0-9]+")
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1


def _parse_i64(text: str) -> int | None:
    if not _INTEGER.fullmatch(text):
        return None
    value = int(text)
    if not _I64_MIN <= value <= _I64_MAX:
        return None
    return value


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def parse_bolt11_amount(invoice: str) -> int | None:
    """Return the amount in sats encoded in a bolt11 invoice.

    Returns None for zero-amount invoices and for anything that cannot be
    read as an invoice amount.
    """
    lower = invoice.lower()
    after_prefix = next(
        (lower[len(p):] for p in _NETWORK_PREFIXES if lower.startswith(p)),
        None,
    )
    if after_prefix is None:
        return None

    sep_pos = after_prefix.find("1")
    if sep_pos < 0:
        return None
    amount_str = after_prefix[:sep_pos]
    if not amount_str:
        return None

    suffix = amount_str[-1]
    if suffix == "p":
        value = _parse_i64(amount_str[:-1])
        if value is None:
            return None
        # One pico-bitcoin is a hundredth of a satoshi.
        return _trunc_div(value, 100)

    if suffix in _MSAT_PER_UNIT:
        num_str, multiplier = amount_str[:-1], _MSAT_PER_UNIT[suffix]
    else:
        num_str, multiplier = amount_str, _MSAT_PER_BTC

    value = _parse_i64(num_str)
    if value is None:
        return None
    return _trunc_div(value * multiplier, 1_000)


def is_lightning_invoice(invoice: str) -> bool:
    """Tell whether ``invoice`` starts with a recognised bolt11 network prefix."""
    return invoice.startswith(_ACCEPTED_PREFIXES)


def validate_tip_amount(amount_sats: int) -> int:
    """Return ``amount_sats`` if it is an acceptable tip, else raise InvalidInputError."""
    if amount_sats < MIN_TIP_SATS or amount_sats > MAX_TIP_SATS:
        raise InvalidInputError(TIP_AMOUNT_MESSAGE)
    return amount_sats