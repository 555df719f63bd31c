import pytest

from scorearena.errors import InvalidInputError, status_for
from scorearena.invoices import (
    is_lightning_invoice,
    parse_bolt11_amount,
    validate_tip_amount,
)


def test_micro_amount_from_format_example():
    assert parse_bolt11_amount("lnbc2500u1pvjluezpp5qqqsyqcyq5rqwzqf") == 250000


def test_milli_amount_from_format_example():
    assert parse_bolt11_amount("lnbc20m1pvjluezpp5qqqsyqcyq5rqwzqf") == 2000000


def test_zero_amount_invoice_returns_none():
    assert parse_bolt11_amount("lnbc1pvjluezpp5qqqsyqcyq5rqwzqf") is None


@pytest.mark.parametrize(
    "invoice",
    ["bitcoin:abc", "lnxx2500u1abc", "", "lnbc2500uabc", "lnbcabc1xyz", "lnbc25x001x"],
)
def test_unreadable_invoices_return_none(invoice):
    assert parse_bolt11_amount(invoice) is None


def test_case_is_ignored():
    assert parse_bolt11_amount("LNBC2500U1PVJLUEZ") == parse_bolt11_amount(
        "lnbc2500u1pvjluez"
    )


@pytest.mark.parametrize("prefix", ["lnbcrt", "lntbs", "lntb"])
def test_network_prefixes_share_amount_rules(prefix):
    assert parse_bolt11_amount(f"{prefix}2500u1abc") == parse_bolt11_amount(
        "lnbc2500u1abc"
    )


def test_multiplier_relations():
    assert parse_bolt11_amount("lnbc1m1x") == parse_bolt11_amount("lnbc1000u1x")
    assert parse_bolt11_amount("lnbc1000n1x") == parse_bolt11_amount("lnbc1u1x")
    assert parse_bolt11_amount("lnbc2m1x") == parse_bolt11_amount("lnbc2000000n1x")


def test_whole_bitcoin_amount_matches_milli_equivalent():
    assert parse_bolt11_amount("lnbc21x") == parse_bolt11_amount("lnbc2000m1x")


def test_amount_scales_linearly():
    single = parse_bolt11_amount("lnbc5u1x")
    assert parse_bolt11_amount("lnbc50u1x") == single * 10


@pytest.mark.parametrize(
    "invoice", ["lnbc2500u1abc", "lnbcrt10n1abc", "lntbs1abc", "lntb20m1abc"]
)
def test_recognised_invoice_prefixes(invoice):
    assert is_lightning_invoice(invoice) is True


@pytest.mark.parametrize("invoice", ["LNBC2500u1abc", "bitcoin:abc", "lnurl1abc", ""])
def test_rejected_invoice_prefixes(invoice):
    assert is_lightning_invoice(invoice) is False


@pytest.mark.parametrize("amount", [1, 500, 1_000_000])
def test_valid_tip_amounts_are_returned(amount):
    assert validate_tip_amount(amount) == amount


@pytest.mark.parametrize("amount", [0, -5, 1_000_001])
def test_out_of_range_tip_amounts_raise(amount):
    with pytest.raises(InvalidInputError):
        validate_tip_amount(amount)


def test_tip_error_maps_to_bad_request():
    with pytest.raises(InvalidInputError) as excinfo:
        validate_tip_amount(0)
    assert status_for(excinfo.value) == (
        400,
        "Amount must be between 1 and 1,000,000 sats",
    )