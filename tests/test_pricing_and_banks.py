import pytest

from marketplace.errors import InvalidBankCode, UnsupportedBankCode
from marketplace.services.banks import ensure_transfer_allowed, get_bank_code
from marketplace.shared.pricing import calculate_commission, split_amount
from marketplace.shared.validators import (
    normalize_account_name,
    parse_iso_datetime,
    sanitize_account_number,
)


def test_ten_thousand_naira_splits_fifteen_percent() -> None:
    assert split_amount(10000) == (1500, 8500)


@pytest.mark.parametrize(
    "amount, commission",
    [
        (30, 5),  # 4.5 rounds half-up, not to even
        (10, 2),
        (3, 0),
        (12345, 1852),
        (99999, 15000),
    ],
)
def test_commission_rounds_half_up_to_whole_naira(amount, commission) -> None:
    assert calculate_commission(amount) == commission


@pytest.mark.parametrize("amount", [1, 7, 333, 10000, 12345, 250000])
def test_split_always_sums_to_the_gross_amount(amount) -> None:
    commission, worker_amount = split_amount(amount)
    assert commission + worker_amount == amount
    assert worker_amount >= 0


def test_bank_code_lookup_is_case_insensitive() -> None:
    assert get_bank_code("Access Bank") == "044"
    assert get_bank_code("  access bank ") == "044"
    assert get_bank_code("Imaginary Bank") is None
    assert get_bank_code(None) is None


def test_transfer_gating_rejects_non_numeric_codes() -> None:
    for code in (None, "", "04A", "044 "):
        with pytest.raises(InvalidBankCode):
            ensure_transfer_allowed(code, allowed_codes=["044"])


def test_transfer_gating_rejects_codes_outside_the_allow_list() -> None:
    with pytest.raises(UnsupportedBankCode) as excinfo:
        ensure_transfer_allowed("058", allowed_codes=["044"])
    assert excinfo.value.details["bank_code"] == "058"
    assert ensure_transfer_allowed("044", allowed_codes=["044"]) == "044"


def test_account_number_must_be_ten_digits() -> None:
    assert sanitize_account_number("069-000-0031") == "0690000031"
    assert sanitize_account_number("12345") is None
    assert sanitize_account_number(None) is None


def test_account_names_compare_loosely() -> None:
    assert normalize_account_name("  ADA   obi ") == normalize_account_name("Ada Obi")


def test_iso_dates_are_stored_as_naive_utc() -> None:
    parsed = parse_iso_datetime("2026-03-01T10:00:00+01:00")
    assert parsed.tzinfo is None
    assert parsed.hour == 9
    assert parse_iso_datetime("2026-03-01T10:00:00Z").hour == 10
    assert parse_iso_datetime("next tuesday") is None
