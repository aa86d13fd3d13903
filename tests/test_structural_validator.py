import pytest

from structural_validator import (describe_mismatch, parse_count, validate_envelope, validate_group,
                                  validate_transaction)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize("check", [validate_transaction, validate_group, validate_envelope])
def test_matching_header_and_trailer(check):
    assert check("0001", "0001", 9, 9)


@pytest.mark.parametrize("check", [validate_transaction, validate_group, validate_envelope])
def test_control_number_mismatch(check):
    assert not check("0001", "0002", 9, 9)


@pytest.mark.parametrize("check", [validate_transaction, validate_group, validate_envelope])
def test_count_mismatch(check):
    assert not check("0001", "0001", 2, 1)


@pytest.mark.parametrize("check", [validate_transaction, validate_group, validate_envelope])
def test_unreadable_count_fails(check):
    assert not check("0001", "0001", None, 0)


def test_missing_trailer_control_number_fails():
    assert not validate_transaction("0001", None, 3, 3)


def test_control_numbers_compare_as_exact_strings():
    assert not validate_group("1", "01", 1, 1)
    assert not validate_envelope("000000001", "000000001 ", 1, 1)


def test_describe_count_mismatch():
    messages = describe_mismatch("1", "1", 2, 1, "GS06", "GE")
    assert messages == ["Count mismatch in GE: stated=2, actual=1."]


def test_describe_control_and_count_mismatch():
    messages = describe_mismatch("0001", "0002", 5, 4, "ST02", "SE")
    assert len(messages) == 2
    assert "ST02 has '0001' but SE has '0002'" in messages[0]
    assert "stated=5, actual=4" in messages[1]


def test_describe_missing_count():
    messages = describe_mismatch("000000001", "000000001", None, 1, "ISA13", "IEA")
    assert messages == ["IEA count is missing or not numeric (actual=1)."]


def test_describe_match_is_empty():
    assert describe_mismatch("1", "1", 1, 1, "GS06", "GE") == []


@pytest.mark.parametrize("value, expected", [
    ("9", 9),
    ("0009", 9),
    (" 12 ", 12),
    ("", None),
    ("12a", None),
    ("-1", None),
    ("1.0", None),
    ("٣", None),
    (None, None),
])
def test_parse_count(value, expected):
    assert parse_count(value) == expected
