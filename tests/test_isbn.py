from __future__ import annotations

import re

import pytest

from isbn import IsbnKind, clean_isbn, normalize


def test_hyphenated_isbn13_is_normalized() -> None:
    result = normalize("978-0-13-468599-1")
    assert result.value == "9780134685991"
    assert result.kind is IsbnKind.ISBN13
    assert result.isbn13 == "9780134685991"
    assert result.isbn10 is None


def test_isbn10_with_lowercase_check_digit() -> None:
    result = normalize("0-13-4685-99-x")
    assert result.value == "013468599X"
    assert result.kind is IsbnKind.ISBN10
    assert result.isbn10 == "013468599X"
    assert result.isbn13 is None


def test_uppercase_check_digit_example() -> None:
    assert normalize("0-13-4685-99-X").value == "013468599X"


@pytest.mark.parametrize(
    "raw, expected, kind",
    [
        ("", "", IsbnKind.INVALID),
        ("   ", "", IsbnKind.INVALID),
        ("ISBN 978 0 13 468599 1", "9780134685991", IsbnKind.ISBN13),
        ("12345", "12345", IsbnKind.INVALID),
        ("97801346859912", "97801346859912", IsbnKind.INVALID),
        ("abc-xyz", "X", IsbnKind.INVALID),
    ],
)
def test_partial_and_noisy_input(raw: str, expected: str, kind: IsbnKind) -> None:
    result = normalize(raw)
    assert result.value == expected
    assert result.kind is kind
    assert result.is_candidate is (kind is not IsbnKind.INVALID)


def test_checksum_is_not_enforced() -> None:
    # Wrong check digit, right length: still a lookup candidate.
    assert normalize("9780134685990").is_candidate


@pytest.mark.parametrize(
    "raw",
    ["978-0-13-468599-1", "0-13-4685-99-x", " x1x2 ", "isbn: 0306406152", "", "+++"],
)
def test_normalize_is_idempotent_and_clean(raw: str) -> None:
    once = normalize(raw)
    assert normalize(once.value) == once
    assert normalize(once) is once
    assert re.fullmatch(r"[0-9X]*", once.value)


def test_clean_isbn_handles_none_and_numbers() -> None:
    assert clean_isbn(None) == ""
    assert clean_isbn(9780134685991) == "9780134685991"
    assert not normalize(None)
