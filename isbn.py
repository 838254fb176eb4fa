from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

_NON_ISBN_CHARS = re.compile(r"[^0-9Xx]")


class IsbnKind(str, Enum):
    ISBN10 = "isbn10"
    ISBN13 = "isbn13"
    INVALID = "invalid"


@dataclass(frozen=True)
class NormalizedIsbn:
    value: str
    kind: IsbnKind

    @property
    def is_candidate(self) -> bool:
        """True when the value has the length of an ISBN-10 or ISBN-13."""
        return self.kind is not IsbnKind.INVALID

    @property
    def isbn10(self) -> Optional[str]:
        return self.value if self.kind is IsbnKind.ISBN10 else None

    @property
    def isbn13(self) -> Optional[str]:
        return self.value if self.kind is IsbnKind.ISBN13 else None

    def __str__(self) -> str:
        return self.value

    def __bool__(self) -> bool:
        return bool(self.value)


def clean_isbn(raw: Any) -> str:
    """Strip everything but digits and X, uppercased. ``None`` yields ``""``."""
    if raw is None:
        return ""
    return _NON_ISBN_CHARS.sub("", str(raw)).upper().strip()


def classify(value: str) -> IsbnKind:
    if len(value) == 10:
        return IsbnKind.ISBN10
    if len(value) == 13:
        return IsbnKind.ISBN13
    return IsbnKind.INVALID


def normalize(raw: Any) -> NormalizedIsbn:
    """Normalize a typed or scanned ISBN.

    Check digits are not verified: any 10 or 13 character result is accepted
    as a lookup candidate. Shorter or longer input is still returned (as
    ``IsbnKind.INVALID``) so partially typed values can be stored.
    """
    if isinstance(raw, NormalizedIsbn):
        return raw
    value = clean_isbn(raw)
    return NormalizedIsbn(value=value, kind=classify(value))
