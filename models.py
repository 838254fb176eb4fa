from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from isbn import normalize

RATING_MIN = 1
RATING_MAX = 5


class BookStatus(str, Enum):
    TO_READ = "TO_READ"
    READ = "READ"
    WISHLIST = "WISHLIST"


@dataclass(frozen=True)
class Tag:
    id: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Book:
    id: str
    title: str
    status: BookStatus
    created_at: datetime
    author: Optional[str] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    cover_url: Optional[str] = None
    isbn: Optional[str] = None
    finished_at: Optional[datetime] = None
    tags: List[Tag] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "status": self.status.value,
            "rating": self.rating,
            "review": self.review,
            "cover_url": self.cover_url,
            "isbn": self.isbn,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "tags": [tag.to_dict() for tag in self.tags],
        }


@dataclass
class BookFields:
    """The user-editable part of a Book, as submitted by an add or edit form."""

    title: str
    author: Optional[str] = None
    status: BookStatus = BookStatus.TO_READ
    rating: Optional[int] = None
    review: Optional[str] = None
    cover_url: Optional[str] = None
    isbn: Optional[str] = None

    def cleaned(self) -> "BookFields":
        """Return a copy with whitespace trimmed, blanks dropped and the ISBN normalized."""
        title = (self.title or "").strip()
        if not title:
            raise ValueError("Title is required.")
        return BookFields(
            title=title,
            author=_optional_text(self.author),
            status=BookStatus(self.status),
            rating=clamp_rating(self.rating),
            review=_optional_text(self.review),
            cover_url=_optional_text(self.cover_url),
            isbn=normalize(self.isbn).value or None,
        )


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def clamp_rating(value: Any) -> Optional[int]:
    """Clamp a rating into [1, 5]; blank input means "not rated"."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        raise ValueError(f"Rating must be a number, got {value!r}.")
    return max(RATING_MIN, min(RATING_MAX, number))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_finished_at(
    previous_status: Optional[BookStatus],
    next_status: BookStatus,
    previous_finished_at: Optional[datetime],
    now: datetime,
) -> Optional[datetime]:
    """Apply the READ side effect of a status change.

    ``previous_status`` is ``None`` when the book is being created.
    Entering READ stamps ``now``, leaving READ clears the stamp, and staying
    in READ keeps whatever finish date the book already had.
    """
    if next_status is not BookStatus.READ:
        return None
    if previous_status is BookStatus.READ:
        return previous_finished_at
    return now
