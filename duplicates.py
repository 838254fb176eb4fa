from __future__ import annotations

from typing import Any, Iterable, Optional

from isbn import normalize
from models import Book


def find_duplicate(
    books: Iterable[Book],
    candidate_isbn: Any,
    exclude_id: Optional[str] = None,
) -> Optional[Book]:
    """Return the first book whose ISBN matches ``candidate_isbn``.

    Matching is case-insensitive on normalized ISBNs. ``exclude_id`` skips the
    book being edited so it never flags itself. The result is advisory; the
    caller decides whether to warn, confirm or carry on.
    """
    target = normalize(candidate_isbn).value
    if not target:
        return None
    for book in books:
        if exclude_id is not None and book.id == exclude_id:
            continue
        if normalize(book.isbn).value == target:
            return book
    return None


def duplicate_warning(book: Optional[Book], *, editing: bool = False) -> Optional[str]:
    if book is None:
        return None
    if editing:
        return f"Duplicate ISBN: matches “{book.title}”."
    return f"Duplicate ISBN detected: already added as “{book.title}”."
