from __future__ import annotations

import re
from typing import Dict, Iterable, List

from models import Book, Tag

_WHITESPACE = re.compile(r"\s+")


def normalize_tag_name(raw: str) -> str:
    """Trim and collapse internal whitespace: ``"  Science   Fiction "`` -> ``"Science Fiction"``."""
    return _WHITESPACE.sub(" ", (raw or "").strip())


def tag_key(name: str) -> str:
    """Unicode-aware identity of a tag name; ``"Émigré"`` and ``" émigré "`` share one key."""
    return normalize_tag_name(name).casefold()


def has_tag(book: Book, raw_name: str) -> bool:
    key = tag_key(raw_name)
    return any(tag_key(tag.name) == key for tag in book.tags)


def list_all_tags(books: Iterable[Book]) -> List[Tag]:
    """Tags attached to at least one of ``books``, deduplicated and sorted by name."""
    seen: Dict[str, Tag] = {}
    for book in books:
        for tag in book.tags:
            seen.setdefault(tag.id, tag)
    return sorted(seen.values(), key=lambda tag: (tag_key(tag.name), tag.name))
