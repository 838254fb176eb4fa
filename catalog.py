from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import get_settings
from duplicates import find_duplicate
from models import Book, BookFields, BookStatus, Tag, next_finished_at, utcnow
from tags import has_tag, list_all_tags, normalize_tag_name, tag_key

logger = logging.getLogger(__name__)

SORT_NEWEST = "newest"
SORT_RATED = "rated"

_BOOK_COLUMNS = [
    "title",
    "author",
    "status",
    "rating",
    "review",
    "cover_url",
    "isbn",
]


@dataclass
class CatalogQuery:
    """Filters and ordering for ``CatalogStore.list_books``."""

    status: Optional[BookStatus] = None
    search: Optional[str] = None
    tag: Optional[str] = None
    sort: str = SORT_NEWEST
    rated_only: bool = False


def _new_id() -> str:
    return uuid.uuid4().hex


def _to_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


class CatalogStore:
    """SQLite-backed store for books, tags and their associations."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db_path = Path(db_path or get_settings().db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        # SQLite lower() and NOCASE only fold ASCII.
        self._conn.create_function("casefold", 1, _casefold, deterministic=True)
        with self._conn:
            self._conn.execute("PRAGMA foreign_keys = ON;")
        self._ensure_schema()

    # --------------------------------------------------------------------- #
    # Schema
    # --------------------------------------------------------------------- #
    def _ensure_schema(self) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS books (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT,
                    status TEXT NOT NULL DEFAULT 'TO_READ'
                        CHECK (status IN ('TO_READ', 'READ', 'WISHLIST')),
                    rating INTEGER CHECK (rating IS NULL OR rating BETWEEN 1 AND 5),
                    review TEXT,
                    cover_url TEXT,
                    isbn TEXT,
                    created_at TEXT NOT NULL,
                    finished_at TEXT
                );
                """
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tags (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    name_key TEXT NOT NULL
                );
                """
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS book_tags (
                    book_id TEXT NOT NULL,
                    tag_id TEXT NOT NULL,
                    PRIMARY KEY (book_id, tag_id),
                    FOREIGN KEY(book_id) REFERENCES books(id) ON DELETE CASCADE,
                    FOREIGN KEY(tag_id) REFERENCES tags(id) ON DELETE CASCADE
                );
                """
            )
            self._conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_books_status_created
                ON books(status, created_at);
                """
            )
            self._conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_books_isbn
                ON books(isbn COLLATE NOCASE);
                """
            )
            self._ensure_tag_keys()
            self._conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS idx_tags_name_key
                ON tags(name_key);
                """
            )

    def _ensure_tag_keys(self) -> None:
        """Backfill ``tags.name_key`` on catalogs created before the column existed.

        Older catalogs matched tag names with SQLite's ASCII-only NOCASE, so two
        rows may fold to the same key; the newer row is merged into the older
        one. Caller holds the lock.
        """
        columns = {row["name"] for row in self._conn.execute("PRAGMA table_info(tags);")}
        if "name_key" not in columns:
            self._conn.execute("ALTER TABLE tags ADD COLUMN name_key TEXT;")
        keepers: Dict[str, str] = {}
        rows = self._conn.execute("SELECT id, name, name_key FROM tags ORDER BY rowid;").fetchall()
        for row in rows:
            key = tag_key(row["name"])
            if key in keepers:
                self._conn.execute(
                    """
                    INSERT OR IGNORE INTO book_tags (book_id, tag_id)
                    SELECT book_id, ? FROM book_tags WHERE tag_id = ?;
                    """,
                    (keepers[key], row["id"]),
                )
                self._conn.execute("DELETE FROM book_tags WHERE tag_id = ?;", (row["id"],))
                self._conn.execute("DELETE FROM tags WHERE id = ?;", (row["id"],))
                logger.info("Merged tag %s (%s) into %s", row["id"], row["name"], keepers[key])
                continue
            keepers[key] = row["id"]
            if row["name_key"] != key:
                self._conn.execute("UPDATE tags SET name_key = ? WHERE id = ?;", (key, row["id"]))

    # --------------------------------------------------------------------- #
    # Utility helpers
    # --------------------------------------------------------------------- #
    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _row_to_book(self, row: sqlite3.Row, tags: Optional[List[Tag]] = None) -> Book:
        return Book(
            id=row["id"],
            title=row["title"],
            author=row["author"],
            status=BookStatus(row["status"]),
            rating=row["rating"],
            review=row["review"],
            cover_url=row["cover_url"],
            isbn=row["isbn"],
            created_at=_from_timestamp(row["created_at"]),
            finished_at=_from_timestamp(row["finished_at"]),
            tags=list(tags or []),
        )

    def _tags_for(self, book_ids: List[str]) -> Dict[str, List[Tag]]:
        """Tags per book in association order. Caller holds the lock."""
        result: Dict[str, List[Tag]] = {book_id: [] for book_id in book_ids}
        if not book_ids:
            return result
        placeholders = ", ".join("?" for _ in book_ids)
        rows = self._conn.execute(
            f"""
            SELECT bt.book_id, t.id, t.name
            FROM book_tags bt
            JOIN tags t ON t.id = bt.tag_id
            WHERE bt.book_id IN ({placeholders})
            ORDER BY bt.rowid;
            """,
            book_ids,
        ).fetchall()
        for row in rows:
            result[row["book_id"]].append(Tag(id=row["id"], name=row["name"]))
        return result

    def _fetch_book_row(self, book_id: str) -> Optional[sqlite3.Row]:
        return self._conn.execute("SELECT * FROM books WHERE id = ?;", (book_id,)).fetchone()

    def _book_from_row(self, row: sqlite3.Row) -> Book:
        """Attach current tags to a fetched row. Caller holds the lock."""
        return self._row_to_book(row, self._tags_for([row["id"]])[row["id"]])

    # --------------------------------------------------------------------- #
    # Book management
    # --------------------------------------------------------------------- #
    def add_book(self, fields: BookFields) -> Book:
        cleaned = fields.cleaned()
        now = self._clock()
        book_id = _new_id()
        finished_at = next_finished_at(None, cleaned.status, None, now)
        values = [getattr(cleaned, column) for column in _BOOK_COLUMNS]
        values[_BOOK_COLUMNS.index("status")] = cleaned.status.value
        with self._lock:
            with self._conn:
                self._conn.execute(
                    f"""
                    INSERT INTO books (id, {", ".join(_BOOK_COLUMNS)}, created_at, finished_at)
                    VALUES (?, {", ".join("?" for _ in _BOOK_COLUMNS)}, ?, ?);
                    """,
                    [book_id, *values, _to_timestamp(now), _to_timestamp(finished_at)],
                )
            book = self._book_from_row(self._fetch_book_row(book_id))
        logger.info("Added book %s (%s)", book_id, cleaned.title)
        return book

    def update_book(self, book_id: str, fields: BookFields) -> Optional[Book]:
        """Replace every editable field; returns ``None`` for an unknown id."""
        cleaned = fields.cleaned()
        with self._lock:
            existing = self._fetch_book_row(book_id)
            if existing is None:
                return None
            finished_at = next_finished_at(
                BookStatus(existing["status"]),
                cleaned.status,
                _from_timestamp(existing["finished_at"]),
                self._clock(),
            )
            values = [getattr(cleaned, column) for column in _BOOK_COLUMNS]
            values[_BOOK_COLUMNS.index("status")] = cleaned.status.value
            assignments = ", ".join(f"{column} = ?" for column in _BOOK_COLUMNS)
            with self._conn:
                self._conn.execute(
                    f"UPDATE books SET {assignments}, finished_at = ? WHERE id = ?;",
                    [*values, _to_timestamp(finished_at), book_id],
                )
        return self.get_book(book_id)

    def set_status(self, book_id: str, status: BookStatus) -> Optional[Book]:
        """Status-only transition with the same finish-date rule as a full edit."""
        next_status = BookStatus(status)
        with self._lock:
            existing = self._fetch_book_row(book_id)
            if existing is None:
                return None
            finished_at = next_finished_at(
                BookStatus(existing["status"]),
                next_status,
                _from_timestamp(existing["finished_at"]),
                self._clock(),
            )
            with self._conn:
                self._conn.execute(
                    "UPDATE books SET status = ?, finished_at = ? WHERE id = ?;",
                    (next_status.value, _to_timestamp(finished_at), book_id),
                )
        return self.get_book(book_id)

    def delete_book(self, book_id: str) -> bool:
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM books WHERE id = ?;", (book_id,))
        return cursor.rowcount > 0

    def get_book(self, book_id: str) -> Optional[Book]:
        with self._lock:
            row = self._fetch_book_row(book_id)
            if row is None:
                return None
            return self._book_from_row(row)

    def list_books(self, query: Optional[CatalogQuery] = None) -> List[Book]:
        query = query or CatalogQuery()
        clauses: List[str] = []
        params: List[Any] = []
        if query.status is not None:
            clauses.append("b.status = ?")
            params.append(BookStatus(query.status).value)
        search = (query.search or "").strip()
        if search:
            search_like = f"%{search.casefold()}%"
            clauses.append("(casefold(b.title) LIKE ? OR casefold(COALESCE(b.author, '')) LIKE ?)")
            params.extend([search_like, search_like])
        tag_name_key = tag_key(query.tag or "")
        if tag_name_key:
            clauses.append(
                """
                EXISTS (
                    SELECT 1 FROM book_tags bt
                    JOIN tags t ON t.id = bt.tag_id
                    WHERE bt.book_id = b.id AND t.name_key = ?
                )
                """
            )
            params.append(tag_name_key)
        if query.rated_only:
            clauses.append("b.rating IS NOT NULL")

        sql = "SELECT b.* FROM books b"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if query.sort == SORT_RATED:
            sql += " ORDER BY b.rating DESC, b.created_at DESC, b.rowid DESC;"
        else:
            sql += " ORDER BY b.created_at DESC, b.rowid DESC;"

        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
            tags = self._tags_for([row["id"] for row in rows])
        return [self._row_to_book(row, tags[row["id"]]) for row in rows]

    def find_duplicate(self, isbn: Any, exclude_id: Optional[str] = None) -> Optional[Book]:
        """Advisory duplicate check against the whole catalog, newest first."""
        return find_duplicate(self.list_books(), isbn, exclude_id)

    # ------------------------------------------------------------------ #
    # Tags
    # ------------------------------------------------------------------ #
    def get_tag_by_name(self, raw_name: str) -> Optional[Tag]:
        key = tag_key(raw_name)
        if not key:
            return None
        with self._lock:
            row = self._conn.execute(
                "SELECT id, name FROM tags WHERE name_key = ?;",
                (key,),
            ).fetchone()
        return Tag(id=row["id"], name=row["name"]) if row else None

    def _ensure_tag(self, name: str) -> Tuple[Tag, bool]:
        """Reuse a tag whose name matches under case folding or create one. Caller holds the lock."""
        key = tag_key(name)
        row = self._conn.execute("SELECT id, name FROM tags WHERE name_key = ?;", (key,)).fetchone()
        if row is not None:
            return Tag(id=row["id"], name=row["name"]), False
        tag = Tag(id=_new_id(), name=name)
        self._conn.execute(
            "INSERT INTO tags (id, name, name_key) VALUES (?, ?, ?);",
            (tag.id, tag.name, key),
        )
        return tag, True

    def attach_tag(self, book_id: str, raw_name: str) -> Book:
        """Attach a tag by name. Re-attaching an existing tag is a silent no-op."""
        name = normalize_tag_name(raw_name)
        if not name:
            raise ValueError("Tag name cannot be empty.")
        with self._lock:
            row = self._fetch_book_row(book_id)
            if row is None:
                raise ValueError("Book not found.")
            if not has_tag(self._book_from_row(row), name):
                with self._conn:
                    tag, created = self._ensure_tag(name)
                    self._conn.execute(
                        "INSERT OR IGNORE INTO book_tags (book_id, tag_id) VALUES (?, ?);",
                        (book_id, tag.id),
                    )
                if created:
                    logger.info("Created tag %s (%s)", tag.id, tag.name)
            return self._book_from_row(row)

    def detach_tag(self, book_id: str, tag_id: str) -> bool:
        """Remove an association if present. The tag itself is kept."""
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM book_tags WHERE book_id = ? AND tag_id = ?;",
                (book_id, tag_id),
            )
        return cursor.rowcount > 0

    def list_tags(self, query: Optional[CatalogQuery] = None) -> List[Tag]:
        """Tags attached to at least one book in the given catalog view."""
        return list_all_tags(self.list_books(query))


# ------------------------------------------------------------------------------
# Convenience factory
# ------------------------------------------------------------------------------
def get_store(db_path: Optional[Path] = None) -> CatalogStore:
    return CatalogStore(db_path=db_path)
