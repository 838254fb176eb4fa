from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

import requests

from api import (
    GoogleVolumeInfo,
    GoogleVolumesResponse,
    OpenLibraryEdition,
    fetch_google_volumes,
    fetch_open_library_edition,
)
from config import get_settings
from isbn import normalize

logger = logging.getLogger(__name__)


class Source(str, Enum):
    """Which upstream produced a record: the keyless primary or the keyed fallback."""

    OPEN_LIBRARY = "source_a"
    GOOGLE_BOOKS = "source_b"

    @property
    def provider(self) -> str:
        return "openlibrary" if self is Source.OPEN_LIBRARY else "googlebooks"


@dataclass(frozen=True)
class BibliographicRecord:
    title: str
    author: str
    cover_url: str
    isbn13: Optional[str]
    isbn10: Optional[str]
    source: Source

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "author": self.author,
            "cover_url": self.cover_url,
            "isbn13": self.isbn13,
            "isbn10": self.isbn10,
            "source": self.source.value,
            "provider": self.source.provider,
        }


# -----------------------------------------------------------------------------
# Failures
# -----------------------------------------------------------------------------


class ResolutionError(Exception):
    status_code = 500
    default_message = "ISBN lookup failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidInput(ResolutionError):
    status_code = 400
    default_message = "Missing isbn"


class ConfigurationMissing(ResolutionError):
    status_code = 404
    default_message = "Open Library had no result and GOOGLE_BOOKS_API_KEY is not set."


class NotFound(ResolutionError):
    status_code = 404
    default_message = "No results for that ISBN"


class LookupFailed(ResolutionError):
    status_code = 500
    default_message = "ISBN lookup failed"


# -----------------------------------------------------------------------------
# Cache
# -----------------------------------------------------------------------------

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Small LRU cache whose entries also expire after ``ttl`` seconds."""

    def __init__(
        self,
        ttl: float,
        capacity: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.capacity = capacity
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, V]]" = OrderedDict()
        self._lock = RLock()

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# -----------------------------------------------------------------------------
# Resolver
# -----------------------------------------------------------------------------


def _isbn_forms(isbn: str) -> Tuple[Optional[str], Optional[str]]:
    normalized = normalize(isbn)
    return normalized.isbn13, normalized.isbn10


def record_from_open_library(isbn: str, edition: OpenLibraryEdition) -> BibliographicRecord:
    isbn13, isbn10 = _isbn_forms(isbn)
    return BibliographicRecord(
        title=edition.title or "",
        author=edition.first_author(),
        cover_url=edition.cover_url(),
        isbn13=isbn13,
        isbn10=isbn10,
        source=Source.OPEN_LIBRARY,
    )


def record_from_google(isbn: str, volumes: GoogleVolumesResponse) -> Optional[BibliographicRecord]:
    if not volumes.items:
        return None
    info = volumes.items[0].volume_info or GoogleVolumeInfo()
    isbn13, isbn10 = _isbn_forms(isbn)
    return BibliographicRecord(
        title=info.title or "",
        author=info.first_author(),
        cover_url=info.cover_url(),
        isbn13=isbn13,
        isbn10=isbn10,
        source=Source.GOOGLE_BOOKS,
    )


def is_good_enough(record: BibliographicRecord) -> bool:
    """Open Library often returns bare titles; require an author or a cover too."""
    return bool(record.title) and bool(record.author or record.cover_url)


class BibliographicResolver:
    """Resolve an ISBN to title/author/cover, Open Library first, Google Books second."""

    def __init__(
        self,
        *,
        google_api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 8,
        cache: Optional[TTLCache[BibliographicRecord]] = None,
    ):
        self.google_api_key = google_api_key
        self.session = session
        self.timeout = timeout
        self.cache = cache

    def resolve(self, isbn: Any) -> BibliographicRecord:
        normalized = normalize(isbn)
        if not normalized.value:
            raise InvalidInput()
        key = normalized.value

        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("ISBN %s served from cache", key)
                return cached

        record = self._resolve_uncached(key)
        if self.cache is not None:
            self.cache.set(key, record)
        return record

    def _resolve_uncached(self, isbn: str) -> BibliographicRecord:
        primary = self._try_open_library(isbn)
        if primary is not None:
            return primary

        if not self.google_api_key:
            logger.warning("ISBN %s missed Open Library and no Google Books key is configured", isbn)
            raise ConfigurationMissing()

        try:
            volumes = fetch_google_volumes(
                isbn,
                self.google_api_key,
                session=self.session,
                timeout=self.timeout,
            )
        except requests.HTTPError as exc:
            logger.warning("Google Books returned an error for ISBN %s: %s", isbn, exc)
            raise LookupFailed("Google Books lookup failed") from exc
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Google Books lookup failed for ISBN %s: %s", isbn, exc)
            raise LookupFailed() from exc

        record = record_from_google(isbn, volumes)
        if record is None:
            logger.info("No Google Books results for ISBN %s", isbn)
            raise NotFound()
        return record

    def _try_open_library(self, isbn: str) -> Optional[BibliographicRecord]:
        """Query the primary source; every failure here is a soft miss."""
        try:
            edition = fetch_open_library_edition(isbn, session=self.session, timeout=self.timeout)
        except (requests.RequestException, ValueError) as exc:
            logger.info("Open Library lookup for ISBN %s failed, falling back: %s", isbn, exc)
            return None
        if edition is None:
            logger.debug("Open Library has no entry for ISBN %s", isbn)
            return None
        record = record_from_open_library(isbn, edition)
        if not is_good_enough(record):
            logger.debug("Open Library record for ISBN %s is incomplete, falling back", isbn)
            return None
        return record


_CACHE: Optional[TTLCache[BibliographicRecord]] = None
_cache_lock = RLock()


def get_cache() -> TTLCache[BibliographicRecord]:
    """Process-wide cache shared by every resolver built through ``get_resolver``."""
    global _CACHE
    with _cache_lock:
        if _CACHE is None:
            settings = get_settings()
            _CACHE = TTLCache(ttl=settings.cache_ttl, capacity=settings.cache_capacity)
        return _CACHE


def clear_cache() -> None:
    get_cache().clear()


def get_resolver(session: Optional[requests.Session] = None) -> BibliographicResolver:
    settings = get_settings()
    return BibliographicResolver(
        google_api_key=settings.google_books_api_key,
        session=session,
        timeout=settings.lookup_timeout,
        cache=get_cache(),
    )


def resolve(isbn: Any) -> BibliographicRecord:
    return get_resolver().resolve(isbn)

