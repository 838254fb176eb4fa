from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

OPEN_LIBRARY_BOOKS_URL = "https://openlibrary.org/api/books"
GOOGLE_BOOKS_VOLUMES_URL = "https://www.googleapis.com/books/v1/volumes"
USER_AGENT = "bookshelf/0.1 (personal book catalog)"

_session: Optional[requests.Session] = None


def get_session() -> requests.Session:
    """Shared session so repeated lookups reuse connections and send a User-Agent."""
    global _session
    if _session is None:
        _session = requests.Session()
        _session.headers.update({"User-Agent": USER_AGENT})
    return _session


# -----------------------------------------------------------------------------
# Open Library (Books API, jscmd=data)
# -----------------------------------------------------------------------------


class _Upstream(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class OpenLibraryAuthor(_Upstream):
    name: Optional[str] = None


class OpenLibraryCover(_Upstream):
    small: Optional[str] = None
    medium: Optional[str] = None
    large: Optional[str] = None

    def best(self) -> str:
        return self.large or self.medium or self.small or ""


class OpenLibraryEdition(_Upstream):
    title: Optional[str] = None
    authors: Optional[List[OpenLibraryAuthor]] = None
    cover: Optional[OpenLibraryCover] = None

    def first_author(self) -> str:
        for author in self.authors or []:
            return author.name or ""
        return ""

    def cover_url(self) -> str:
        return self.cover.best() if self.cover else ""


def fetch_open_library_edition(
    isbn: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = 8,
) -> Optional[OpenLibraryEdition]:
    """Look up one edition by ISBN. Returns ``None`` when Open Library has no entry.

    Transport problems and non-2xx answers raise ``requests.RequestException``;
    malformed payloads raise ``pydantic.ValidationError``.
    """
    logger.debug("Querying Open Library for ISBN %s", isbn)
    http = session or get_session()
    response = http.get(
        OPEN_LIBRARY_BOOKS_URL,
        params={"bibkeys": f"ISBN:{isbn}", "format": "json", "jscmd": "data"},
        timeout=timeout,
    )
    response.raise_for_status()
    data: Dict[str, Any] = response.json() or {}
    entry = data.get(f"ISBN:{isbn}") if isinstance(data, dict) else None
    if not entry:
        return None
    return OpenLibraryEdition.model_validate(entry)


# -----------------------------------------------------------------------------
# Google Books (volumes search)
# -----------------------------------------------------------------------------


class GoogleImageLinks(_Upstream):
    small_thumbnail: Optional[str] = Field(default=None, alias="smallThumbnail")
    thumbnail: Optional[str] = None
    small: Optional[str] = None
    medium: Optional[str] = None
    large: Optional[str] = None
    extra_large: Optional[str] = Field(default=None, alias="extraLarge")

    def best(self) -> str:
        for candidate in (
            self.extra_large,
            self.large,
            self.medium,
            self.small,
            self.thumbnail,
            self.small_thumbnail,
        ):
            if candidate:
                return candidate
        return ""


class GoogleVolumeInfo(_Upstream):
    title: Optional[str] = None
    authors: Optional[List[str]] = None
    image_links: Optional[GoogleImageLinks] = Field(default=None, alias="imageLinks")

    def first_author(self) -> str:
        for author in self.authors or []:
            return str(author)
        return ""

    def cover_url(self) -> str:
        return self.image_links.best() if self.image_links else ""


class GoogleVolume(_Upstream):
    volume_info: Optional[GoogleVolumeInfo] = Field(default=None, alias="volumeInfo")


class GoogleVolumesResponse(_Upstream):
    total_items: int = Field(default=0, alias="totalItems")
    items: Optional[List[GoogleVolume]] = None


def fetch_google_volumes(
    isbn: str,
    api_key: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = 8,
) -> GoogleVolumesResponse:
    """Search Google Books for an exact ISBN.

    Raises ``requests.RequestException`` on transport errors or non-2xx
    answers and ``pydantic.ValidationError`` on malformed payloads.
    """
    logger.debug("Querying Google Books for ISBN %s", isbn)
    http = session or get_session()
    response = http.get(
        GOOGLE_BOOKS_VOLUMES_URL,
        params={"q": f"isbn:{isbn}", "key": api_key},
        timeout=timeout,
    )
    response.raise_for_status()
    return GoogleVolumesResponse.model_validate(response.json() or {})
