from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from catalog import SORT_NEWEST, CatalogQuery, CatalogStore
from config import get_settings
from duplicates import duplicate_warning
from models import Book, BookFields, BookStatus
from resolver import BibliographicResolver, ResolutionError, get_resolver

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Application setup
# -----------------------------------------------------------------------------

app = FastAPI(title="Bookshelf API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> CatalogStore:
    if not hasattr(get_store, "_instance"):
        get_store._instance = CatalogStore()
    return get_store._instance  # type: ignore[attr-defined]


def get_lookup_resolver() -> BibliographicResolver:
    return get_resolver()


@app.on_event("shutdown")
def _shutdown() -> None:
    store = getattr(get_store, "_instance", None)
    if isinstance(store, CatalogStore):
        store.close()


# -----------------------------------------------------------------------------
# Pydantic models
# -----------------------------------------------------------------------------


class BookPayload(BaseModel):
    title: str = Field(..., min_length=1)
    author: Optional[str] = None
    status: BookStatus = BookStatus.TO_READ
    rating: Optional[float] = None
    review: Optional[str] = None
    cover_url: Optional[str] = None
    isbn: Optional[str] = None

    def to_fields(self) -> BookFields:
        return BookFields(
            title=self.title,
            author=self.author,
            status=self.status,
            rating=self.rating,
            review=self.review,
            cover_url=self.cover_url,
            isbn=self.isbn,
        )


class StatusPayload(BaseModel):
    status: BookStatus


class TagPayload(BaseModel):
    name: str


class SavedBook(BaseModel):
    book: Dict[str, Any]
    duplicate: Optional[Dict[str, Any]] = None
    warning: Optional[str] = None


class DuplicateCheck(BaseModel):
    duplicate: Optional[Dict[str, Any]] = None
    warning: Optional[str] = None


# -----------------------------------------------------------------------------
# Helper utilities
# -----------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _serialize(book: Optional[Book]) -> Optional[Dict[str, Any]]:
    return book.to_dict() if book else None


def _saved(store: CatalogStore, book: Book, *, editing: bool) -> SavedBook:
    duplicate = store.find_duplicate(book.isbn, exclude_id=book.id)
    return SavedBook(
        book=book.to_dict(),
        duplicate=_serialize(duplicate),
        warning=duplicate_warning(duplicate, editing=editing),
    )


def _require_book(store: CatalogStore, book_id: str) -> Book:
    book = store.get_book(book_id)
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return book


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


@app.get("/api/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/isbn")
def lookup_isbn(
    isbn: str = Query(""),
    resolver: BibliographicResolver = Depends(get_lookup_resolver),
) -> JSONResponse:
    try:
        record = resolver.resolve(isbn)
    except ResolutionError as exc:
        if exc.status_code >= 500:
            logger.warning("ISBN lookup for %r failed: %s", isbn, exc.message)
        return _error(exc.status_code, exc.message)
    return JSONResponse(status_code=status.HTTP_200_OK, content=record.to_dict())


@app.get("/api/books")
def list_books(
    status_filter: Optional[BookStatus] = Query(None, alias="status"),
    q: Optional[str] = Query(None, description="Case-insensitive title/author search"),
    tag: Optional[str] = Query(None),
    sort: str = Query(SORT_NEWEST, pattern="^(newest|rated)$"),
    rated_only: bool = Query(False),
    store: CatalogStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    query = CatalogQuery(status=status_filter, search=q, tag=tag, sort=sort, rated_only=rated_only)
    return [book.to_dict() for book in store.list_books(query)]


@app.get("/api/books/duplicate", response_model=DuplicateCheck)
def check_duplicate(
    isbn: str = Query(""),
    exclude_id: Optional[str] = Query(None),
    store: CatalogStore = Depends(get_store),
) -> DuplicateCheck:
    duplicate = store.find_duplicate(isbn, exclude_id=exclude_id)
    return DuplicateCheck(
        duplicate=_serialize(duplicate),
        warning=duplicate_warning(duplicate, editing=exclude_id is not None),
    )


@app.get("/api/books/{book_id}")
def get_book(book_id: str, store: CatalogStore = Depends(get_store)) -> Dict[str, Any]:
    return _require_book(store, book_id).to_dict()


@app.post("/api/books", status_code=status.HTTP_201_CREATED, response_model=SavedBook)
def create_book(payload: BookPayload, store: CatalogStore = Depends(get_store)) -> SavedBook:
    try:
        book = store.add_book(payload.to_fields())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return _saved(store, book, editing=False)


@app.put("/api/books/{book_id}", response_model=SavedBook)
def update_book(
    book_id: str,
    payload: BookPayload,
    store: CatalogStore = Depends(get_store),
) -> SavedBook:
    try:
        book = store.update_book(book_id, payload.to_fields())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return _saved(store, book, editing=True)


@app.patch("/api/books/{book_id}/status")
def update_status(
    book_id: str,
    payload: StatusPayload,
    store: CatalogStore = Depends(get_store),
) -> Dict[str, Any]:
    book = store.set_status(book_id, payload.status)
    if not book:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return book.to_dict()


@app.delete(
    "/api/books/{book_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    response_model=None,
)
def delete_book(book_id: str, store: CatalogStore = Depends(get_store)) -> Response:
    if not store.delete_book(book_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/api/books/{book_id}/tags")
def add_tag(
    book_id: str,
    payload: TagPayload,
    store: CatalogStore = Depends(get_store),
) -> Dict[str, Any]:
    _require_book(store, book_id)
    try:
        book = store.attach_tag(book_id, payload.name)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return book.to_dict()


@app.delete(
    "/api/books/{book_id}/tags/{tag_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    response_model=None,
)
def remove_tag(book_id: str, tag_id: str, store: CatalogStore = Depends(get_store)) -> Response:
    store.detach_tag(book_id, tag_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/tags")
def list_tags(
    status_filter: Optional[BookStatus] = Query(None, alias="status"),
    store: CatalogStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    tags = store.list_tags(CatalogQuery(status=status_filter))
    return [tag.to_dict() for tag in tags]


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="127.0.0.1", port=8000)
