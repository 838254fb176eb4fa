from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas

from catalog import CatalogStore
from isbn import normalize
from models import BookFields, BookStatus, clamp_rating
from resolver import BibliographicRecord, BibliographicResolver, ResolutionError, get_resolver

EXPORT_COLUMNS = [
    "id",
    "title",
    "author",
    "status",
    "rating",
    "review",
    "cover_url",
    "isbn",
    "created_at",
    "finished_at",
    "tags",
]


def catalog_frame(store: CatalogStore) -> pandas.DataFrame:
    rows: List[Dict[str, Any]] = []
    for book in store.list_books():
        row = book.to_dict()
        row["tags"] = ", ".join(tag["name"] for tag in row["tags"])
        rows.append(row)
    return pandas.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_catalog(store: CatalogStore, path: Path) -> Path:
    """Write the whole catalog to a CSV spreadsheet, newest first."""
    path = Path(path)
    catalog_frame(store).to_csv(path, index=False)
    return path


def print_record_preview(record: BibliographicRecord) -> None:
    """Print the metadata that will prefill the new book."""
    for key, value in record.to_dict().items():
        print(f"   {key}: {value if value is not None else ''}")


def prompt_status() -> Optional[BookStatus]:
    choices = ", ".join(status.value for status in BookStatus)
    while True:
        response = input(f"Status [{choices}] (default TO_READ): ").strip().upper()
        if response.lower() == "quit":
            return None
        if not response:
            return BookStatus.TO_READ
        try:
            return BookStatus(response)
        except ValueError:
            print("Please choose one of the listed statuses.")


def prompt_rating() -> Optional[int]:
    while True:
        response = input("Rating 1-5 (leave blank to skip): ").strip()
        try:
            return clamp_rating(response)
        except ValueError:
            print("Please enter the rating as a number.")


def lookup(resolver: BibliographicResolver, isbn: str) -> Optional[BibliographicRecord]:
    try:
        return resolver.resolve(isbn)
    except ResolutionError as error:
        print(f"Lookup failed: {error.message}")
        return None


def add_from_isbn(store: CatalogStore, resolver: BibliographicResolver, raw: str) -> None:
    candidate = normalize(raw)
    if not candidate.is_candidate:
        print("That does not look like an ISBN-10 or ISBN-13.")
        return

    duplicate = store.find_duplicate(candidate.value)
    if duplicate:
        print(f'This ISBN is already in your library: "{duplicate.title}"')
        confirm = input("Add another copy anyway? (y/n): ").strip().lower()
        if confirm not in {"y", "yes"}:
            return

    record = lookup(resolver, candidate.value)
    title = record.title if record else ""
    if record:
        print("\nFound:")
        print_record_preview(record)
    if not title:
        title = input("Title: ").strip()
        if not title:
            print("A title is required; skipped.")
            return

    status = prompt_status()
    if status is None:
        return
    fields = BookFields(
        title=title,
        author=record.author if record else None,
        status=status,
        rating=prompt_rating(),
        cover_url=record.cover_url if record else None,
        isbn=(record.isbn13 if record and record.isbn13 else candidate.value),
    )
    book = store.add_book(fields)
    tag_names = input("Tags, comma separated (leave blank to skip): ").strip()
    for name in tag_names.split(","):
        if name.strip():
            book = store.attach_tag(book.id, name)
    print(f"Added '{book.title}' ({book.status.value}).")


def interactive_session(
    store: Optional[CatalogStore] = None,
    resolver: Optional[BibliographicResolver] = None,
) -> None:
    """Type or paste ISBNs to autofill and add books; 'export <file>' writes a spreadsheet."""
    owns_store = store is None
    store = store or CatalogStore()
    resolver = resolver or get_resolver()

    print("\nEnter an ISBN to look it up and add it to the catalog.")
    print("Type 'export <file.csv>' to save a spreadsheet, 'quit' to exit.")

    try:
        while True:
            response = input("\nISBN: ").strip()
            if not response:
                continue
            if response.lower() == "quit":
                break
            if response.lower().startswith("export"):
                target = response[len("export"):].strip() or "catalog.csv"
                path = export_catalog(store, Path(target))
                print(f"Exported catalog to {path}")
                continue
            add_from_isbn(store, resolver, response)
    finally:
        if owns_store:
            store.close()

    print("\nSession complete.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    interactive_session()
