from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import pandas
import pytest

import cli
from catalog import CatalogStore
from fakes import FakeResponse, FakeSession, StepClock, open_library_payload
from models import BookFields, BookStatus
from resolver import BibliographicResolver

ISBN13 = "9780134685991"


@pytest.fixture
def store(tmp_path: Path) -> CatalogStore:
    test_store = CatalogStore(db_path=tmp_path / "catalog.db", clock=StepClock())
    yield test_store
    test_store.close()


def _answers(monkeypatch: pytest.MonkeyPatch, answers: Iterable[str]) -> None:
    replies = iter(answers)
    monkeypatch.setattr("builtins.input", lambda _prompt="": next(replies))


def _resolver(session: FakeSession, key: Optional[str] = None) -> BibliographicResolver:
    return BibliographicResolver(google_api_key=key, session=session)


def test_export_catalog_writes_csv(store: CatalogStore, tmp_path: Path) -> None:
    older = store.add_book(BookFields(title="Older", author="A", rating=4))
    store.attach_tag(older.id, "keep")
    store.attach_tag(older.id, "lend")
    store.add_book(BookFields(title="Newer", status=BookStatus.READ, isbn="0306406152"))

    path = cli.export_catalog(store, tmp_path / "catalog.csv")

    frame = pandas.read_csv(path, dtype=str, keep_default_na=False)
    assert list(frame.columns) == cli.EXPORT_COLUMNS
    assert list(frame["title"]) == ["Newer", "Older"]
    assert list(frame["tags"]) == ["", "keep, lend"]
    assert frame.loc[0, "isbn"] == "0306406152"
    assert frame.loc[0, "status"] == "READ"
    assert frame.loc[0, "finished_at"] != ""


def test_add_from_isbn_uses_resolved_metadata(store: CatalogStore, monkeypatch: pytest.MonkeyPatch) -> None:
    session = FakeSession(
        open_library=FakeResponse(
            open_library_payload(
                ISBN13,
                title="Effective Java",
                authors=[{"name": "Joshua Bloch"}],
                cover={"medium": "m.jpg"},
            )
        )
    )
    _answers(monkeypatch, ["read", "4", "java, reference"])

    cli.add_from_isbn(store, _resolver(session), "978-0-13-468599-1")

    [book] = store.list_books()
    assert book.title == "Effective Java"
    assert book.author == "Joshua Bloch"
    assert book.cover_url == "m.jpg"
    assert book.isbn == ISBN13
    assert book.status is BookStatus.READ
    assert book.rating == 4
    assert [tag.name for tag in book.tags] == ["java", "reference"]


def test_add_from_isbn_prompts_for_title_when_lookup_fails(
    store: CatalogStore,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture,
) -> None:
    _answers(monkeypatch, ["Handwritten Title", "", "", ""])

    cli.add_from_isbn(store, _resolver(FakeSession()), "0306406152")

    assert "Lookup failed" in capsys.readouterr().out
    [book] = store.list_books()
    assert book.title == "Handwritten Title"
    assert book.isbn == "0306406152"
    assert book.status is BookStatus.TO_READ
    assert book.rating is None


def test_add_from_isbn_asks_before_adding_a_duplicate(
    store: CatalogStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store.add_book(BookFields(title="Already here", isbn=ISBN13))
    session = FakeSession()
    _answers(monkeypatch, ["n"])

    cli.add_from_isbn(store, _resolver(session), ISBN13)

    assert len(store.list_books()) == 1
    assert session.calls == []


def test_add_from_isbn_rejects_non_isbn_input(store: CatalogStore, capsys: pytest.CaptureFixture) -> None:
    session = FakeSession()
    cli.add_from_isbn(store, _resolver(session), "12345")
    assert "does not look like an ISBN" in capsys.readouterr().out
    assert session.calls == []
    assert store.list_books() == []


def test_interactive_session_exports_and_quits(
    store: CatalogStore,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store.add_book(BookFields(title="Exported"))
    target = tmp_path / "out.csv"
    _answers(monkeypatch, ["", f"export {target}", "quit"])

    cli.interactive_session(store=store, resolver=_resolver(FakeSession()))

    assert target.exists()
    assert list(pandas.read_csv(target)["title"]) == ["Exported"]
    # A store passed in by the caller stays open.
    assert store.list_books()[0].title == "Exported"
