from __future__ import annotations

from pathlib import Path

import pytest

from config import DEFAULT_CACHE_CAPACITY, DEFAULT_CORS_ORIGINS, DEFAULT_LOOKUP_TIMEOUT, get_settings
from resolver import get_resolver


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "BOOKSHELF_HOME",
        "BOOKSHELF_DB_PATH",
        "GOOGLE_BOOKS_API_KEY",
        "BOOKSHELF_LOOKUP_TIMEOUT",
        "BOOKSHELF_CACHE_TTL",
        "BOOKSHELF_CACHE_CAPACITY",
        "BOOKSHELF_CORS_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BOOKSHELF_HOME", str(tmp_path))
    settings = get_settings()
    assert settings.app_dir == tmp_path
    assert settings.db_path == tmp_path / "catalog.db"
    assert settings.google_books_api_key is None
    assert settings.lookup_timeout == DEFAULT_LOOKUP_TIMEOUT
    assert settings.cache_capacity == DEFAULT_CACHE_CAPACITY


def test_overrides_and_bad_numbers(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BOOKSHELF_DB_PATH", str(tmp_path / "other.db"))
    monkeypatch.setenv("GOOGLE_BOOKS_API_KEY", "  abc  ")
    monkeypatch.setenv("BOOKSHELF_LOOKUP_TIMEOUT", "2.5")
    monkeypatch.setenv("BOOKSHELF_CACHE_CAPACITY", "lots")

    settings = get_settings()

    assert settings.db_path == tmp_path / "other.db"
    assert settings.google_books_api_key == "abc"
    assert settings.lookup_timeout == 2.5
    assert settings.cache_capacity == DEFAULT_CACHE_CAPACITY


def test_blank_api_key_counts_as_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOOGLE_BOOKS_API_KEY", "   ")
    assert get_settings().google_books_api_key is None


def test_resolvers_share_one_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GOOGLE_BOOKS_API_KEY", "key")
    first = get_resolver()
    second = get_resolver()
    assert first.cache is second.cache
    assert first.google_api_key == "key"


def test_cors_origins_are_explicit(monkeypatch: pytest.MonkeyPatch) -> None:
    assert get_settings().cors_origins == DEFAULT_CORS_ORIGINS
    assert "*" not in DEFAULT_CORS_ORIGINS

    monkeypatch.setenv("BOOKSHELF_CORS_ORIGINS", " https://books.example , http://localhost:5173,")
    assert get_settings().cors_origins == ("https://books.example", "http://localhost:5173")
