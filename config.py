from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_APP_DIR = Path.home() / ".bookshelf"
DEFAULT_LOOKUP_TIMEOUT = 8.0
DEFAULT_CACHE_TTL = 60 * 60
DEFAULT_CACHE_CAPACITY = 256
DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the catalog and the ISBN lookup."""

    app_dir: Path
    db_path: Path
    google_books_api_key: Optional[str]
    lookup_timeout: float
    cache_ttl: float
    cache_capacity: int
    cors_origins: Tuple[str, ...]


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _list_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(name)
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def get_settings() -> Settings:
    app_dir = Path(os.getenv("BOOKSHELF_HOME") or DEFAULT_APP_DIR)
    db_path = Path(os.getenv("BOOKSHELF_DB_PATH") or app_dir / "catalog.db")
    api_key = (os.getenv("GOOGLE_BOOKS_API_KEY") or "").strip() or None
    return Settings(
        app_dir=app_dir,
        db_path=db_path,
        google_books_api_key=api_key,
        lookup_timeout=_float_env("BOOKSHELF_LOOKUP_TIMEOUT", DEFAULT_LOOKUP_TIMEOUT),
        cache_ttl=_float_env("BOOKSHELF_CACHE_TTL", DEFAULT_CACHE_TTL),
        cache_capacity=_int_env("BOOKSHELF_CACHE_CAPACITY", DEFAULT_CACHE_CAPACITY),
        cors_origins=_list_env("BOOKSHELF_CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
    )
