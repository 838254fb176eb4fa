from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import requests

from api import GOOGLE_BOOKS_VOLUMES_URL, OPEN_LIBRARY_BOOKS_URL


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, bad_json: bool = False):
        self.payload = payload
        self.status_code = status_code
        self.bad_json = bad_json

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self) -> Any:
        if self.bad_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.payload


Outcome = Union[FakeResponse, Exception, None]


class FakeSession:
    """Stands in for requests.Session; answers per upstream URL and records calls."""

    def __init__(self, open_library: Outcome = None, google: Outcome = None):
        self.open_library = open_library if open_library is not None else FakeResponse({})
        self.google = google if google is not None else FakeResponse({"totalItems": 0})
        self.calls: List[Tuple[str, Dict[str, Any], Optional[float]]] = []

    def get(self, url: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None):
        self.calls.append((url, dict(params or {}), timeout))
        outcome = self.open_library if url == OPEN_LIBRARY_BOOKS_URL else self.google
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def urls(self) -> List[str]:
        return [url for url, _, _ in self.calls]

    def google_calls(self) -> int:
        return self.urls().count(GOOGLE_BOOKS_VOLUMES_URL)


def open_library_payload(isbn: str, **entry: Any) -> Dict[str, Any]:
    return {f"ISBN:{isbn}": entry}


def google_payload(*volume_infos: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "totalItems": len(volume_infos),
        "items": [{"volumeInfo": info} for info in volume_infos],
    }


class StepClock:
    """Deterministic clock: every call moves one minute forward."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current
