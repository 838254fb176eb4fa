from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, Optional, Protocol, Tuple

from isbn import normalize
from resolver import BibliographicRecord, BibliographicResolver

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


class DecoderDevice(Protocol):
    """A camera/barcode decoder that pushes each decoded string to a callback."""

    def start(self, on_decoded: Callable[[str], None]) -> None: ...

    def stop(self) -> None: ...


class ScanSession:
    """Consume decoded strings until one normalizes to a 10 or 13 character ISBN.

    The device is stopped on every exit path: acceptance, cancellation,
    timeout, or an error raised while starting or reading.
    """

    def __init__(self, device: DecoderDevice):
        self.device = device
        self.last_detected: Optional[str] = None
        self._events: "queue.Queue[str]" = queue.Queue()
        self._cancelled = threading.Event()

    def publish(self, raw: str) -> None:
        self._events.put(raw)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def wait_for_isbn(self, timeout: Optional[float] = None) -> Optional[str]:
        deadline = None if timeout is None else time.monotonic() + timeout
        try:
            self.device.start(self.publish)
            while not self._cancelled.is_set():
                wait = _POLL_INTERVAL
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        logger.info("Scan timed out without a usable ISBN")
                        return None
                    wait = min(wait, remaining)
                try:
                    raw = self._events.get(timeout=wait)
                except queue.Empty:
                    continue
                self.last_detected = raw
                candidate = normalize(raw)
                if candidate.is_candidate:
                    logger.info("Scanned ISBN %s", candidate.value)
                    return candidate.value
                logger.debug("Ignoring scanned value %r", raw)
            return None
        finally:
            self.device.stop()


def scan_and_resolve(
    scan: ScanSession,
    resolver: BibliographicResolver,
    *,
    timeout: Optional[float] = None,
) -> Optional[Tuple[str, BibliographicRecord]]:
    """Scan one ISBN and resolve it straight away.

    Keep a reference to ``scan`` to cancel it from another thread.
    Returns ``None`` if the scan is cancelled or times out. Resolution errors
    propagate to the caller. Nothing is written to the catalog here.
    """
    isbn = scan.wait_for_isbn(timeout=timeout)
    if isbn is None:
        return None
    return isbn, resolver.resolve(isbn)
