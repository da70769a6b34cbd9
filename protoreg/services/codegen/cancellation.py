from __future__ import annotations

import threading
import time
from typing import Optional


class CancellationToken:
    """Thread-safe cancellation flag.

    A child token reports cancelled when it or any ancestor is cancelled,
    so cancelling a batch reaches every per-language task without touching
    tokens owned by the caller.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None) -> None:
        self._event = threading.Event()
        self._parent = parent
        self._reason = ""
        self._lock = threading.Lock()

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if not self._event.is_set():
                self._reason = reason
                self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> str:
        if self._event.is_set():
            return self._reason
        if self._parent is not None:
            return self._parent.reason
        return ""

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def wait(self, timeout: float, interval: float = 0.05) -> bool:
        """Block up to ``timeout`` seconds; True when cancelled."""
        deadline = time.monotonic() + timeout
        while not self.cancelled:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._event.wait(min(interval, remaining))
        return True
