"""Test doubles shared across the suite."""

from __future__ import annotations

import io
import threading
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Union

import requests
from PIL import Image


Outcome = Union[bytes, int, BaseException]


def png_bytes(width: int = 8, height: int = 8, color=(200, 30, 30)) -> bytes:
    """Encode a solid-color PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, "PNG")
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b""):
        self.status_code = status_code
        self.content = content
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """
    Stand-in for ``requests.Session`` with scripted outcomes per URL.

    Each URL has a queue of outcomes consumed one per request: bytes are
    returned as a 200 body, an int is an HTTP status with an empty body,
    and an exception instance is raised. Once a queue is empty the
    ``default`` body is served.
    """

    def __init__(self, default: Optional[bytes] = None):
        self.default = default if default is not None else png_bytes()
        self.scripts: Dict[str, Deque[Outcome]] = defaultdict(deque)
        self.calls: List[str] = []
        self.headers_seen: List[dict] = []
        self.gate: Optional[threading.Event] = None
        self.closed = False
        self._lock = threading.Lock()

    def script(self, url: str, *outcomes: Outcome) -> "FakeSession":
        self.scripts[url].extend(outcomes)
        return self

    def count(self, url: str) -> int:
        with self._lock:
            return self.calls.count(url)

    def get(self, url, headers=None, timeout=None):
        with self._lock:
            self.calls.append(url)
            self.headers_seen.append(dict(headers or {}))
            outcome = self.scripts[url].popleft() if self.scripts[url] else self.default
        if self.gate is not None:
            self.gate.wait(5)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, int):
            return FakeResponse(outcome, b"")
        return FakeResponse(200, outcome)

    def close(self) -> None:
        self.closed = True
