"""
``requests`` sessions for code that calls them from ``asyncio.to_thread``.

``requests.Session`` is not guaranteed to be thread-safe. Without an injected
session every worker thread gets its own; an injected session is shared, so
calls through it are serialized.
"""

from __future__ import annotations

import contextlib
import threading
from typing import Iterator, Optional, Union

import requests

__all__ = ["SessionLike", "SessionProvider"]

SessionLike = Union["SessionProvider", requests.Session, None]


class SessionProvider:
    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self.shared = session
        self._lock = threading.Lock()
        self._local = threading.local()

    @classmethod
    def of(cls, session: SessionLike) -> "SessionProvider":
        """Reuse an existing provider so that clients built together share its lock."""
        if isinstance(session, SessionProvider):
            return session
        return cls(session)

    @contextlib.contextmanager
    def session(self) -> Iterator[requests.Session]:
        if self.shared is not None:
            with self._lock:
                yield self.shared
            return
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = requests.Session()
        yield session
