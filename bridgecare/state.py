from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Generic, Iterator, TypeVar
from uuid import uuid4


logger = logging.getLogger(__name__)

T = TypeVar('T')


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class SessionNotFound(KeyError):
    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f'Session not found: {self.session_id}'


class SessionLimitReached(RuntimeError):
    pass


@dataclass
class SessionEntry(Generic[T]):
    session_id: str
    value: T
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class SessionRegistry(Generic[T]):
    """In-memory sessions keyed by id.

    The registry lock guards the map; each entry's own lock serializes
    work on that session.
    """

    def __init__(self, factory: Callable[[], T], *, ttl_seconds: int, max_sessions: int):
        self._factory = factory
        self._ttl_seconds = ttl_seconds
        self._max_sessions = max_sessions
        self._lock = threading.Lock()
        self._entries: dict[str, SessionEntry[T]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def cleanup(self) -> int:
        if self._ttl_seconds <= 0:
            return 0
        cutoff = now_utc() - timedelta(seconds=self._ttl_seconds)
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.updated_at < cutoff]
            for key in expired:
                self._entries.pop(key, None)
        if expired:
            logger.info('Expired %d idle sessions', len(expired))
        return len(expired)

    def create(self) -> SessionEntry[T]:
        self.cleanup()
        with self._lock:
            if len(self._entries) >= self._max_sessions:
                raise SessionLimitReached(f'Session limit reached ({self._max_sessions})')
            entry = SessionEntry(session_id=uuid4().hex, value=self._factory())
            self._entries[entry.session_id] = entry
        return entry

    def get(self, session_id: str) -> SessionEntry[T]:
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None:
            raise SessionNotFound(session_id)
        return entry

    @contextmanager
    def use(self, session_id: str) -> Iterator[SessionEntry[T]]:
        entry = self.get(session_id)
        with entry.lock:
            try:
                yield entry
            finally:
                entry.updated_at = now_utc()

    def delete(self, session_id: str) -> None:
        with self._lock:
            if self._entries.pop(session_id, None) is None:
                raise SessionNotFound(session_id)
