"""
Session Store

Process-wide TTL cache of conversational sessions keyed by chat session id.

Every pipeline turn reads, mutates and writes a session across several slow
LLM calls. Two turns for the same session must not interleave, so callers
hold ``lock(session_id)`` for the whole turn.
"""

import copy
import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional, Tuple

from .schemas import Session

logger = logging.getLogger("groundwork.common.session_store")


class SessionStore:
    """In-memory session cache with per-session locks.

    Reads return deep copies so a half-finished turn never leaks into the
    cache. Writes refresh the entry's TTL.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        purge_interval_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._purge_interval = purge_interval_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Session, float]] = {}  # id -> (session, expires_at)
        self._entries_lock = threading.Lock()
        self._session_locks: Dict[str, Tuple[threading.Lock, int]] = {}  # id -> (lock, users)
        self._last_purge = clock()

    def get(self, session_id: str) -> Optional[Session]:
        """Return a copy of the live session, or None if missing/expired."""
        with self._entries_lock:
            self._maybe_purge()
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            session, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[session_id]
                return None
            return copy.deepcopy(session)

    def save(self, session: Session) -> None:
        with self._entries_lock:
            self._entries[session.id] = (copy.deepcopy(session), self._clock() + self._ttl)

    def delete(self, session_id: str) -> None:
        with self._entries_lock:
            self._entries.pop(session_id, None)

    def purge_expired(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        with self._entries_lock:
            return self._purge()

    def _maybe_purge(self) -> None:
        if self._clock() - self._last_purge >= self._purge_interval:
            self._purge()

    def _purge(self) -> int:
        now = self._clock()
        expired = [sid for sid, (_, expires_at) in self._entries.items() if expires_at <= now]
        for sid in expired:
            del self._entries[sid]
        self._last_purge = now
        if expired:
            logger.debug("Purged %d expired session(s)", len(expired))
        return len(expired)

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """Serialize work on one session id.

        The lock is registered with a user count under ``_entries_lock`` and
        dropped only when its last user leaves, so every caller waiting on a
        session id shares one lock.
        """
        with self._entries_lock:
            session_lock, users = self._session_locks.get(session_id, (None, 0))
            if session_lock is None:
                session_lock = threading.Lock()
            self._session_locks[session_id] = (session_lock, users + 1)
        try:
            with session_lock:
                yield
        finally:
            with self._entries_lock:
                _, users = self._session_locks[session_id]
                if users <= 1:
                    del self._session_locks[session_id]
                else:
                    self._session_locks[session_id] = (session_lock, users - 1)
