"""Process-wide bookkeeping of open reading sessions."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Tuple

from ..utils.errors import SessionNotOpenError
from .reading_session import ReadingSession

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, str]
SessionFactory = Callable[[str, str], ReadingSession]


class SessionRegistry:
    """Holds at most one :class:`ReadingSession` per (user, document) pair.

    Sessions untouched for ``idle_timeout`` seconds are flushed and dropped
    the next time any session is opened; ``0`` keeps them until closed.
    """

    def __init__(
        self,
        factory: SessionFactory,
        *,
        idle_timeout: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: Dict[SessionKey, ReadingSession] = {}
        self._last_used: Dict[SessionKey, float] = {}
        self._open_locks: Dict[SessionKey, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, user_id: str, document_id: str) -> ReadingSession:
        """Open a fresh session, replacing any earlier one for the same document.

        Opens for the same pair are serialised, so every replaced session is
        closed. Raises ``SessionFailedError`` when the document cannot be
        loaded; in that case no session is kept for the pair.
        """

        await self.evict_idle()
        key = (user_id, document_id)
        lock = self._open_locks.setdefault(key, asyncio.Lock())
        async with lock:
            previous = self._pop(key)
            if previous is not None:
                await previous.close()

            session = self._factory(user_id, document_id)
            await session.open()
            self._sessions[key] = session
            self._last_used[key] = self._clock()
            return session

    def get(self, user_id: str, document_id: str) -> ReadingSession:
        key = (user_id, document_id)
        session = self._sessions.get(key)
        if session is None:
            raise SessionNotOpenError("Open the document before reading it")
        self._last_used[key] = self._clock()
        return session

    async def close(self, user_id: str, document_id: str) -> bool:
        session = self._pop((user_id, document_id))
        if session is None:
            return False
        await session.close()
        return True

    async def evict_idle(self) -> int:
        """Close sessions idle for longer than the timeout; returns how many."""

        if self._idle_timeout <= 0:
            return 0
        cutoff = self._clock() - self._idle_timeout
        stale = [key for key, used in self._last_used.items() if used <= cutoff]
        for key in stale:
            session = self._pop(key)
            if session is not None:
                await session.close()
        if stale:
            logger.info("Closed %d idle reading sessions", len(stale))
        return len(stale)

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        self._last_used.clear()
        for session in sessions:
            await session.close()
        if sessions:
            logger.info("Flushed %d open reading sessions", len(sessions))

    def _pop(self, key: SessionKey) -> ReadingSession | None:
        self._last_used.pop(key, None)
        return self._sessions.pop(key, None)


__all__ = ["SessionFactory", "SessionRegistry"]
