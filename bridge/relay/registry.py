"""Process-wide session registry.

Maps session id → :class:`~bridge.relay.session.Session`.  Inserts and
removals go through an :class:`asyncio.Lock`; the registry never touches a
session's bound state.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable

from bridge.relay.session import Session

logger = logging.getLogger(__name__)


def _new_session_id() -> str:
    return uuid.uuid4().hex


class SessionRegistry:
    """Concurrency-safe id → session mapping."""

    def __init__(self, id_factory: Callable[[], str] = _new_session_id) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._new_id = id_factory

    async def create(self, factory: Callable[[str], Session]) -> Session:
        """Allocate a fresh id, build the session with *factory* and register it."""
        async with self._lock:
            session_id = self._new_id()
            while session_id in self._sessions:
                logger.warning("Session id collision on %s, regenerating", session_id)
                session_id = self._new_id()
            session = factory(session_id)
            self._sessions[session_id] = session
        logger.debug("Registered session %s (%d active)", session_id, len(self._sessions))
        return session

    async def remove(self, session_id: str) -> Session | None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.debug("Removed session %s (%d active)", session_id, len(self._sessions))
        return session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def sessions(self) -> list[Session]:
        """Snapshot of the active sessions."""
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
