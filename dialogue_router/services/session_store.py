"""
Session storage keyed by customer identifier.

``SessionStore`` is the interface the engine depends on. The in-memory
implementation keeps everything per instance, so independent stores
(tests, several engines in one process) never share state.
"""

import asyncio
from typing import Any, Optional, Protocol

from dialogue_router.config import settings
from dialogue_router.conversation.state_machine import Session, SessionState
from dialogue_router.logging_context import get_turn_logger
from dialogue_router.schemas.conversation_schema import Turn

logger = get_turn_logger(__name__)


class SessionStore(Protocol):
    async def get(self, key: str) -> Optional[Session]: ...

    async def create(self, key: str) -> Session: ...

    async def save(self, session: Session) -> None: ...

    async def update(
        self, key: str, state: SessionState, context_patch: Optional[dict[str, Any]] = None
    ) -> Session: ...

    async def append_history(self, key: str, turn: Turn) -> None: ...

    async def get_recent_history(self, key: str, n: int) -> list[Turn]: ...

    def lock(self, key: str) -> asyncio.Lock: ...


class InMemorySessionStore:
    """Process-local store with one asyncio.Lock per customer key."""

    def __init__(self, history_limit: Optional[int] = None):
        self.history_limit = history_limit or settings.session.history_limit
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def get(self, key: str) -> Optional[Session]:
        return self._sessions.get(key)

    async def create(self, key: str) -> Session:
        session = Session(key=key)
        self._sessions[key] = session
        logger.info("Session created for %s", key)
        return session

    async def get_or_create(self, key: str) -> Session:
        session = await self.get(key)
        if session is None:
            session = await self.create(key)
        return session

    async def save(self, session: Session) -> None:
        self._sessions[session.key] = session

    async def update(
        self, key: str, state: SessionState, context_patch: Optional[dict[str, Any]] = None
    ) -> Session:
        """Set state and merge context directly, bypassing the transition table.

        None values in the patch remove the key.
        """
        session = await self.get_or_create(key)
        session.state = state
        for name, value in (context_patch or {}).items():
            if value is None:
                session.context.pop(name, None)
            else:
                session.context[name] = value
        return session

    async def append_history(self, key: str, turn: Turn) -> None:
        session = await self.get_or_create(key)
        session.history.append(turn)
        overflow = len(session.history) - self.history_limit
        if overflow > 0:
            del session.history[:overflow]

    async def get_recent_history(self, key: str, n: int) -> list[Turn]:
        session = await self.get(key)
        if session is None or n <= 0:
            return []
        return list(session.history[-n:])

    def lock(self, key: str) -> asyncio.Lock:
        """Return the lock that serializes turns for ``key``."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def reset(self) -> None:
        """Drop all sessions. Test helper."""
        self._sessions.clear()
        self._locks.clear()
