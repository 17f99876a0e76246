"""Conversation sessions with idle expiry.

The store owns its own sweeper task: call :meth:`InMemorySessionStore.start_sweeper`
from a running event loop and :meth:`~InMemorySessionStore.stop_sweeper` on
shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600.0
DEFAULT_SWEEP_INTERVAL = 300.0

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _now() -> datetime:
    return datetime.now(UTC)


def new_session_id(now: datetime | None = None) -> str:
    """Return an id like ``session_1718000000000_k3j9x0a2b``."""
    millis = int((now or _now()).timestamp() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"session_{millis}_{suffix}"


class Session(BaseModel):
    """One conversation: its message history and activity timestamps."""

    id: str
    history: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    last_activity: datetime = Field(default_factory=_now)

    def add_message(self, role: str, content: str) -> None:
        self.history.append({"role": role, "content": content})
        self.last_activity = _now()


@runtime_checkable
class SessionStore(Protocol):
    """Storage for sessions, injected into whatever serves requests."""

    def get(self, session_id: str) -> Session | None: ...
    def put(self, session: Session) -> None: ...
    def sweep_expired(self, now: datetime) -> int: ...


class InMemorySessionStore:
    """Process-local :class:`SessionStore` with idle-time expiry."""

    def __init__(self, ttl: float = DEFAULT_TTL) -> None:
        self._ttl = timedelta(seconds=ttl)
        self._sessions: dict[str, Session] = {}
        self._sweeper: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def put(self, session: Session) -> None:
        self._sessions[session.id] = session

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def get_or_create(self, session_id: str | None = None) -> Session:
        """Fetch *session_id* (creating it if unknown) and mark it active."""
        session_id = session_id or new_session_id()
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(id=session_id)
            self._sessions[session_id] = session
        session.last_activity = _now()
        return session

    def sweep_expired(self, now: datetime) -> int:
        """Drop sessions idle for longer than the TTL; return how many."""
        cutoff = now - self._ttl
        expired = [sid for sid, s in self._sessions.items() if s.last_activity < cutoff]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("Expired %d session(s)", len(expired))
        return len(expired)

    def start_sweeper(self, interval: float = DEFAULT_SWEEP_INTERVAL) -> None:
        """Start the background sweep task on the running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_forever(interval))

    async def stop_sweeper(self) -> None:
        """Cancel the background sweep task and wait for it."""
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep_expired(_now())
