"""
bot/session_manager.py — In-memory store of in-progress conversations.

One session per Telegram user. A session holds the state tag of the step the
user is answering (``"<flow>:<step>"``) and the fields collected so far.
Nothing is persisted: a restart drops in-flight flows and the user simply
starts again.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class Session:
    user_id: int
    state: str
    data: Dict[str, Any] = field(default_factory=dict)
    # value -> label of the buttons offered for the current selection step
    choices: Dict[str, str] = field(default_factory=dict)
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def flow_name(self) -> str:
        return self.state.split(":", 1)[0]

    @property
    def step_key(self) -> str:
        return self.state.split(":", 1)[1] if ":" in self.state else ""


class SessionStore:
    """
    Keyed mapping user_id -> Session.

    ``ttl_seconds`` drops sessions that have not been touched for that long;
    ``0`` keeps them until completion or cancel. Expiry is lazy: an expired
    session is removed the next time it is read, or by ``purge_expired``.
    The flow it belonged to is remembered for one more TTL period so the
    user's next message can be told to restart that flow.

    Handlers wrap the whole read-modify-write of one inbound event in
    ``hold(user_id)`` so two updates from the same user never interleave.
    A user's lock is dropped as soon as no event of theirs is in flight.
    """

    def __init__(self, ttl_seconds: int = 0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[int, Session] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        # user_id -> events holding or waiting on that user's lock
        self._holders: Dict[int, int] = {}
        # user_id -> (flow name, expired at)
        self._expired_flows: Dict[int, Tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    # ---------------------------------------------------------------- locking

    def lock(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    @contextlib.asynccontextmanager
    async def hold(self, user_id: int) -> AsyncIterator[None]:
        """Serialize one event for ``user_id``; forget the lock once idle."""
        lock = self.lock(user_id)
        self._holders[user_id] = self._holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[user_id] -= 1
            if not self._holders[user_id]:
                del self._holders[user_id]
                self._locks.pop(user_id, None)

    # --------------------------------------------------------------- sessions

    def _expired(self, session: Session) -> bool:
        if not self.ttl_seconds:
            return False
        return self._clock() - session.updated_at > self.ttl_seconds

    def _expire(self, user_id: int) -> None:
        session = self._sessions.pop(user_id)
        logger.info("Session for user %s expired in state %s", user_id, session.state)
        self._expired_flows[user_id] = (session.flow_name, self._clock())

    def set(self, user_id: int, state: str, data: Optional[Dict[str, Any]] = None) -> Session:
        """Start a session, discarding whatever the user had before."""
        now = self._clock()
        session = Session(
            user_id=user_id,
            state=state,
            data=dict(data or {}),
            created_at=now,
            updated_at=now,
        )
        self._sessions[user_id] = session
        self._expired_flows.pop(user_id, None)
        return session

    def get(self, user_id: int) -> Optional[Session]:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if self._expired(session):
            self._expire(user_id)
            return None
        return session

    def update(self, session: Session) -> None:
        session.updated_at = self._clock()
        self._sessions[session.user_id] = session

    def clear(self, user_id: int) -> None:
        self._sessions.pop(user_id, None)
        self._expired_flows.pop(user_id, None)

    def pop_expired(self, user_id: int) -> Optional[str]:
        """Name of the flow whose session just timed out for ``user_id``, once."""
        self.get(user_id)
        record = self._expired_flows.pop(user_id, None)
        return record[0] if record else None

    def purge_expired(self) -> int:
        """Drop every expired session. Returns how many were removed."""
        expired = [uid for uid, s in self._sessions.items() if self._expired(s)]
        for uid in expired:
            self._expire(uid)

        now = self._clock()
        stale = [uid for uid, (_, at) in self._expired_flows.items() if now - at > self.ttl_seconds]
        for uid in stale:
            del self._expired_flows[uid]

        if expired:
            logger.debug("Purged %d expired sessions", len(expired))
        return len(expired)
