"""Call session record, its state machine and the process-wide registry."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum


class SessionState(str, Enum):
    AWAITING_START = "awaiting_start"
    CONNECTING_AI = "connecting_ai"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.AWAITING_START: frozenset({SessionState.CONNECTING_AI, SessionState.CLOSING}),
    SessionState.CONNECTING_AI: frozenset({SessionState.ACTIVE, SessionState.CLOSING}),
    SessionState.ACTIVE: frozenset({SessionState.CLOSING}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


def can_transition(current: SessionState, target: SessionState) -> bool:
    return target in _TRANSITIONS[current]


def _new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class CallSession:
    """One bridged phone call.

    Only the coordinator writes ``state``. The telephony adapter records the
    stream and call ids when the stream starts.
    """

    session_id: str = field(default_factory=_new_session_id)
    stream_sid: str | None = None
    call_sid: str | None = None
    conversation_id: str | None = None
    state: SessionState = SessionState.AWAITING_START
    close_cause: str | None = None


class SessionRegistry:
    """In-memory registry of live call sessions keyed by session id.

    Note: This is a single-process registry. Sessions are inserted when the
    telephony socket is accepted and removed once both sockets are closed.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, CallSession] = {}

    async def add(self, session: CallSession) -> None:
        async with self._lock:
            if session.session_id in self._sessions:
                raise ValueError(f"Session {session.session_id} already registered")
            self._sessions[session.session_id] = session

    async def remove(self, session_id: str) -> CallSession | None:
        async with self._lock:
            return self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


GLOBAL_SESSION_REGISTRY = SessionRegistry()
