"""In-memory registry of live gateway sessions."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from mcp_searxng.exceptions import InvalidSessionTransition

if TYPE_CHECKING:
    from mcp_searxng.server.streamable_http import StreamableHTTPServerTransport


class SessionState(Enum):
    Initializing = 1
    Active = 2
    Closed = 3


_VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.Initializing: {SessionState.Active, SessionState.Closed},
    SessionState.Active: {SessionState.Closed},
    SessionState.Closed: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    id: str
    state: SessionState = SessionState.Initializing
    binding: StreamableHTTPServerTransport | None = None
    created_at: datetime = field(default_factory=_utcnow)
    last_activity_at: datetime = field(default_factory=_utcnow)

    def transition(self, new_state: SessionState) -> None:
        if new_state not in _VALID_TRANSITIONS[self.state]:
            raise InvalidSessionTransition(f"Session {self.id}: {self.state.name} -> {new_state.name} is not allowed")
        self.state = new_state

    def touch(self) -> None:
        self.last_activity_at = _utcnow()


class SessionRegistry:
    """Mapping from session id to :class:`Session`.

    The registry does no locking of its own; every mutation goes through
    :class:`~mcp_searxng.server.session_lifecycle.SessionLifecycleManager`,
    which serialises them.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def add(self, session: Session) -> None:
        if session.id in self._sessions:
            raise KeyError(f"Session {session.id} is already registered")
        self._sessions[session.id] = session

    def remove(self, session_id: str) -> Session | None:
        return self._sessions.pop(session_id, None)
