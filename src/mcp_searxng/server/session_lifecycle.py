"""Creation, activation and teardown of gateway sessions."""

from __future__ import annotations

import contextlib
import logging
import math
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING
from uuid import uuid4

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from mcp_searxng.server.session_registry import Session, SessionRegistry, SessionState

if TYPE_CHECKING:
    from mcp_searxng.server.streamable_http import StreamableHTTPServerTransport

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 30.0


def generate_session_id() -> str:
    """Return a fresh session id built from 122 random bits (``uuid4`` draws from ``os.urandom``)."""
    return uuid4().hex


class SessionLifecycleManager:
    """
    Owns the session registry and every state change applied to it.

    All mutations (create, activate, close) run under a single lock so that
    concurrent handshakes and a close racing a lookup never observe a torn
    registry. Bindings do not hold a reference back to the manager; they report
    channel closure by sending their session id on :attr:`closed_events`, which
    the manager drains while :meth:`run` is active.

    Args:
        registry: Registry to manage; a fresh one is created if omitted
        idle_timeout: Seconds of inactivity after which a session without an
                      open push channel is closed. ``None`` disables the sweep.
        sweep_interval: Seconds between two idle sweeps
        id_generator: Factory for new session ids
    """

    def __init__(
        self,
        registry: SessionRegistry | None = None,
        *,
        idle_timeout: float | None = None,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        id_generator: Callable[[], str] = generate_session_id,
    ):
        self.registry = registry if registry is not None else SessionRegistry()
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self._id_generator = id_generator
        self._lock = anyio.Lock()

        self._closed_events_writer: MemoryObjectSendStream[str]
        self._closed_events_reader: MemoryObjectReceiveStream[str]
        self._closed_events_writer, self._closed_events_reader = anyio.create_memory_object_stream[str](math.inf)

    @property
    def closed_events(self) -> MemoryObjectSendStream[str]:
        """Stream on which bindings announce that their channel has closed."""
        return self._closed_events_writer

    def lookup(self, session_id: str) -> Session | None:
        return self.registry.get(session_id)

    async def create_session(self) -> str:
        """Register a new ``Initializing`` session and return its id."""
        async with self._lock:
            session_id = self._id_generator()
            while session_id in self.registry:
                logger.warning("Generated session id collides with a live session, regenerating")
                session_id = self._id_generator()
            self.registry.add(Session(id=session_id))
        logger.debug(f"Registered session {session_id}")
        return session_id

    def bind(self, session_id: str, binding: StreamableHTTPServerTransport) -> None:
        session = self.registry.get(session_id)
        if session is None:
            raise KeyError(f"Unknown session {session_id}")
        if session.binding is not None:
            raise RuntimeError(f"Session {session_id} is already bound to a transport")
        session.binding = binding

    async def activate_session(self, session_id: str) -> bool:
        """Move a session from ``Initializing`` to ``Active``.

        Returns False without raising if the session was closed in the meantime.
        """
        async with self._lock:
            session = self.registry.get(session_id)
            if session is None:
                logger.info(f"Session {session_id} was closed before it could be activated")
                return False
            if session.state is not SessionState.Initializing:
                logger.warning(f"Session {session_id} is already {session.state.name}")
                return False
            session.transition(SessionState.Active)
        logger.info(f"Session {session_id} is active")
        return True

    async def close_session(self, session_id: str, reason: str = "terminated") -> bool:
        """Close and forget a session.

        Idempotent: an unknown or already closed id is a no-op returning False,
        so that explicit termination and a channel-closure event may both fire.
        """
        async with self._lock:
            session = self.registry.remove(session_id)
            if session is None:
                return False
            session.transition(SessionState.Closed)

        logger.info(f"Session {session_id} closed ({reason})")
        if session.binding is not None:
            await session.binding.terminate()
        return True

    async def discard_session(self, session_id: str) -> bool:
        """Roll back a session whose transport could not be set up."""
        return await self.close_session(session_id, reason="rolled back")

    async def close_all(self) -> None:
        for session in self.registry:
            await self.close_session(session.id, reason="shutdown")

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[SessionLifecycleManager]:
        """Drain closure events (and sweep idle sessions) for the lifetime of the context."""
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._consume_closed_events)
            if self.idle_timeout is not None:
                tg.start_soon(self._sweep_idle_sessions)
            try:
                yield self
            finally:
                with anyio.CancelScope(shield=True):
                    await self.close_all()
                tg.cancel_scope.cancel()

    async def _consume_closed_events(self) -> None:
        async for session_id in self._closed_events_reader:
            await self.close_session(session_id, reason="channel closed")

    async def _sweep_idle_sessions(self) -> None:
        assert self.idle_timeout is not None
        max_idle = timedelta(seconds=self.idle_timeout)
        while True:
            await anyio.sleep(self.sweep_interval)
            now = datetime.now(timezone.utc)
            for session in self.registry:
                if session.binding is not None and session.binding.push_channel_open:
                    continue
                if now - session.last_activity_at > max_idle:
                    await self.close_session(session.id, reason="idle timeout")
