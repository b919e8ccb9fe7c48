"""Session management for VoxRelay.

Each active call gets a RelaySession that tracks its peer channels, the
interruption bookkeeping, and the inbox its actor task drains. The
SessionStore maps stream ids to sessions.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from voxrelay.transports.base import BaseTransport


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


@dataclass
class RelaySession:
    """Bridging state for one active telephony call.

    Interruption bookkeeping:
        ``response_start_timestamp`` and ``last_assistant_item`` are either
        both set (assistant audio is streaming and has not been truncated)
        or both None (idle). ``latest_media_timestamp`` tracks the media
        clock of the most recent caller frame.
    """

    # Stream identifier assigned by the telephony peer
    stream_id: str

    # Peer channels
    telephony_channel: BaseTransport | None = None
    model_channel: BaseTransport | None = None

    # Credential for the model backend
    api_key: str = ""

    # Last observer-supplied configuration, merged into the handshake
    saved_config: dict[str, Any] = field(default_factory=dict)

    # Interruption state
    last_assistant_item: str | None = None
    response_start_timestamp: int | None = None
    latest_media_timestamp: int = 0

    # Call metadata
    call_id: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    # Lifecycle
    is_active: bool = True
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None
    # Set when the session loses its last peer channel
    detached_at: float | None = None

    # Actor mailbox and background tasks (model reader, connects, function calls)
    _inbox: asyncio.Queue | None = None
    _actor: asyncio.Task | None = None
    _tasks: set[asyncio.Task] = field(default_factory=set)

    @property
    def inbox(self) -> asyncio.Queue:
        """Lazy-init the actor inbox."""
        if self._inbox is None:
            self._inbox = asyncio.Queue()
        return self._inbox

    def post(self, item: Any) -> None:
        """Queue an item for the session actor. Dropped once the session ended."""
        if not self.is_active:
            logger.debug(f"Dropping {type(item).__name__} for ended session {self.stream_id}")
            return
        self.inbox.put_nowait(item)

    async def flush(self) -> None:
        """Wait until the actor has applied everything posted so far."""
        if self._inbox is not None:
            await self._inbox.join()

    def track(self, task: asyncio.Task) -> asyncio.Task:
        """Tie a background task to this session's lifetime."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def is_responding(self) -> bool:
        """Whether assistant audio is streaming and has not been truncated."""
        return self.response_start_timestamp is not None

    def reset_response(self) -> None:
        """Return the interruption state machine to idle."""
        self.last_assistant_item = None
        self.response_start_timestamp = None

    @property
    def has_channels(self) -> bool:
        return self.telephony_channel is not None or self.model_channel is not None

    def mark_detached(self) -> None:
        """Record the moment the last peer channel went away."""
        if not self.has_channels and self.detached_at is None:
            self.detached_at = time.time()

    def end(self) -> None:
        """Mark the session as ended and cancel its tasks."""
        if not self.is_active:
            return
        self.is_active = False
        self.ended_at = time.time()
        current = _current_task()
        for task in [self._actor, *self._tasks]:
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._tasks.clear()

    @property
    def duration_ms(self) -> int:
        """Session duration in milliseconds."""
        end = self.ended_at or time.time()
        return int((end - self.started_at) * 1000)


class SessionStore:
    """Table of live sessions keyed by stream id.

    All access happens on the event loop thread, so no locking is needed;
    iteration always goes through :meth:`snapshot` so that sessions can be
    removed mid-iteration.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, RelaySession] = {}

    def create(self, stream_id: str, **kwargs) -> RelaySession:
        """Create and store a new session, replacing any previous record."""
        previous = self._sessions.get(stream_id)
        if previous is not None:
            logger.warning(f"Replacing existing session for stream {stream_id}")
            previous.end()
        session = RelaySession(stream_id=stream_id, **kwargs)
        self._sessions[stream_id] = session
        logger.info(f"Session created: {stream_id}")
        return session

    def get(self, stream_id: str) -> RelaySession | None:
        """Get a session by stream id."""
        return self._sessions.get(stream_id)

    def find(self, predicate: Callable[[RelaySession], bool]) -> RelaySession | None:
        """Return the first session matching ``predicate``."""
        for session in self.snapshot():
            if predicate(session):
                return session
        return None

    def find_by_telephony(self, transport: BaseTransport) -> RelaySession | None:
        return self.find(lambda s: s.telephony_channel is transport)

    def find_by_model(self, transport: BaseTransport) -> RelaySession | None:
        return self.find(lambda s: s.model_channel is transport)

    def delete(self, stream_id: str, session: RelaySession | None = None) -> bool:
        """Remove a session from the store.

        When ``session`` is given the record is only removed if it is still
        that exact session, so a stale teardown never deletes a replacement.

        Returns:
            True if a session was removed.
        """
        current = self._sessions.get(stream_id)
        if current is None or (session is not None and current is not session):
            return False
        del self._sessions[stream_id]
        current.end()
        logger.info(
            f"Session removed: {stream_id} (duration: {current.duration_ms}ms)"
        )
        return True

    def snapshot(self) -> list[RelaySession]:
        """A stable list of the current sessions."""
        return list(self._sessions.values())

    def evict_idle(self, timeout_seconds: float, now: float | None = None) -> list[str]:
        """Remove sessions that have had no peer channel for ``timeout_seconds``.

        Returns:
            The stream ids that were evicted.
        """
        now = time.time() if now is None else now
        evicted = []
        for session in self.snapshot():
            if session.has_channels or session.detached_at is None:
                continue
            if now - session.detached_at >= timeout_seconds:
                if self.delete(session.stream_id, session):
                    evicted.append(session.stream_id)
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle session(s): {', '.join(evicted)}")
        return evicted

    @property
    def active_count(self) -> int:
        """Number of sessions in the store."""
        return len(self._sessions)

    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
