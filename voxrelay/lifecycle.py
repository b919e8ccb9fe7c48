"""Coordinated teardown of a session's peer channels.

Every path that ends a peer connection (telephony close, telephony socket
drop, model close or error) converges here: close the channel(s), clear them
from the session, then decide exactly once whether the session record goes.
"""

from __future__ import annotations

from loguru import logger

from voxrelay.observer import ObserverBroadcast
from voxrelay.session import RelaySession, SessionStore
from voxrelay.transports.base import BaseTransport


async def close_transport(transport: BaseTransport | None) -> None:
    """Close a channel. Closing an absent or already-closed channel is a no-op."""
    if transport is None or not transport.is_connected():
        return
    try:
        await transport.disconnect()
    except Exception as e:
        logger.debug(f"Error while closing transport: {e}")


class LifecycleManager:
    """Owns the session deletion rule.

    A session is deleted only once it has no telephony channel, no model
    channel, and no observer is attached. Sessions kept alive by the
    observer are later evicted by the idle reaper.
    """

    def __init__(self, sessions: SessionStore, observer: ObserverBroadcast) -> None:
        self.sessions = sessions
        self.observer = observer

    def is_deletable(self, session: RelaySession) -> bool:
        return not session.has_channels and not self.observer.is_attached

    async def teardown(self, session: RelaySession) -> bool:
        """Close both channels of ``session`` and delete it if allowed.

        Returns:
            True if the session record was removed.
        """
        telephony, model = session.telephony_channel, session.model_channel
        session.telephony_channel = None
        session.model_channel = None
        session.reset_response()
        await close_transport(telephony)
        await close_transport(model)
        return self.reap(session)

    async def release_model(self, session: RelaySession) -> bool:
        """Close and forget the model channel of ``session``.

        Returns:
            True if the session record was removed as a result.
        """
        model = session.model_channel
        session.model_channel = None
        await close_transport(model)
        return self.reap(session)

    def reap(self, session: RelaySession) -> bool:
        """Delete ``session`` if the deletion rule allows it."""
        session.mark_detached()
        if not self.is_deletable(session):
            if not session.has_channels:
                logger.debug(
                    f"Keeping session {session.stream_id} for the attached observer"
                )
            return False
        return self.sessions.delete(session.stream_id, session)
