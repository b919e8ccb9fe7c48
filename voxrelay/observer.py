"""Observer broadcast for VoxRelay.

A single optional monitoring/control connection shared by every session.
Model events from all sessions are mirrored to it, and whatever it sends is
fanned out to all sessions.
"""

from __future__ import annotations

from loguru import logger
from pydantic import BaseModel

from voxrelay.serializers.observer import ObserverSerializer
from voxrelay.session import RelaySession
from voxrelay.transports.base import BaseTransport


class ObserverBroadcast:
    """The process-wide observer slot.

    Attaching or detaching the observer never creates or removes sessions;
    it only changes where model events are mirrored and whether orphaned
    sessions are kept for monitoring.
    """

    def __init__(self, serializer: ObserverSerializer | None = None) -> None:
        self._transport: BaseTransport | None = None
        self.serializer = serializer or ObserverSerializer()

    @property
    def transport(self) -> BaseTransport | None:
        return self._transport

    @property
    def is_attached(self) -> bool:
        return self._transport is not None

    def attach(self, transport: BaseTransport) -> BaseTransport | None:
        """Install ``transport`` as the observer.

        Returns:
            The previously attached transport, if any. The caller is
            responsible for closing it.
        """
        previous, self._transport = self._transport, transport
        logger.info("Observer attached" + (" (replacing previous)" if previous else ""))
        return previous if previous is not transport else None

    def detach(self, transport: BaseTransport) -> bool:
        """Clear the slot, but only if ``transport`` is still the observer."""
        if self._transport is not transport:
            return False
        self._transport = None
        logger.info("Observer detached")
        return True

    async def publish(self, event: BaseModel) -> None:
        """Mirror a model event to the observer. Never raises."""
        transport = self._transport
        if transport is None or not transport.is_connected():
            return
        wire_msg = self.serializer.encode(event)
        if wire_msg is None:
            return
        try:
            await transport.send(wire_msg)
        except Exception as e:
            logger.debug(f"Dropped observer message: {e}")

    def fan_out(self, message: BaseModel, sessions: list[RelaySession]) -> int:
        """Post an observer message to every session in ``sessions``.

        ``sessions`` should be a snapshot; sessions that end while the
        fan-out is in progress simply drop the message.

        Returns:
            Number of sessions the message was posted to.
        """
        posted = 0
        for session in sessions:
            if session.is_active:
                session.post(message)
                posted += 1
        return posted
