"""Peer channel interface for VoxRelay.

The relay talks to three kinds of peer (telephony stream, model backend,
observer) and only ever sees them through :class:`BaseTransport`, never the
underlying WebSocket library. Each transport carries whole text or binary
frames.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ChannelClosed(ConnectionError):
    """Raised by a transport when the peer has gone away."""


class BaseTransport(ABC):
    """One bidirectional frame channel to a peer.

    ``send`` and ``recv`` raise :class:`ChannelClosed` once the peer is gone;
    ``disconnect`` on an already-closed channel is a no-op.
    """

    @abstractmethod
    async def connect(self, **kwargs) -> None:
        """Open the channel. Server-accepted channels are already open."""
        ...

    @abstractmethod
    async def send(self, data: bytes | str) -> None:
        ...

    @abstractmethod
    async def recv(self) -> bytes | str:
        """Wait for the next frame from the peer."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether frames can currently be exchanged."""
        ...
