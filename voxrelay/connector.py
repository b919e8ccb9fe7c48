"""Model connector for VoxRelay.

Opens the outbound connection to the realtime model backend for a session,
sends the session handshake once the socket is up, and pumps every decoded
model event into the session's inbox.

The connection attempt runs in the background. Its outcome comes back to
the session actor as a :class:`ModelConnected` or :class:`ModelDisconnected`
signal, so a call that hangs up while the model is still connecting is
resolved by the actor like any other event.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from loguru import logger

from voxrelay.config import ModelConfig
from voxrelay.core.events import SessionUpdate
from voxrelay.core.signals import ModelConnected, ModelDisconnected
from voxrelay.functions.registry import FunctionRegistry
from voxrelay.lifecycle import close_transport
from voxrelay.serializers.realtime import RealtimeSerializer
from voxrelay.session import RelaySession
from voxrelay.transports.base import BaseTransport, ChannelClosed
from voxrelay.transports.websocket import WebSocketClientTransport

# Builds the transport for a model connection: (url, headers) -> transport
TransportFactory = Callable[[str, dict[str, str]], BaseTransport]


class ModelConnector:
    """Connects sessions to the model backend.

    Args:
        config: Model backend settings and handshake baseline.
        serializer: Codec for the model protocol.
        registry: Function registry, used when ``advertise_functions`` is on.
        transport_factory: Override how transports are built (tests).
    """

    def __init__(
        self,
        config: ModelConfig,
        serializer: RealtimeSerializer | None = None,
        registry: FunctionRegistry | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.config = config
        self.serializer = serializer or RealtimeSerializer()
        self.registry = registry
        self._transport_factory = transport_factory or self._default_transport

    @staticmethod
    def _default_transport(url: str, headers: dict[str, str]) -> BaseTransport:
        return WebSocketClientTransport(url=url, headers=headers)

    def headers_for(self, session: RelaySession) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {session.api_key}",
            "OpenAI-Beta": self.config.beta_header,
        }

    def build_handshake(self, session: RelaySession) -> SessionUpdate:
        """Baseline handshake with the session's saved config merged on top."""
        baseline: dict[str, Any] = self.config.handshake.model_dump()
        if self.config.advertise_functions and self.registry is not None:
            baseline["tools"] = self.registry.schemas
        return SessionUpdate(session={**baseline, **session.saved_config})

    def open(self, session: RelaySession) -> bool:
        """Start connecting ``session`` to the model backend.

        Skipped when the session has ended, already has a model channel
        (open or still connecting), or has no credential.

        Returns:
            True if a connection attempt was started.
        """
        if not session.is_active or session.model_channel is not None:
            return False
        if not session.api_key:
            logger.warning(f"No model credential for session {session.stream_id}; not connecting")
            return False

        transport = self._transport_factory(self.config.url, self.headers_for(session))
        session.model_channel = transport
        session.detached_at = None
        session.track(asyncio.create_task(self._connect(session, transport)))
        return True

    async def _connect(self, session: RelaySession, transport: BaseTransport) -> None:
        try:
            await transport.connect()
        except Exception as e:
            logger.error(f"Model connection failed for session {session.stream_id}: {e}")
            session.post(ModelDisconnected(transport, reason=str(e)))
            return
        if not session.is_active:
            # Nobody left to adopt it
            await close_transport(transport)
            return
        session.post(ModelConnected(transport))

    async def on_connected(self, session: RelaySession, transport: BaseTransport) -> bool:
        """Finish a connection attempt from inside the session actor.

        Sends the handshake and starts the reader. If the session moved on
        while connecting (torn down, or a different model channel installed)
        the stale transport is closed instead.

        Returns:
            True if the connection was adopted.
        """
        if not session.is_active or session.model_channel is not transport:
            logger.debug(f"Discarding stale model connection for {session.stream_id}")
            await close_transport(transport)
            return False

        logger.info(f"Model connected for session {session.stream_id}")
        handshake = self.serializer.encode(self.build_handshake(session))
        try:
            await transport.send(handshake)
        except Exception as e:
            logger.error(f"Model handshake failed for session {session.stream_id}: {e}")
            session.post(ModelDisconnected(transport, reason=str(e)))
            return False

        session.track(asyncio.create_task(self._read_loop(session, transport)))
        return True

    async def _read_loop(self, session: RelaySession, transport: BaseTransport) -> None:
        """Model socket -> Serializer -> session inbox."""
        reason = "closed"
        try:
            while transport.is_connected():
                raw = await transport.recv()
                event = self.serializer.decode(raw)
                if event is None:
                    logger.debug(f"Ignoring malformed model message on {session.stream_id}")
                    continue
                session.post(event)
        except ChannelClosed:
            pass
        except Exception as e:
            reason = str(e)
            logger.warning(f"Model reader error for session {session.stream_id}: {e}")
        finally:
            session.post(ModelDisconnected(transport, reason=reason))

