"""WebSocket transports for VoxRelay.

Two flavours:

- :class:`WebSocketClientTransport` dials out with the ``websockets``
  library. Used for the model backend connection.
- :class:`FastAPIWebSocketTransport` wraps a WebSocket already accepted by
  the FastAPI server. Used for the telephony peer and the observer.
"""

from __future__ import annotations

from typing import Any

import websockets.asyncio.client
from loguru import logger
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from voxrelay.transports.base import BaseTransport, ChannelClosed


class WebSocketClientTransport(BaseTransport):
    """WebSocket client transport for connecting to a remote endpoint.

    Args:
        url: The ``ws://`` or ``wss://`` URL to dial.
        headers: Extra HTTP headers sent with the upgrade request
            (e.g. bearer credentials).
        **ws_kwargs: Passed through to ``websockets.asyncio.client.connect``.
    """

    def __init__(
        self,
        url: str | None = None,
        headers: dict[str, str] | None = None,
        **ws_kwargs: Any,
    ) -> None:
        self._url = url
        self._headers = dict(headers or {})
        self._ws: Any | None = None
        self._ws_kwargs = ws_kwargs

    @property
    def url(self) -> str | None:
        return self._url

    async def connect(self, **kwargs) -> None:
        url = kwargs.get("url", self._url)
        if not url:
            raise ValueError("WebSocket URL is required")
        self._url = url
        logger.debug(f"Connecting to WebSocket: {url}")
        self._ws = await websockets.asyncio.client.connect(
            url,
            additional_headers=self._headers,
            **self._ws_kwargs,
        )
        logger.debug(f"Connected to {url}")

    async def send(self, data: bytes | str) -> None:
        if not self._ws:
            raise ChannelClosed("Not connected")
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise ChannelClosed(str(e)) from e

    async def recv(self) -> bytes | str:
        if not self._ws:
            raise ChannelClosed("Not connected")
        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            raise ChannelClosed(str(e)) from e

    async def disconnect(self) -> None:
        if self._ws:
            ws, self._ws = self._ws, None
            await ws.close()
            logger.debug(f"WebSocket client disconnected: {self._url}")

    def is_connected(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN


class FastAPIWebSocketTransport(BaseTransport):
    """Adapter to make a FastAPI/Starlette WebSocket look like a transport."""

    def __init__(self, websocket: Any) -> None:
        self._ws = websocket
        self._connected = True

    @property
    def client(self) -> Any:
        return getattr(self._ws, "client", None)

    async def connect(self, **kwargs) -> None:
        pass  # Already accepted by FastAPI

    async def send(self, data: bytes | str) -> None:
        if not self._connected:
            raise ChannelClosed("Not connected")
        try:
            if isinstance(data, bytes):
                await self._ws.send_bytes(data)
            else:
                await self._ws.send_text(data)
        except Exception as e:
            # Starlette raises RuntimeError once the socket is closed; the
            # ASGI server may raise its own disconnect error instead.
            self._connected = False
            raise ChannelClosed(str(e)) from e

    async def recv(self) -> bytes | str:
        if not self._connected:
            raise ChannelClosed("Not connected")
        msg = await self._ws.receive()
        if msg.get("type") == "websocket.disconnect":
            self._connected = False
            raise ChannelClosed(f"Peer disconnected (code={msg.get('code')})")
        if msg.get("text") is not None:
            return msg["text"]
        if msg.get("bytes") is not None:
            return msg["bytes"]
        raise ChannelClosed(f"Unexpected WebSocket message: {msg.get('type')}")

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        try:
            await self._ws.close()
        except RuntimeError:
            pass  # close already sent

    def is_connected(self) -> bool:
        return self._connected
