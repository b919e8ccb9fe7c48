"""Shared fixtures for the VoxRelay test-suite.

Transports are replaced with in-memory fakes that record every frame sent
and let a test feed inbound frames.
"""

import asyncio
import json

import pytest

from voxrelay.bridge import RealtimeRelay
from voxrelay.config import ModelConfig, RelayConfig
from voxrelay.functions.registry import FunctionRegistry
from voxrelay.transports.base import BaseTransport, ChannelClosed


class FakeTransport(BaseTransport):
    """In-memory transport recording everything sent through it."""

    def __init__(self, connected: bool = True, fail_connect: bool = False) -> None:
        self.connected = connected
        self.fail_connect = fail_connect
        self.sent: list[str] = []
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.url = None
        self.headers = None
        self._incoming: asyncio.Queue | None = None

    @property
    def incoming(self) -> asyncio.Queue:
        if self._incoming is None:
            self._incoming = asyncio.Queue()
        return self._incoming

    async def connect(self, **kwargs) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise ConnectionRefusedError("connection refused")
        self.connected = True

    async def send(self, data: bytes | str) -> None:
        if not self.connected:
            raise ChannelClosed("closed")
        self.sent.append(data)

    async def recv(self) -> bytes | str:
        item = await self.incoming.get()
        if item is None:
            self.connected = False
            raise ChannelClosed("closed")
        return item

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False
        self.incoming.put_nowait(None)

    def is_connected(self) -> bool:
        return self.connected

    def feed(self, msg) -> None:
        """Queue an inbound frame (dicts are JSON-encoded)."""
        self.incoming.put_nowait(json.dumps(msg) if isinstance(msg, dict) else msg)

    def hang_up(self) -> None:
        """Simulate the peer dropping the socket."""
        self.incoming.put_nowait(None)

    @property
    def messages(self) -> list[dict]:
        return [json.loads(m) for m in self.sent]

    def of_type(self, key: str, value: str) -> list[dict]:
        return [m for m in self.messages if m.get(key) == value]


class FakeModelFactory:
    """Transport factory handing out FakeTransports for model connections."""

    def __init__(self, fail_connect: bool = False) -> None:
        self.fail_connect = fail_connect
        self.created: list[FakeTransport] = []

    def __call__(self, url: str, headers: dict[str, str]) -> FakeTransport:
        transport = FakeTransport(connected=False, fail_connect=self.fail_connect)
        transport.url = url
        transport.headers = headers
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


async def _settle(session=None, rounds: int = 5) -> None:
    """Let background tasks run and the session actor catch up."""
    for _ in range(rounds):
        await asyncio.sleep(0)
        if session is not None:
            await session.flush()


@pytest.fixture
def fake_transport():
    return FakeTransport


@pytest.fixture
def model_factory():
    return FakeModelFactory()


@pytest.fixture
def registry():
    return FunctionRegistry(load_builtins=False)


@pytest.fixture
def relay_config():
    return RelayConfig(model=ModelConfig(api_key="sk-test"))


@pytest.fixture
def relay(relay_config, registry, model_factory):
    return RealtimeRelay(relay_config, registry=registry, transport_factory=model_factory)


@pytest.fixture
def settle():
    return _settle


def start_message(stream_id: str = "MZ-1", call_id: str = "CA-1") -> dict:
    return {
        "event": "start",
        "start": {"streamSid": stream_id, "callSid": call_id, "customParameters": {}},
        "streamSid": stream_id,
    }


def media_message(timestamp, payload: str = "AAAA") -> dict:
    return {"event": "media", "media": {"timestamp": str(timestamp), "payload": payload}}


@pytest.fixture
def twilio():
    """Builders for Twilio Media Streams messages."""

    class _Twilio:
        start = staticmethod(start_message)
        media = staticmethod(media_message)
        close = staticmethod(lambda: {"event": "close"})

    return _Twilio
