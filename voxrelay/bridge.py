"""VoxRelay - Central relay engine.

The RealtimeRelay class is the heart of the package. It owns the shared
context (session store, observer slot, function gateway, model connector)
and wires together, per call:

1. telephony -> model: Twilio frames -> Serializer -> session actor -> model
2. model -> telephony: model events -> session actor -> Twilio + observer

Every change to a session's state is applied by that session's actor task,
one inbox item at a time. Socket readers, connection attempts and function
calls only ever *post* to the inbox. This keeps the interruption bookkeeping
(``latest_media_timestamp``, ``response_start_timestamp``,
``last_assistant_item``) consistent regardless of how the telephony and
model streams interleave.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable

from loguru import logger
from pydantic import BaseModel

from voxrelay.config import RelayConfig, load_config
from voxrelay.connector import ModelConnector, TransportFactory
from voxrelay.core.events import (
    AudioDelta,
    ClearAudio,
    FunctionCall,
    FunctionCallOutput,
    InputAudioAppend,
    ItemTruncate,
    MediaReceived,
    ModelEvent,
    ObserverMessage,
    ObserverSessionUpdate,
    OutboundMark,
    OutboundMedia,
    OutputItemDone,
    RawCommand,
    ResponseCreate,
    SpeechStarted,
    StreamClosed,
    StreamStarted,
    UnrecognizedTelephonyEvent,
)
from voxrelay.core.signals import (
    FunctionResult,
    ModelConnected,
    ModelDisconnected,
    TelephonyDisconnected,
)
from voxrelay.functions.gateway import FunctionGateway
from voxrelay.functions.registry import FunctionRegistry
from voxrelay.lifecycle import LifecycleManager, close_transport
from voxrelay.observer import ObserverBroadcast
from voxrelay.serializers.realtime import RealtimeSerializer
from voxrelay.serializers.twilio import TwilioSerializer
from voxrelay.session import RelaySession, SessionStore
from voxrelay.transports.base import BaseTransport, ChannelClosed

# Type for event hook callbacks
EventHook = Callable[..., Awaitable[Any]]


def _drain(queue: asyncio.Queue) -> None:
    while not queue.empty():
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            break
        queue.task_done()


class RealtimeRelay:
    """Relay between telephony media streams and a realtime model backend.

    Usage (programmatic):
        relay = RealtimeRelay({"openai_api_key": "sk-...", "public_url": "https://..."})

        @relay.on_interrupt
        async def interrupted(session, audio_end_ms):
            print(f"{session.stream_id} cut off after {audio_end_ms}ms")

        relay.run()

    Usage (embedded in your own server):
        relay = RealtimeRelay(config)
        await relay.start()
        await relay.handle_telephony_connection(transport)
    """

    def __init__(
        self,
        config: RelayConfig | dict | str | Path | None = None,
        registry: FunctionRegistry | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.config = load_config(config)
        self.sessions = SessionStore()
        self.observer = ObserverBroadcast()
        self.lifecycle = LifecycleManager(self.sessions, self.observer)

        self.functions = (
            registry
            if registry is not None
            else FunctionRegistry(load_builtins=self.config.functions.builtins)
        )
        self.gateway = FunctionGateway(self.functions)

        self.telephony_serializer = TwilioSerializer()
        self.model_serializer = RealtimeSerializer()
        self.connector = ModelConnector(
            self.config.model,
            serializer=self.model_serializer,
            registry=self.functions,
            transport_factory=transport_factory,
        )

        self._hooks: dict[str, list[EventHook]] = {
            "on_call_start": [],
            "on_call_end": [],
            "on_interrupt": [],
            "on_model_event": [],
        }
        self._reaper: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Decorator API for event hooks
    # ------------------------------------------------------------------

    def on_call_start(self, fn: EventHook) -> EventHook:
        """Register a hook for new calls. Receives (session: RelaySession)."""
        self._hooks["on_call_start"].append(fn)
        return fn

    def on_call_end(self, fn: EventHook) -> EventHook:
        """Register a hook for telephony teardown. Receives (session)."""
        self._hooks["on_call_end"].append(fn)
        return fn

    def on_interrupt(self, fn: EventHook) -> EventHook:
        """Register a hook for truncations.

        The hook receives (session, audio_end_ms), where ``audio_end_ms`` is
        how much of the interrupted response the caller actually heard.
        """
        self._hooks["on_interrupt"].append(fn)
        return fn

    def on_model_event(self, fn: EventHook) -> EventHook:
        """Register a catch-all hook for decoded model events.

        The hook receives (session, event).
        """
        self._hooks["on_model_event"].append(fn)
        return fn

    async def _dispatch_hook(self, name: str, *args: Any) -> None:
        for handler in self._hooks[name]:
            try:
                await handler(*args)
            except Exception as e:
                logger.error(f"{name} handler error: {e}")

    # ------------------------------------------------------------------
    # Service lifecycle
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Serve the relay over HTTP/WebSocket (blocking)."""
        from voxrelay.server import run_server

        run_server(self.config, relay=self)

    async def start(self) -> None:
        """Start background housekeeping (idle session eviction)."""
        if self._reaper is None or self._reaper.done():
            self._reaper = asyncio.create_task(self._reap_loop())

    async def stop(self) -> None:
        """Stop housekeeping and tear down every session and the observer."""
        if self._reaper is not None:
            self._reaper.cancel()
            try:
                await self._reaper
            except asyncio.CancelledError:
                pass
            self._reaper = None

        for session in self.sessions.snapshot():
            await self.lifecycle.teardown(session)
            self.sessions.delete(session.stream_id, session)

        observer = self.observer.transport
        if observer is not None:
            self.observer.detach(observer)
            await close_transport(observer)

    async def _reap_loop(self) -> None:
        interval = self.config.sessions.reap_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.reap_idle_sessions()

    def reap_idle_sessions(self, now: float | None = None) -> list[str]:
        """Evict sessions that have had no live peer for the idle timeout."""
        return self.sessions.evict_idle(self.config.sessions.idle_timeout_seconds, now)

    # ------------------------------------------------------------------
    # Telephony side
    # ------------------------------------------------------------------

    async def handle_telephony_connection(
        self, transport: BaseTransport, api_key: str | None = None
    ) -> None:
        """Pump one telephony socket until it closes.

        Args:
            transport: The accepted telephony connection.
            api_key: Model credential for calls on this socket. Defaults to
                the configured key.
        """
        try:
            while transport.is_connected():
                raw = await transport.recv()
                await self.handle_telephony_message(transport, raw, api_key=api_key)
        except ChannelClosed:
            pass
        except Exception as e:
            logger.error(f"Telephony reader error: {e}")
        finally:
            session = self.sessions.find_by_telephony(transport)
            if session is not None:
                session.post(TelephonyDisconnected(transport))

    async def handle_telephony_message(
        self,
        transport: BaseTransport,
        raw: bytes | str | dict,
        api_key: str | None = None,
    ) -> RelaySession | None:
        """Decode one telephony frame and route it.

        ``start`` is handled inline because it creates the session; every
        other event goes to the owning session's inbox.

        Returns:
            The session the frame was routed to, if any.
        """
        event = self.telephony_serializer.decode(raw)
        if event is None:
            logger.debug("Ignoring malformed telephony message")
            return None

        if isinstance(event, StreamStarted):
            return await self.start_session(transport, event, api_key=api_key)

        session = self.sessions.find_by_telephony(transport)
        if session is None:
            logger.debug(f"No session for telephony event '{event.event_type.value}'")
            return None
        session.post(event)
        return session

    async def start_session(
        self,
        transport: BaseTransport,
        event: StreamStarted,
        api_key: str | None = None,
    ) -> RelaySession:
        """Create the session for a new stream and start connecting the model."""
        # A socket owns at most one session, a stream id names at most one.
        for stale in (self.sessions.find_by_telephony(transport), self.sessions.get(event.stream_id)):
            if stale is None or not stale.is_active:
                continue
            if stale.telephony_channel is transport:
                stale.telephony_channel = None
            await self.lifecycle.teardown(stale)
            self.sessions.delete(stale.stream_id, stale)

        session = self.sessions.create(
            event.stream_id,
            telephony_channel=transport,
            api_key=api_key if api_key is not None else self.config.model.api_key,
            call_id=event.call_id,
            metadata={"custom_parameters": event.custom_parameters},
        )
        logger.info(f"New telephony stream {event.stream_id} (call: {event.call_id or '-'})")
        session._actor = asyncio.create_task(self._run_session(session))

        await self._dispatch_hook("on_call_start", session)
        self.connector.open(session)
        return session

    async def _on_media(self, session: RelaySession, event: MediaReceived) -> None:
        # The clock moves even while the model link is down.
        session.latest_media_timestamp = event.timestamp
        await self._send_model(session, InputAudioAppend(audio=event.payload))

    async def _on_telephony_closed(self, session: RelaySession) -> None:
        if session.telephony_channel is None:
            return  # already torn down
        logger.info(f"Telephony closed for session {session.stream_id}")
        await self.lifecycle.teardown(session)
        await self._dispatch_hook("on_call_end", session)

    # ------------------------------------------------------------------
    # Session actor
    # ------------------------------------------------------------------

    async def _run_session(self, session: RelaySession) -> None:
        """Apply inbox items to ``session`` one at a time until it ends."""
        inbox = session.inbox
        try:
            while session.is_active:
                item = await inbox.get()
                try:
                    await self.handle_session_item(session, item)
                except Exception as e:
                    logger.error(
                        f"Session {session.stream_id} failed on {type(item).__name__}: {e}"
                    )
                finally:
                    inbox.task_done()
        finally:
            _drain(inbox)

    async def handle_session_item(self, session: RelaySession, item: Any) -> None:
        """Apply one inbox item. Only ever called from the session's actor."""
        if isinstance(item, MediaReceived):
            await self._on_media(session, item)

        elif isinstance(item, StreamClosed):
            await self._on_telephony_closed(session)

        elif isinstance(item, TelephonyDisconnected):
            if session.telephony_channel is item.transport:
                await self._on_telephony_closed(session)

        elif isinstance(item, UnrecognizedTelephonyEvent):
            logger.debug(f"Ignoring telephony event '{item.name}' on {session.stream_id}")

        elif isinstance(item, ModelEvent):
            await self.handle_model_event(session, item)

        elif isinstance(item, ModelConnected):
            await self.connector.on_connected(session, item.transport)

        elif isinstance(item, ModelDisconnected):
            if session.model_channel is item.transport:
                await self._on_model_closed(session, item.reason)

        elif isinstance(item, FunctionResult):
            await self._on_function_result(session, item)

        elif isinstance(item, ObserverMessage):
            await self._on_observer_message(session, item)

        else:
            logger.warning(f"Unknown inbox item {type(item).__name__} on {session.stream_id}")

    # ------------------------------------------------------------------
    # Model side
    # ------------------------------------------------------------------

    async def handle_model_event(self, session: RelaySession, event: ModelEvent) -> None:
        """React to one decoded model event."""
        await self.observer.publish(event)
        await self._dispatch_hook("on_model_event", session, event)

        if isinstance(event, SpeechStarted):
            await self.truncate(session)

        elif isinstance(event, AudioDelta):
            await self._on_audio_delta(session, event)

        elif isinstance(event, OutputItemDone):
            call = event.function_call
            if call is not None:
                self._start_function_call(session, call)

    async def _on_audio_delta(self, session: RelaySession, event: AudioDelta) -> None:
        telephony = session.telephony_channel
        if telephony is None or not telephony.is_connected():
            return

        if event.item_id:
            if session.response_start_timestamp is None:
                session.response_start_timestamp = session.latest_media_timestamp or 0
            session.last_assistant_item = event.item_id

        await self._send_telephony(
            session, OutboundMedia(stream_id=session.stream_id, payload=event.delta)
        )
        await self._send_telephony(session, OutboundMark(stream_id=session.stream_id))

    async def truncate(self, session: RelaySession) -> bool:
        """Cut off the in-flight assistant response at the caller's position.

        Tells the model how much of the item was actually played
        (``audio_end_ms``), tells the telephony peer to drop its buffered
        audio, and returns the session to idle.

        Returns:
            False (and sends nothing) if no response was in flight.
        """
        item_id = session.last_assistant_item
        start = session.response_start_timestamp
        if not item_id or start is None:
            return False

        audio_end_ms = max(0, session.latest_media_timestamp - start)
        session.reset_response()
        logger.info(
            f"Caller interrupted {item_id} on {session.stream_id} at {audio_end_ms}ms"
        )

        await self._send_model(
            session,
            ItemTruncate(item_id=item_id, content_index=0, audio_end_ms=audio_end_ms),
        )
        await self._send_telephony(session, ClearAudio(stream_id=session.stream_id))
        await self._dispatch_hook("on_interrupt", session, audio_end_ms)
        return True

    def _start_function_call(self, session: RelaySession, call: FunctionCall) -> None:
        logger.info(f"Function call {call.name} ({call.call_id}) on {session.stream_id}")
        session.track(asyncio.create_task(self._run_function_call(session, call)))

    async def _run_function_call(self, session: RelaySession, call: FunctionCall) -> None:
        output = await self.gateway.invoke(call.name, call.arguments)
        session.post(FunctionResult(call_id=call.call_id, name=call.name, output=output))

    async def _on_function_result(self, session: RelaySession, result: FunctionResult) -> None:
        if not self._is_open(session.model_channel):
            logger.info(
                f"Discarding result of {result.name} on {session.stream_id}: model channel closed"
            )
            return
        await self._send_model(
            session,
            FunctionCallOutput(call_id=result.call_id, output=json.dumps(result.output)),
        )
        await self._send_model(session, ResponseCreate())

    async def _on_model_closed(self, session: RelaySession, reason: str = "") -> None:
        logger.info(
            f"Model connection closed for session {session.stream_id}"
            + (f": {reason}" if reason and reason != "closed" else "")
        )
        session.reset_response()
        await self.lifecycle.release_model(session)

    # ------------------------------------------------------------------
    # Observer side
    # ------------------------------------------------------------------

    async def handle_observer_connection(self, transport: BaseTransport) -> None:
        """Attach ``transport`` as the observer and pump it until it closes."""
        previous = self.observer.attach(transport)
        if previous is not None:
            await close_transport(previous)
        try:
            while transport.is_connected():
                raw = await transport.recv()
                self.handle_observer_message(raw)
        except ChannelClosed:
            pass
        except Exception as e:
            logger.error(f"Observer reader error: {e}")
        finally:
            self.observer.detach(transport)
            await close_transport(transport)

    def handle_observer_message(self, raw: bytes | str | dict) -> int:
        """Fan an observer frame out to every current session.

        Returns:
            Number of sessions the message was posted to.
        """
        message = self.observer.serializer.decode(raw)
        if message is None:
            logger.debug("Ignoring malformed observer message")
            return 0
        return self.observer.fan_out(message, self.sessions.snapshot())

    async def _on_observer_message(self, session: RelaySession, message: ObserverMessage) -> None:
        await self._send_model(session, RawCommand(payload=message.raw))
        if isinstance(message, ObserverSessionUpdate):
            session.saved_config = dict(message.session)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    @staticmethod
    def _is_open(transport: BaseTransport | None) -> bool:
        return transport is not None and transport.is_connected()

    async def _send(self, transport: BaseTransport | None, wire_msg: str | None) -> bool:
        """Send to a peer; a closed or absent peer silently drops the frame."""
        if wire_msg is None or not self._is_open(transport):
            return False
        try:
            await transport.send(wire_msg)
        except Exception as e:
            logger.debug(f"Dropped outbound frame: {e}")
            return False
        return True

    async def _send_model(self, session: RelaySession, command: BaseModel) -> bool:
        return await self._send(session.model_channel, self.model_serializer.encode(command))

    async def _send_telephony(self, session: RelaySession, event: BaseModel) -> bool:
        return await self._send(
            session.telephony_channel, self.telephony_serializer.encode(event)
        )
