"""Unified message model for VoxRelay.

Each protocol direction the relay speaks has its own closed set of tagged
variants: telephony inbound/outbound, model inbound/outbound and observer
inbound. Serializers decode wire frames into exactly one of these variants
(or ``None`` for malformed input) and encode them back. Nothing past the
serializer layer ever handles a schema-less dict, except the ``raw`` copies
kept for verbatim mirroring.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Telephony side (Twilio Media Streams)
# ---------------------------------------------------------------------------


class TelephonyEventType(str, Enum):
    START = "start"
    MEDIA = "media"
    CLOSE = "close"
    MARK = "mark"
    CLEAR = "clear"
    UNRECOGNIZED = "unrecognized"


class TelephonyEvent(BaseModel):
    """Base class for every message exchanged with the telephony peer."""

    event_type: TelephonyEventType


class StreamStarted(TelephonyEvent):
    """The telephony peer opened a media stream for a new call."""

    event_type: TelephonyEventType = TelephonyEventType.START
    stream_id: str
    call_id: str = ""
    custom_parameters: dict[str, Any] = Field(default_factory=dict)


class MediaReceived(TelephonyEvent):
    """One inbound audio frame from the caller.

    ``timestamp`` is the media-clock position in milliseconds since the
    stream started; ``payload`` is the base64 audio, passed through as-is.
    """

    event_type: TelephonyEventType = TelephonyEventType.MEDIA
    timestamp: int
    payload: str


class StreamClosed(TelephonyEvent):
    """The telephony peer ended the stream."""

    event_type: TelephonyEventType = TelephonyEventType.CLOSE


class UnrecognizedTelephonyEvent(TelephonyEvent):
    """A well-formed telephony message the relay does not act on."""

    event_type: TelephonyEventType = TelephonyEventType.UNRECOGNIZED
    name: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


class OutboundMedia(TelephonyEvent):
    """Assistant audio to play to the caller."""

    event_type: TelephonyEventType = TelephonyEventType.MEDIA
    stream_id: str
    payload: str


class OutboundMark(TelephonyEvent):
    """Playback checkpoint sent right after each outbound media frame."""

    event_type: TelephonyEventType = TelephonyEventType.MARK
    stream_id: str
    name: str | None = None


class ClearAudio(TelephonyEvent):
    """Instruct the telephony peer to drop any audio it has buffered."""

    event_type: TelephonyEventType = TelephonyEventType.CLEAR
    stream_id: str


# ---------------------------------------------------------------------------
# Model side (realtime speech backend)
# ---------------------------------------------------------------------------


class ModelEventType(str, Enum):
    # Server -> relay
    SPEECH_STARTED = "input_audio_buffer.speech_started"
    AUDIO_DELTA = "response.audio.delta"
    OUTPUT_ITEM_DONE = "response.output_item.done"
    UNRECOGNIZED = "unrecognized"
    # Relay -> server
    SESSION_UPDATE = "session.update"
    INPUT_AUDIO_APPEND = "input_audio_buffer.append"
    ITEM_TRUNCATE = "conversation.item.truncate"
    ITEM_CREATE = "conversation.item.create"
    RESPONSE_CREATE = "response.create"
    RAW = "raw"


class ModelEvent(BaseModel):
    """Base class for events received from the model backend.

    ``raw`` holds the decoded record exactly as received so that it can be
    mirrored to the observer without re-serialising the variant.
    """

    event_type: ModelEventType
    raw: dict[str, Any] = Field(default_factory=dict)


class SpeechStarted(ModelEvent):
    """Server-side VAD detected the caller starting to speak."""

    event_type: ModelEventType = ModelEventType.SPEECH_STARTED


class AudioDelta(ModelEvent):
    """A chunk of assistant audio for the content item ``item_id``."""

    event_type: ModelEventType = ModelEventType.AUDIO_DELTA
    item_id: str = ""
    delta: str = ""


class FunctionCall(BaseModel):
    """A completed remote-procedure request emitted by the model."""

    name: str
    arguments: str = ""
    call_id: str = ""


class OutputItemDone(ModelEvent):
    """The model finished producing one output item."""

    event_type: ModelEventType = ModelEventType.OUTPUT_ITEM_DONE
    item: dict[str, Any] = Field(default_factory=dict)

    @property
    def function_call(self) -> FunctionCall | None:
        """The item as a :class:`FunctionCall`, or None for other item types."""
        if self.item.get("type") != "function_call":
            return None
        name = self.item.get("name")
        if not isinstance(name, str) or not name:
            return None
        arguments = self.item.get("arguments", "")
        return FunctionCall(
            name=name,
            arguments=arguments if isinstance(arguments, str) else "",
            call_id=str(self.item.get("call_id", "")),
        )


class UnrecognizedModelEvent(ModelEvent):
    """Any other server event; only mirrored to the observer."""

    event_type: ModelEventType = ModelEventType.UNRECOGNIZED
    type: str = ""


class ModelCommand(BaseModel):
    """Base class for commands the relay sends to the model backend."""

    event_type: ModelEventType


class SessionUpdate(ModelCommand):
    """Session configuration handshake."""

    event_type: ModelEventType = ModelEventType.SESSION_UPDATE
    session: dict[str, Any] = Field(default_factory=dict)


class InputAudioAppend(ModelCommand):
    event_type: ModelEventType = ModelEventType.INPUT_AUDIO_APPEND
    audio: str


class ItemTruncate(ModelCommand):
    """Cut an assistant item at the point the caller actually heard."""

    event_type: ModelEventType = ModelEventType.ITEM_TRUNCATE
    item_id: str
    content_index: int = 0
    audio_end_ms: int = Field(default=0, ge=0)


class FunctionCallOutput(ModelCommand):
    """Result of a function call, sent as a ``conversation.item.create``."""

    event_type: ModelEventType = ModelEventType.ITEM_CREATE
    call_id: str
    output: str


class ResponseCreate(ModelCommand):
    event_type: ModelEventType = ModelEventType.RESPONSE_CREATE


class RawCommand(ModelCommand):
    """An observer-supplied command forwarded to the model verbatim."""

    event_type: ModelEventType = ModelEventType.RAW
    payload: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Observer side
# ---------------------------------------------------------------------------


class ObserverEventType(str, Enum):
    SESSION_UPDATE = "session.update"
    COMMAND = "command"


class ObserverMessage(BaseModel):
    """Base class for messages received from the observer.

    ``raw`` is forwarded verbatim to every open model channel.
    """

    event_type: ObserverEventType
    raw: dict[str, Any] = Field(default_factory=dict)


class ObserverSessionUpdate(ObserverMessage):
    """Configuration update applied to every session's saved config."""

    event_type: ObserverEventType = ObserverEventType.SESSION_UPDATE
    session: dict[str, Any] = Field(default_factory=dict)


class ObserverCommand(ObserverMessage):
    event_type: ObserverEventType = ObserverEventType.COMMAND


# Type aliases for any event of a given direction
TelephonyInbound = StreamStarted | MediaReceived | StreamClosed | UnrecognizedTelephonyEvent
TelephonyOutbound = OutboundMedia | OutboundMark | ClearAudio
ModelInbound = SpeechStarted | AudioDelta | OutputItemDone | UnrecognizedModelEvent
ModelOutbound = (
    SessionUpdate
    | InputAudioAppend
    | ItemTruncate
    | FunctionCallOutput
    | ResponseCreate
    | RawCommand
)
ObserverInbound = ObserverSessionUpdate | ObserverCommand

# Map model event tags to their classes for deserialization
MODEL_EVENT_TYPE_MAP: dict[str, type[ModelEvent]] = {
    ModelEventType.SPEECH_STARTED.value: SpeechStarted,
    ModelEventType.AUDIO_DELTA.value: AudioDelta,
    ModelEventType.OUTPUT_ITEM_DONE.value: OutputItemDone,
}
