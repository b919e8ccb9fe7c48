"""Realtime model backend serializer.

Speaks the event protocol of the OpenAI Realtime API: JSON records tagged by
a ``type`` field. Only the three server events the relay reacts to get their
own variant; every other server event decodes to
:class:`UnrecognizedModelEvent` so it can still be mirrored to the observer.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError

from voxrelay.core.events import (
    MODEL_EVENT_TYPE_MAP,
    AudioDelta,
    FunctionCallOutput,
    InputAudioAppend,
    ItemTruncate,
    ModelInbound,
    OutputItemDone,
    RawCommand,
    ResponseCreate,
    SessionUpdate,
    UnrecognizedModelEvent,
)
from voxrelay.serializers.base import BaseSerializer, encode_message, parse_message


class RealtimeSerializer(BaseSerializer):
    """Serializer for the realtime model backend."""

    @property
    def name(self) -> str:
        return "realtime"

    def decode(self, raw: bytes | str | dict) -> ModelInbound | None:
        msg = parse_message(raw)
        if msg is None:
            return None
        event_type = msg.get("type")
        if not isinstance(event_type, str):
            return None

        cls = MODEL_EVENT_TYPE_MAP.get(event_type)
        if cls is None:
            return UnrecognizedModelEvent(type=event_type, raw=msg)

        if cls is AudioDelta:
            delta = msg.get("delta")
            if not isinstance(delta, str):
                return None
            item_id = msg.get("item_id")
            return AudioDelta(
                item_id=item_id if isinstance(item_id, str) else "",
                delta=delta,
                raw=msg,
            )

        if cls is OutputItemDone:
            item = msg.get("item")
            if not isinstance(item, dict):
                return None
            return OutputItemDone(item=item, raw=msg)

        try:
            return cls(raw=msg)
        except ValidationError:
            return None

    def encode(self, event: BaseModel) -> str | None:
        """Convert a model command to a realtime client event."""
        msg: dict[str, Any]

        if isinstance(event, SessionUpdate):
            msg = {"type": event.event_type.value, "session": event.session}
        elif isinstance(event, InputAudioAppend):
            msg = {"type": event.event_type.value, "audio": event.audio}
        elif isinstance(event, ItemTruncate):
            msg = {
                "type": event.event_type.value,
                "item_id": event.item_id,
                "content_index": event.content_index,
                "audio_end_ms": event.audio_end_ms,
            }
        elif isinstance(event, FunctionCallOutput):
            msg = {
                "type": event.event_type.value,
                "item": {
                    "type": "function_call_output",
                    "call_id": event.call_id,
                    "output": event.output,
                },
            }
        elif isinstance(event, ResponseCreate):
            msg = {"type": event.event_type.value}
        elif isinstance(event, RawCommand):
            msg = event.payload
        else:
            return None

        return encode_message(msg)
