"""Twilio Media Streams WebSocket serializer.

Translates between Twilio's Media Streams protocol and VoxRelay's telephony
variants. Audio is base64-encoded mu-law at 8kHz and is passed through
untouched in both directions: the model backend is configured to speak
``g711_ulaw`` natively, so there is no transcoding step.

Protocol reference:
    https://www.twilio.com/docs/voice/media-streams/websocket-messages
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ValidationError

from voxrelay.core.events import (
    ClearAudio,
    MediaReceived,
    OutboundMark,
    OutboundMedia,
    StreamClosed,
    StreamStarted,
    TelephonyInbound,
    UnrecognizedTelephonyEvent,
)
from voxrelay.serializers.base import BaseSerializer, encode_message, parse_message


def _coerce_timestamp(value: Any) -> int | None:
    """Twilio sends media timestamps as decimal strings."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        if isinstance(value, str):
            value = float(value)
        if isinstance(value, float) and math.isfinite(value):
            return int(value)
    except (ValueError, OverflowError):
        return None
    return None


class TwilioSerializer(BaseSerializer):
    """Serializer for the Twilio Media Streams WebSocket protocol.

    Twilio sends JSON messages with an ``event`` field that indicates the
    message type.  Only ``start``, ``media`` and ``close``/``stop`` drive the
    relay; everything else (``connected``, ``mark``, ``dtmf``) is surfaced as
    :class:`UnrecognizedTelephonyEvent`.
    """

    @property
    def name(self) -> str:
        return "twilio"

    # ------------------------------------------------------------------
    # Deserialization (provider -> VoxRelay events)
    # ------------------------------------------------------------------

    def decode(self, raw: bytes | str | dict) -> TelephonyInbound | None:
        msg = parse_message(raw)
        if msg is None:
            return None
        event_type = msg.get("event")
        if not isinstance(event_type, str):
            return None

        try:
            if event_type == "start":
                return self._decode_start(msg)
            if event_type == "media":
                return self._decode_media(msg)
        except ValidationError:
            return None

        if event_type in ("close", "stop"):
            return StreamClosed()

        return UnrecognizedTelephonyEvent(name=event_type, payload=msg)

    # ------------------------------------------------------------------
    # Serialization (VoxRelay events -> provider wire format)
    # ------------------------------------------------------------------

    def encode(self, event: BaseModel) -> str | None:
        """Convert an outbound telephony event to a Twilio message.

        Returns ``None`` for event types that Twilio does not accept.
        """
        if isinstance(event, OutboundMedia):
            return encode_message(
                {
                    "event": "media",
                    "streamSid": event.stream_id,
                    "media": {"payload": event.payload},
                }
            )

        if isinstance(event, OutboundMark):
            msg: dict[str, Any] = {"event": "mark", "streamSid": event.stream_id}
            if event.name:
                msg["mark"] = {"name": event.name}
            return encode_message(msg)

        if isinstance(event, ClearAudio):
            return encode_message({"event": "clear", "streamSid": event.stream_id})

        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _decode_start(msg: dict[str, Any]) -> StreamStarted | None:
        start_data = msg.get("start")
        if not isinstance(start_data, dict):
            return None
        stream_id = start_data.get("streamSid") or msg.get("streamSid")
        if not isinstance(stream_id, str) or not stream_id:
            return None
        custom_params = start_data.get("customParameters") or {}
        return StreamStarted(
            stream_id=stream_id,
            call_id=str(start_data.get("callSid", "")),
            custom_parameters=custom_params if isinstance(custom_params, dict) else {},
        )

    @staticmethod
    def _decode_media(msg: dict[str, Any]) -> MediaReceived | None:
        media_data = msg.get("media")
        if not isinstance(media_data, dict):
            return None
        timestamp = _coerce_timestamp(media_data.get("timestamp"))
        payload = media_data.get("payload")
        if timestamp is None or not isinstance(payload, str):
            return None
        return MediaReceived(timestamp=timestamp, payload=payload)
