"""Tests for VoxRelay serializers."""

import json

import pytest

from voxrelay.core.events import (
    AudioDelta,
    ClearAudio,
    FunctionCallOutput,
    InputAudioAppend,
    ItemTruncate,
    MediaReceived,
    ObserverCommand,
    ObserverSessionUpdate,
    OutboundMark,
    OutboundMedia,
    OutputItemDone,
    RawCommand,
    ResponseCreate,
    SessionUpdate,
    SpeechStarted,
    StreamClosed,
    StreamStarted,
    UnrecognizedModelEvent,
    UnrecognizedTelephonyEvent,
)
from voxrelay.serializers.base import parse_message
from voxrelay.serializers.observer import ObserverSerializer
from voxrelay.serializers.realtime import RealtimeSerializer
from voxrelay.serializers.twilio import TwilioSerializer


class TestParseMessage:

    def test_accepts_text_bytes_and_dicts(self):
        assert parse_message('{"a": 1}') == {"a": 1}
        assert parse_message(b'{"a": 1}') == {"a": 1}
        assert parse_message({"a": 1}) == {"a": 1}

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", "42", b"\xff\xfe", '"text"'])
    def test_rejects_non_objects(self, raw):
        assert parse_message(raw) is None


# ==========================================================================
# Twilio Serializer Tests
# ==========================================================================


class TestTwilioSerializer:

    @pytest.fixture
    def serializer(self):
        return TwilioSerializer()

    def test_name(self, serializer):
        assert serializer.name == "twilio"

    def test_start_event(self, serializer):
        msg = {
            "event": "start",
            "sequenceNumber": "1",
            "start": {
                "streamSid": "MZ123",
                "accountSid": "AC123",
                "callSid": "CA123",
                "customParameters": {"caller": "+15551234567"},
            },
            "streamSid": "MZ123",
        }
        event = serializer.decode(json.dumps(msg))
        assert isinstance(event, StreamStarted)
        assert event.stream_id == "MZ123"
        assert event.call_id == "CA123"
        assert event.custom_parameters == {"caller": "+15551234567"}

    def test_start_without_stream_sid_is_malformed(self, serializer):
        assert serializer.decode({"event": "start", "start": {"callSid": "CA1"}}) is None
        assert serializer.decode({"event": "start"}) is None

    def test_media_event(self, serializer):
        msg = {
            "event": "media",
            "media": {"track": "inbound", "chunk": "2", "timestamp": "1200", "payload": "f/9/"},
            "streamSid": "MZ123",
        }
        event = serializer.decode(msg)
        assert isinstance(event, MediaReceived)
        assert event.timestamp == 1200
        assert event.payload == "f/9/"

    def test_media_accepts_numeric_timestamp(self, serializer):
        event = serializer.decode({"event": "media", "media": {"timestamp": 40, "payload": "x"}})
        assert event.timestamp == 40

    @pytest.mark.parametrize("media", [
        {"timestamp": "soon", "payload": "x"},
        {"timestamp": float("nan"), "payload": "x"},
        {"timestamp": float("inf"), "payload": "x"},
        {"timestamp": "inf", "payload": "x"},
        {"timestamp": "NaN", "payload": "x"},
        {"timestamp": "20"},
        {"payload": "x"},
        "not-a-dict",
    ])
    def test_media_with_unusable_fields_is_malformed(self, serializer, media):
        assert serializer.decode({"event": "media", "media": media}) is None

    def test_media_with_overflowing_timestamp_is_malformed(self, serializer):
        raw = '{"event": "media", "media": {"timestamp": 1e400, "payload": "x"}}'
        assert serializer.decode(raw) is None

    @pytest.mark.parametrize("name", ["close", "stop"])
    def test_close_events(self, serializer, name):
        assert isinstance(serializer.decode({"event": name}), StreamClosed)

    def test_connected_is_unrecognized(self, serializer):
        event = serializer.decode({"event": "connected", "protocol": "Call"})
        assert isinstance(event, UnrecognizedTelephonyEvent)
        assert event.name == "connected"
        assert event.payload["protocol"] == "Call"

    def test_missing_event_tag(self, serializer):
        assert serializer.decode({"media": {}}) is None
        assert serializer.decode({"event": 5}) is None
        assert serializer.decode("{not json") is None

    def test_encode_media(self, serializer):
        raw = serializer.encode(OutboundMedia(stream_id="MZ123", payload="AAAA"))
        assert json.loads(raw) == {
            "event": "media",
            "streamSid": "MZ123",
            "media": {"payload": "AAAA"},
        }

    def test_encode_mark(self, serializer):
        assert json.loads(serializer.encode(OutboundMark(stream_id="MZ123"))) == {
            "event": "mark",
            "streamSid": "MZ123",
        }
        named = json.loads(serializer.encode(OutboundMark(stream_id="MZ123", name="resp-1")))
        assert named["mark"] == {"name": "resp-1"}

    def test_encode_clear(self, serializer):
        assert json.loads(serializer.encode(ClearAudio(stream_id="MZ123"))) == {
            "event": "clear",
            "streamSid": "MZ123",
        }

    def test_encode_unsupported_returns_none(self, serializer):
        assert serializer.encode(StreamClosed()) is None


# ==========================================================================
# Realtime Serializer Tests
# ==========================================================================


class TestRealtimeSerializer:

    @pytest.fixture
    def serializer(self):
        return RealtimeSerializer()

    def test_speech_started(self, serializer):
        msg = {"type": "input_audio_buffer.speech_started", "audio_start_ms": 900}
        event = serializer.decode(json.dumps(msg))
        assert isinstance(event, SpeechStarted)
        assert event.raw == msg

    def test_audio_delta(self, serializer):
        msg = {"type": "response.audio.delta", "item_id": "item_1", "delta": "UklG"}
        event = serializer.decode(msg)
        assert isinstance(event, AudioDelta)
        assert event.item_id == "item_1"
        assert event.delta == "UklG"

    def test_audio_delta_without_payload_is_malformed(self, serializer):
        assert serializer.decode({"type": "response.audio.delta", "item_id": "item_1"}) is None

    def test_audio_delta_without_item_id(self, serializer):
        event = serializer.decode({"type": "response.audio.delta", "delta": "UklG"})
        assert event.item_id == ""

    def test_output_item_done(self, serializer):
        item = {"type": "function_call", "name": "f", "arguments": "{}", "call_id": "c1"}
        event = serializer.decode({"type": "response.output_item.done", "item": item})
        assert isinstance(event, OutputItemDone)
        assert event.function_call.call_id == "c1"

    def test_output_item_done_without_item_is_malformed(self, serializer):
        assert serializer.decode({"type": "response.output_item.done", "item": "x"}) is None

    def test_unknown_type_is_kept_for_mirroring(self, serializer):
        msg = {"type": "session.created", "session": {"id": "sess_1"}}
        event = serializer.decode(msg)
        assert isinstance(event, UnrecognizedModelEvent)
        assert event.type == "session.created"
        assert event.raw == msg

    def test_missing_type(self, serializer):
        assert serializer.decode({"delta": "x"}) is None
        assert serializer.decode("[]") is None

    def test_encode_session_update(self, serializer):
        raw = serializer.encode(SessionUpdate(session={"voice": "ash"}))
        assert json.loads(raw) == {"type": "session.update", "session": {"voice": "ash"}}

    def test_encode_audio_append(self, serializer):
        raw = serializer.encode(InputAudioAppend(audio="AAAA"))
        assert json.loads(raw) == {"type": "input_audio_buffer.append", "audio": "AAAA"}

    def test_encode_truncate(self, serializer):
        raw = serializer.encode(ItemTruncate(item_id="item_1", audio_end_ms=1200))
        assert json.loads(raw) == {
            "type": "conversation.item.truncate",
            "item_id": "item_1",
            "content_index": 0,
            "audio_end_ms": 1200,
        }

    def test_encode_function_output(self, serializer):
        raw = serializer.encode(FunctionCallOutput(call_id="c1", output='"{}"'))
        assert json.loads(raw) == {
            "type": "conversation.item.create",
            "item": {"type": "function_call_output", "call_id": "c1", "output": '"{}"'},
        }

    def test_encode_response_create(self, serializer):
        assert json.loads(serializer.encode(ResponseCreate())) == {"type": "response.create"}

    def test_encode_raw_is_verbatim(self, serializer):
        payload = {"type": "response.cancel", "extra": [1, 2]}
        assert json.loads(serializer.encode(RawCommand(payload=payload))) == payload

    def test_encode_unsupported_returns_none(self, serializer):
        assert serializer.encode(SpeechStarted()) is None


# ==========================================================================
# Observer Serializer Tests
# ==========================================================================


class TestObserverSerializer:

    @pytest.fixture
    def serializer(self):
        return ObserverSerializer()

    def test_session_update(self, serializer):
        msg = {"type": "session.update", "session": {"voice": "verse"}}
        event = serializer.decode(json.dumps(msg))
        assert isinstance(event, ObserverSessionUpdate)
        assert event.session == {"voice": "verse"}
        assert event.raw == msg

    def test_session_update_without_session_is_malformed(self, serializer):
        assert serializer.decode({"type": "session.update", "session": "verse"}) is None

    def test_other_records_are_commands(self, serializer):
        event = serializer.decode({"type": "response.create"})
        assert isinstance(event, ObserverCommand)
        assert event.raw == {"type": "response.create"}

    def test_malformed(self, serializer):
        assert serializer.decode("nope") is None

    def test_encode_mirrors_raw_model_event(self, serializer):
        msg = {"type": "response.audio.delta", "item_id": "i", "delta": "d", "extra": True}
        event = RealtimeSerializer().decode(msg)
        assert json.loads(serializer.encode(event)) == msg

    def test_encode_non_model_event(self, serializer):
        assert serializer.encode(ClearAudio(stream_id="MZ1")) is None
