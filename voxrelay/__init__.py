"""VoxRelay - Realtime relay between telephony media streams and a speech model.

Bridges a Twilio Media Stream to a realtime speech model backend, relays
audio both ways, truncates the assistant when the caller interrupts, runs
model function calls, and mirrors everything to an optional observer.

Quick start (config-driven):
    $ pip install voxrelay[server]
    $ voxrelay init          # generates relay.yaml
    $ voxrelay run --config relay.yaml

Quick start (programmatic):
    from voxrelay import RealtimeRelay

    relay = RealtimeRelay({
        "openai_api_key": "sk-...",
        "public_url": "https://abc123.ngrok.app",
    })

    @relay.functions.function({
        "name": "lookup_order",
        "description": "Look up an order by id",
        "parameters": {"type": "object", "properties": {"order_id": {"type": "string"}}},
    })
    async def lookup_order(args):
        return '{"status": "shipped"}'

    relay.run()
"""

__version__ = "0.1.0"

# Core
from voxrelay.bridge import RealtimeRelay
from voxrelay.config import RelayConfig, load_config
from voxrelay.connector import ModelConnector
from voxrelay.lifecycle import LifecycleManager
from voxrelay.observer import ObserverBroadcast
from voxrelay.session import RelaySession, SessionStore

# Events
from voxrelay.core.events import (
    AudioDelta,
    ClearAudio,
    FunctionCall,
    FunctionCallOutput,
    InputAudioAppend,
    ItemTruncate,
    MediaReceived,
    ModelEvent,
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

# Serializers
from voxrelay.serializers.base import BaseSerializer
from voxrelay.serializers.observer import ObserverSerializer
from voxrelay.serializers.realtime import RealtimeSerializer
from voxrelay.serializers.twilio import TwilioSerializer

# Transports
from voxrelay.transports.base import BaseTransport, ChannelClosed
from voxrelay.transports.websocket import FastAPIWebSocketTransport, WebSocketClientTransport

# Functions
from voxrelay.functions import (
    FunctionDefinition,
    FunctionGateway,
    FunctionRegistry,
    function_registry,
)

__all__ = [
    # Core
    "RealtimeRelay",
    "RelayConfig",
    "load_config",
    "ModelConnector",
    "LifecycleManager",
    "ObserverBroadcast",
    "RelaySession",
    "SessionStore",
    # Events
    "AudioDelta",
    "ClearAudio",
    "FunctionCall",
    "FunctionCallOutput",
    "InputAudioAppend",
    "ItemTruncate",
    "MediaReceived",
    "ModelEvent",
    "ObserverCommand",
    "ObserverSessionUpdate",
    "OutboundMark",
    "OutboundMedia",
    "OutputItemDone",
    "RawCommand",
    "ResponseCreate",
    "SessionUpdate",
    "SpeechStarted",
    "StreamClosed",
    "StreamStarted",
    "UnrecognizedModelEvent",
    "UnrecognizedTelephonyEvent",
    # Serializers
    "BaseSerializer",
    "ObserverSerializer",
    "RealtimeSerializer",
    "TwilioSerializer",
    # Transports
    "BaseTransport",
    "ChannelClosed",
    "FastAPIWebSocketTransport",
    "WebSocketClientTransport",
    # Functions
    "FunctionDefinition",
    "FunctionGateway",
    "FunctionRegistry",
    "function_registry",
]
