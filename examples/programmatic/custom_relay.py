"""Example: Programmatic relay with a custom function and event hooks.

Shows how to register a function the model may call, and how to hook into
call start/end and caller interruptions.

Usage:
    export OPENAI_API_KEY=sk-...
    export PUBLIC_URL=https://abc123.ngrok.app
    python custom_relay.py

Then point your Twilio number's voice webhook at $PUBLIC_URL/twiml.
"""

import json
import os

from voxrelay import RealtimeRelay, RelaySession

relay = RealtimeRelay({
    "public_url": os.environ.get("PUBLIC_URL", ""),
    "voice": "verse",
    "log_level": "DEBUG",
})
# Advertise registered functions to the model in the session handshake
relay.config.model.advertise_functions = True

ORDERS = {"A100": "shipped", "A101": "processing"}


@relay.functions.function({
    "name": "lookup_order",
    "description": "Look up the status of an order by its id",
    "parameters": {
        "type": "object",
        "properties": {"order_id": {"type": "string"}},
        "required": ["order_id"],
    },
})
async def lookup_order(args):
    status = ORDERS.get(args["order_id"], "unknown")
    return json.dumps({"order_id": args["order_id"], "status": status})


@relay.on_call_start
async def call_started(session: RelaySession):
    print(f"=== New call {session.call_id} (stream {session.stream_id}) ===")
    print(f"  Parameters: {session.metadata.get('custom_parameters')}")


@relay.on_interrupt
async def interrupted(session: RelaySession, audio_end_ms: int):
    print(f"Caller interrupted after {audio_end_ms}ms of assistant audio")


@relay.on_call_end
async def call_ended(session: RelaySession):
    print(f"=== Call ended {session.stream_id} after {session.duration_ms}ms ===")


if __name__ == "__main__":
    relay.run()
