"""Built-in HTTP/WebSocket server for VoxRelay.

Provides a FastAPI-based server that accepts the telephony media stream and
the observer connection and hands them to the relay engine. Also serves the
TwiML that points Twilio at the stream endpoint, the function catalogue, and
health/status endpoints.

Requires: pip install voxrelay[server]
"""

from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import urlparse

from loguru import logger

from voxrelay.bridge import RealtimeRelay
from voxrelay.config import RelayConfig, load_config
from voxrelay.session import RelaySession
from voxrelay.transports.websocket import FastAPIWebSocketTransport

TWIML_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<Response>
  <Say>Connected</Say>
  <Connect>
    <Stream url="{ws_url}" />
  </Connect>
  <Say>Disconnected</Say>
</Response>
"""


def _fastapi_available() -> bool:
    try:
        import fastapi  # noqa: F401
        import uvicorn  # noqa: F401
        return True
    except ImportError:
        return False


def stream_url(config: RelayConfig) -> str:
    """The ``wss://`` URL Twilio should open the media stream on."""
    public_url = config.server.public_url or f"http://localhost:{config.server.port}"
    parsed = urlparse(public_url)
    scheme = "wss" if parsed.scheme == "https" else "ws"
    host = parsed.netloc or parsed.path
    return f"{scheme}://{host}{config.server.call_path}"


def render_twiml(config: RelayConfig) -> str:
    return TWIML_TEMPLATE.format(ws_url=stream_url(config))


def session_summary(session: RelaySession) -> dict[str, Any]:
    return {
        "stream_id": session.stream_id,
        "call_id": session.call_id,
        "telephony_connected": session.telephony_channel is not None,
        "model_connected": session.model_channel is not None
        and session.model_channel.is_connected(),
        "responding": session.is_responding,
        "last_assistant_item": session.last_assistant_item,
        "latest_media_timestamp": session.latest_media_timestamp,
        "duration_ms": session.duration_ms,
    }


def create_app(
    config: RelayConfig | dict | str | None = None,
    relay: RealtimeRelay | None = None,
) -> Any:
    """Create a FastAPI application serving a RealtimeRelay.

    Args:
        config: Relay configuration (YAML path, dict, or RelayConfig).
            Ignored when ``relay`` is given.
        relay: An existing relay to serve, e.g. one with custom functions
            or hooks registered.

    Returns:
        A FastAPI application instance.
    """
    if not _fastapi_available():
        raise ImportError(
            "The server requires fastapi and uvicorn. "
            "Install with: pip install voxrelay[server]"
        )

    from fastapi import FastAPI, Request, WebSocket
    from fastapi.responses import JSONResponse, Response

    relay = relay or RealtimeRelay(load_config(config))
    relay_config = relay.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await relay.start()
        try:
            yield
        finally:
            await relay.stop()

    app = FastAPI(
        title="VoxRelay",
        description="Realtime relay between telephony media streams and a speech model",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.relay = relay

    @app.get("/health")
    async def health():
        return JSONResponse({"status": "ok", "active_calls": relay.sessions.active_count})

    @app.get("/status")
    async def status():
        return JSONResponse({
            "active_calls": relay.sessions.active_count,
            "observer_attached": relay.observer.is_attached,
            "sessions": [session_summary(s) for s in relay.sessions.snapshot()],
        })

    @app.get("/public-url")
    async def public_url():
        return JSONResponse({"publicUrl": relay_config.server.public_url})

    @app.api_route("/twiml", methods=["GET", "POST"])
    async def twiml(request: Request):
        return Response(content=render_twiml(relay_config), media_type="text/xml")

    @app.get("/tools")
    async def tools():
        return JSONResponse(relay.functions.schemas)

    @app.websocket(relay_config.server.call_path)
    async def call_endpoint(websocket: WebSocket):
        await websocket.accept()
        logger.info(f"Telephony WebSocket connected: {websocket.client}")
        if not relay_config.model.api_key:
            logger.warning("No model API key configured; calls will not reach the model")
        await relay.handle_telephony_connection(FastAPIWebSocketTransport(websocket))
        logger.info(f"Telephony WebSocket disconnected: {websocket.client}")

    @app.websocket(relay_config.server.observer_path)
    async def observer_endpoint(websocket: WebSocket):
        await websocket.accept()
        logger.info(f"Observer WebSocket connected: {websocket.client}")
        await relay.handle_observer_connection(FastAPIWebSocketTransport(websocket))
        logger.info(f"Observer WebSocket disconnected: {websocket.client}")

    return app


def run_server(
    config: RelayConfig | dict | str | None = None,
    host: str | None = None,
    port: int | None = None,
    relay: RealtimeRelay | None = None,
) -> None:
    """Run the VoxRelay server with uvicorn.

    Args:
        config: Relay configuration.
        host: Override the listen host.
        port: Override the listen port.
        relay: Serve this relay instead of building one from ``config``.
    """
    if not _fastapi_available():
        raise ImportError(
            "The server requires fastapi and uvicorn. "
            "Install with: pip install voxrelay[server]"
        )

    import uvicorn

    relay_config = relay.config if relay is not None else load_config(config)
    app = create_app(relay_config, relay=relay)

    uvicorn.run(
        app,
        host=host or relay_config.server.host,
        port=port or relay_config.server.port,
    )
