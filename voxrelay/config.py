"""Configuration system for VoxRelay.

Supports loading from YAML files, dicts, or programmatic construction
via Pydantic models. The config drives the listening server, the model
backend connection and its handshake defaults, and session housekeeping.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

DEFAULT_MODEL_URL = (
    "wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview-2024-12-17"
)


class ServerConfig(BaseModel):
    """Configuration for the inbound HTTP/WebSocket server."""

    host: str = "0.0.0.0"
    port: int = 8081
    # Public base URL the telephony provider reaches us on (for TwiML)
    public_url: str = ""
    call_path: str = "/call"
    observer_path: str = "/logs"


class HandshakeConfig(BaseModel):
    """Baseline fields of the session handshake sent to the model.

    Anything the observer pushes with ``session.update`` is merged on top
    of these, observer keys winning.
    """

    modalities: list[str] = Field(default_factory=lambda: ["text", "audio"])
    turn_detection: dict[str, Any] = Field(default_factory=lambda: {"type": "server_vad"})
    voice: str = "ash"
    input_audio_transcription: dict[str, Any] = Field(
        default_factory=lambda: {"model": "whisper-1"}
    )
    input_audio_format: str = "g711_ulaw"
    output_audio_format: str = "g711_ulaw"


class ModelConfig(BaseModel):
    """Configuration for the realtime model backend."""

    url: str = DEFAULT_MODEL_URL
    api_key: str = Field(default_factory=lambda: os.environ.get("OPENAI_API_KEY", ""))
    beta_header: str = "realtime=v1"
    # Also list the registered functions as `tools` in the handshake
    advertise_functions: bool = False
    handshake: HandshakeConfig = Field(default_factory=HandshakeConfig)


class SessionPolicyConfig(BaseModel):
    """Housekeeping for sessions whose peers have all disconnected."""

    idle_timeout_seconds: float = 300.0
    reap_interval_seconds: float = 30.0


class FunctionsConfig(BaseModel):
    """Function calling configuration."""

    builtins: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"


class RelayConfig(BaseModel):
    """Top-level VoxRelay configuration.

    Can be constructed programmatically, from a dict, or loaded from YAML.

    Examples:
        # Programmatic
        config = RelayConfig(
            server=ServerConfig(port=8081, public_url="https://relay.example.com"),
            model=ModelConfig(api_key="sk-..."),
        )

        # From YAML
        config = RelayConfig.from_yaml("relay.yaml")

        # Shorthand
        config = RelayConfig.from_dict({
            "listen_port": 8081,
            "openai_api_key": "sk-...",
            "voice": "verse",
        })
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    sessions: SessionPolicyConfig = Field(default_factory=SessionPolicyConfig)
    functions: FunctionsConfig = Field(default_factory=FunctionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> RelayConfig:
        """Load configuration from a YAML file.

        ``${VAR}`` references in string values are expanded from the
        environment.
        """
        path = Path(path)
        with path.open() as f:
            data = yaml.safe_load(f) or {}
        return cls._from_raw(_expand_env(data))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RelayConfig:
        """Load configuration from a dictionary.

        Supports both the full nested format and a flat shorthand format:

        Full format:
            {"server": {"port": 8081}, "model": {"api_key": "..."}}

        Shorthand format:
            {"listen_port": 8081, "openai_api_key": "..."}
        """
        return cls._from_raw(dict(data))

    @classmethod
    def _from_raw(cls, data: dict[str, Any]) -> RelayConfig:
        """Normalize and construct config from a raw dict."""
        # Map flat keys to nested structure
        flat_mappings = {
            "listen_host": ("server", "host"),
            "listen_port": ("server", "port"),
            "public_url": ("server", "public_url"),
            "model_url": ("model", "url"),
            "openai_api_key": ("model", "api_key"),
            "idle_timeout_seconds": ("sessions", "idle_timeout_seconds"),
            "log_level": ("logging", "level"),
        }

        for flat_key, (section, nested_key) in flat_mappings.items():
            if flat_key in data:
                section_data = dict(data.get(section) or {})
                section_data[nested_key] = data.pop(flat_key)
                data[section] = section_data

        if "voice" in data:
            model = dict(data.get("model") or {})
            handshake = dict(model.get("handshake") or {})
            handshake["voice"] = data.pop("voice")
            model["handshake"] = handshake
            data["model"] = model

        return cls(**data)


def _expand_env(value: Any) -> Any:
    """Recursively expand ``${VAR}`` references; unset variables become ""."""
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def load_config(source: str | Path | dict[str, Any] | RelayConfig | None = None) -> RelayConfig:
    """Load a RelayConfig from any supported source.

    Args:
        source: A YAML file path (str/Path), a dict, an existing RelayConfig,
            or None for defaults.

    Returns:
        A RelayConfig instance.
    """
    if source is None:
        return RelayConfig()
    if isinstance(source, RelayConfig):
        return source
    if isinstance(source, dict):
        return RelayConfig.from_dict(source)
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return RelayConfig.from_yaml(path)
    raise TypeError(f"Cannot load config from {type(source)}")


# Default YAML template for `voxrelay init`
DEFAULT_CONFIG_YAML = """\
# VoxRelay Configuration

server:
  host: 0.0.0.0
  port: 8081
  public_url: ${PUBLIC_URL}   # e.g. https://abc123.ngrok.app
  call_path: /call            # telephony media stream WebSocket
  observer_path: /logs        # observer/control WebSocket

model:
  url: wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview-2024-12-17
  api_key: ${OPENAI_API_KEY}
  advertise_functions: false
  handshake:
    modalities: [text, audio]
    turn_detection:
      type: server_vad
    voice: ash
    input_audio_transcription:
      model: whisper-1
    input_audio_format: g711_ulaw
    output_audio_format: g711_ulaw

sessions:
  idle_timeout_seconds: 300   # evict sessions with no live peer after this
  reap_interval_seconds: 30

functions:
  builtins: true

logging:
  level: INFO
"""
