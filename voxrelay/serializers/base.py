"""Base serializer interface for VoxRelay.

Every peer the relay talks to gets a serializer. Serializers are pure
message translators with no I/O: they turn raw JSON frames into the tagged
variants in :mod:`voxrelay.core.events` and back.

Decoding never raises. A frame that is not a JSON object, or that carries a
known tag with unusable fields, decodes to ``None`` and the caller ignores
it.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


def parse_message(raw: bytes | str | dict) -> dict[str, Any] | None:
    """Normalise a raw WebSocket frame into a dict, or None if malformed."""
    if isinstance(raw, dict):
        return raw
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        msg = json.loads(raw)
    except (UnicodeDecodeError, ValueError, TypeError):
        return None
    if not isinstance(msg, dict):
        return None
    return msg


def encode_message(obj: dict[str, Any]) -> str:
    """Serialise a record to a JSON text frame."""
    return json.dumps(obj)


class BaseSerializer(ABC):
    """Abstract base class for peer serializers.

    Key principles:
    - Serializers do NO I/O (no network calls, no file access)
    - They are stateless; all call state lives in RelaySession
    - Each one covers exactly one peer's inbound and outbound variants
    """

    @abstractmethod
    def decode(self, raw: bytes | str | dict) -> BaseModel | None:
        """Parse a raw frame from the peer into an event.

        Args:
            raw: The raw message from the peer WebSocket. Could be:
                - bytes: UTF-8 encoded JSON
                - str: JSON text message
                - dict: already-parsed JSON

        Returns:
            The decoded variant, or None if the frame should be ignored.
        """
        ...

    @abstractmethod
    def encode(self, event: BaseModel) -> str | None:
        """Convert an event to the peer's wire format.

        Returns:
            A JSON text frame, or None if this peer does not carry the event.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of this serializer (e.g., 'twilio')."""
        ...
