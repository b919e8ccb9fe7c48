"""Observer channel serializer.

The observer receives every model event verbatim and may send back any
command record. A ``session.update`` record additionally becomes the saved
configuration of every session.
"""

from __future__ import annotations

from pydantic import BaseModel

from voxrelay.core.events import (
    ModelEvent,
    ObserverCommand,
    ObserverInbound,
    ObserverSessionUpdate,
)
from voxrelay.serializers.base import BaseSerializer, encode_message, parse_message


class ObserverSerializer(BaseSerializer):
    """Serializer for the monitoring/control connection."""

    @property
    def name(self) -> str:
        return "observer"

    def decode(self, raw: bytes | str | dict) -> ObserverInbound | None:
        msg = parse_message(raw)
        if msg is None:
            return None
        if msg.get("type") == "session.update":
            session = msg.get("session")
            if not isinstance(session, dict):
                return None
            return ObserverSessionUpdate(session=session, raw=msg)
        return ObserverCommand(raw=msg)

    def encode(self, event: BaseModel) -> str | None:
        """Mirror a decoded model event exactly as the backend sent it."""
        if isinstance(event, ModelEvent):
            return encode_message(event.raw)
        return None
