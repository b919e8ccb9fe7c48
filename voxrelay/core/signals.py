"""Lifecycle signals posted to a session's inbox.

These never cross the wire. They let socket readers, connection attempts and
function invocations hand their outcome to the session actor, so that every
change to a session's state is applied by that single task.
"""

from __future__ import annotations

from dataclasses import dataclass

from voxrelay.transports.base import BaseTransport


@dataclass
class TelephonyDisconnected:
    """The telephony socket closed or failed without a ``close`` event."""

    transport: BaseTransport


@dataclass
class ModelConnected:
    """A model connection attempt completed."""

    transport: BaseTransport


@dataclass
class ModelDisconnected:
    """The model socket closed, failed, or never managed to open."""

    transport: BaseTransport
    reason: str = ""


@dataclass
class FunctionResult:
    """A function invocation resolved; ``output`` is the gateway's text."""

    call_id: str
    name: str
    output: str
