"""Function definitions for the invocation gateway.

A function pairs the JSON schema advertised to the model with the handler
that runs when the model calls it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Union

# Handlers receive the parsed arguments and may be sync or async. They
# usually return JSON text; any other value is serialised with json.dumps.
FunctionHandler = Callable[[Any], Union[Awaitable[Any], Any]]


@dataclass
class FunctionDefinition:
    """A function the model backend may invoke.

    Attributes:
        schema: Tool schema in the realtime API format
            (``{"type": "function", "name": ..., "description": ...,
            "parameters": {...}}``).
        handler: Callable invoked with the parsed arguments.
    """

    schema: dict[str, Any]
    handler: FunctionHandler
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.schema.get("name"):
            raise ValueError("Function schema must have a name")
        self.schema.setdefault("type", "function")

    @property
    def name(self) -> str:
        return self.schema["name"]

    @property
    def description(self) -> str:
        return self.schema.get("description", "")
