"""Function registry for VoxRelay.

Provides a central lookup for every function the model backend may invoke.
Built-in functions are loaded lazily on first access; custom functions can be
registered at runtime, either directly or with the :meth:`function`
decorator.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from voxrelay.functions.base import FunctionDefinition, FunctionHandler


class FunctionRegistry:
    """Registry mapping function names to :class:`FunctionDefinition`.

    Usage:
        registry = FunctionRegistry()

        @registry.function({
            "name": "lookup_order",
            "description": "Look up an order by id",
            "parameters": {"type": "object", "properties": {"order_id": {"type": "string"}}},
        })
        async def lookup_order(args):
            return json.dumps({"status": "shipped"})

        definition = registry.get("lookup_order")
    """

    def __init__(self, load_builtins: bool = True) -> None:
        self._registry: dict[str, FunctionDefinition] = {}
        self._loaded = not load_builtins

    def _load_builtins(self) -> None:
        """Lazily load the built-in functions."""
        if self._loaded:
            return
        self._loaded = True

        from voxrelay.functions.weather import WEATHER_FUNCTION

        builtins = [WEATHER_FUNCTION]
        for definition in builtins:
            self._registry.setdefault(definition.name, definition)

        logger.debug(f"Loaded {len(builtins)} built-in functions")

    def register(self, definition: FunctionDefinition) -> None:
        """Register a function, replacing any existing one with the same name."""
        if not isinstance(definition, FunctionDefinition):
            raise TypeError(f"{definition!r} is not a FunctionDefinition")
        self._load_builtins()
        self._registry[definition.name] = definition
        logger.debug(f"Registered function: {definition.name}")

    def function(self, schema: dict[str, Any]):
        """Decorator form of :meth:`register`."""

        def decorator(handler: FunctionHandler) -> FunctionHandler:
            self.register(FunctionDefinition(schema=dict(schema), handler=handler))
            return handler

        return decorator

    def unregister(self, name: str) -> None:
        self._load_builtins()
        self._registry.pop(name, None)

    def get(self, name: str) -> FunctionDefinition | None:
        """Get a function by name, or None if nothing is registered under it."""
        self._load_builtins()
        return self._registry.get(name)

    @property
    def available(self) -> list[str]:
        """List all registered function names."""
        self._load_builtins()
        return sorted(self._registry.keys())

    @property
    def schemas(self) -> list[dict[str, Any]]:
        """Tool schemas for every registered function, sorted by name."""
        self._load_builtins()
        return [self._registry[name].schema for name in sorted(self._registry)]


# Global singleton
function_registry = FunctionRegistry()
