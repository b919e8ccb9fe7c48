"""Function invocation gateway.

Resolves a function call emitted by the model against a
:class:`FunctionRegistry` and runs it. The gateway never raises to its
caller: every failure is encoded in the returned text as
``{"error": "..."}`` so the relay can always send the model a result.
"""

from __future__ import annotations

import inspect
import json
import time
from typing import Any

from loguru import logger

from voxrelay.functions.registry import FunctionRegistry, function_registry


def error_result(message: str) -> str:
    """Structured error payload returned in place of a function result."""
    return json.dumps({"error": message})


class FunctionGateway:
    """Executes named function calls against a registry.

    Args:
        registry: The registry to resolve names against. Defaults to the
            process-wide :data:`function_registry`.
    """

    def __init__(self, registry: FunctionRegistry | None = None) -> None:
        self.registry = registry if registry is not None else function_registry

    async def invoke(self, name: str, arguments: str) -> str:
        """Run function ``name`` with the raw JSON ``arguments``.

        Returns:
            The handler's text result, unmodified, or a JSON error record:
            - ``No handler for function: <name>`` for an unknown name
            - ``Invalid JSON arguments`` if ``arguments`` does not parse
            - the handler's exception message if it raised
        """
        definition = self.registry.get(name)
        if definition is None:
            logger.warning(f"No handler for function: {name}")
            return error_result(f"No handler for function: {name}")

        try:
            args = json.loads(arguments)
        except (TypeError, ValueError):
            logger.warning(f"Invalid JSON arguments for {name}: {arguments!r}")
            return error_result("Invalid JSON arguments")

        start_time = time.time()
        try:
            result: Any = definition.handler(args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Function {name} failed: {e}")
            return error_result(str(e))

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Function {name} completed in {duration_ms}ms")

        if isinstance(result, str):
            return result
        try:
            return json.dumps(result)
        except (TypeError, ValueError) as e:
            logger.error(f"Function {name} returned a non-serialisable result: {e}")
            return error_result(str(e))
