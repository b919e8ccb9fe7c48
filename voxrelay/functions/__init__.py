"""VoxRelay function calling - registry and invocation gateway.

Usage:
    from voxrelay.functions import FunctionGateway, function_registry

    gateway = FunctionGateway(function_registry)
    output = await gateway.invoke("get_weather_from_coords", '{"latitude": 1, "longitude": 2}')
"""

from voxrelay.functions.base import FunctionDefinition
from voxrelay.functions.gateway import FunctionGateway
from voxrelay.functions.registry import FunctionRegistry, function_registry

__all__ = [
    "FunctionDefinition",
    "FunctionGateway",
    "FunctionRegistry",
    "function_registry",
]
