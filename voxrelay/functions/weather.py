"""Built-in weather lookup function.

Queries the free Open-Meteo forecast API for the current temperature at a
coordinate pair.
"""

from __future__ import annotations

import json
from typing import Any

import aiohttp
from loguru import logger

from voxrelay.functions.base import FunctionDefinition

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"


async def get_weather_from_coords(args: dict[str, Any]) -> str:
    """Return ``{"temp": <celsius>}`` for the given latitude/longitude."""
    latitude = args["latitude"]
    longitude = args["longitude"]
    params = {
        "latitude": str(latitude),
        "longitude": str(longitude),
        "current": "temperature_2m,wind_speed_10m",
        "hourly": "temperature_2m,relative_humidity_2m,wind_speed_10m",
    }

    timeout = aiohttp.ClientTimeout(total=10)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(OPEN_METEO_URL, params=params) as resp:
            if resp.status != 200:
                error = await resp.text()
                raise RuntimeError(f"Weather lookup failed ({resp.status}): {error}")
            data = await resp.json()

    current_temp = (data.get("current") or {}).get("temperature_2m")
    logger.debug(f"Weather at ({latitude}, {longitude}): {current_temp}")
    return json.dumps({"temp": current_temp})


WEATHER_FUNCTION = FunctionDefinition(
    schema={
        "name": "get_weather_from_coords",
        "type": "function",
        "description": "Get the current weather",
        "parameters": {
            "type": "object",
            "properties": {
                "latitude": {"type": "number"},
                "longitude": {"type": "number"},
            },
            "required": ["latitude", "longitude"],
        },
    },
    handler=get_weather_from_coords,
)
