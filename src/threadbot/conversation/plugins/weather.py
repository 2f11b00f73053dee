"""
Weather plugin for the threadbot conversation loop.

Uses the Open-Meteo API (https://open-meteo.com/) which is free and requires
no API key.  Two endpoints are used:

1. **Geocoding**: resolves a human-readable location string to coordinates.
   ``https://geocoding-api.open-meteo.com/v1/search``

2. **Forecast**: returns current weather conditions for given coordinates.
   ``https://api.open-meteo.com/v1/forecast``

The plugin's result is *final*: the formatted conditions are returned to the
requester as-is, without another model round.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from threadbot.conversation.plugins.base import MessageContext, PluginBase, PluginResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# API endpoints
# ---------------------------------------------------------------------------

_GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
_WEATHER_URL = "https://api.open-meteo.com/v1/forecast"

# ---------------------------------------------------------------------------
# WMO weather interpretation codes → human-readable conditions
# Source: https://open-meteo.com/en/docs (WMO Weather Code table)
# ---------------------------------------------------------------------------

_WMO_CONDITIONS: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


class WeatherPlugin(PluginBase):
    """Reports current weather conditions using Open-Meteo.

    Attributes:
        timeout: HTTP request timeout in seconds (default 10).
    """

    key = "get_weather"
    description = (
        "Get current weather conditions for a location. "
        "Returns temperature, sky conditions, relative humidity and wind speed."
    )
    plugin_arguments = {
        "location": {
            "type": "string",
            "description": (
                "City name, 'City, State', or 'City, Country'. "
                "Examples: 'Berlin', 'London', 'Paris, France'."
            ),
        }
    }
    required_arguments = ("location",)

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    async def run_plugin(
        self, arguments: dict[str, Any], context: MessageContext
    ) -> PluginResult:
        """Look up the weather and return it as the final answer.

        Raises:
            ValueError: If ``location`` is missing or cannot be geocoded.
            httpx.HTTPError: If either API call fails.
        """
        location = str(arguments.get("location") or "").strip()
        if not location:
            raise ValueError("Missing required argument: location")

        weather = await self.get_weather(location)
        return PluginResult(
            message=(
                f"{weather['temperature_c']:g}°C, {weather['conditions'].lower()} "
                f"in {weather['location_name']} "
                f"(humidity {weather['humidity_percent']}%, "
                f"wind {weather['wind_speed_kmh']:g} km/h)"
            ),
            props={"weather": weather},
        )

    async def get_weather(self, location: str) -> dict[str, Any]:
        """Fetch current weather for *location*.

        Returns:
            A dict with ``location_name``, ``temperature_c``, ``conditions``,
            ``humidity_percent`` and ``wind_speed_kmh``.

        Raises:
            ValueError: If the location cannot be geocoded.
            httpx.HTTPStatusError: If either API call returns a non-2xx status.
            httpx.TimeoutException: If a request exceeds ``self.timeout``.
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            lat, lon, resolved_name = await self._geocode(client, location)
            return await self._fetch_conditions(client, lat, lon, resolved_name)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _geocode(
        self, client: httpx.AsyncClient, location: str
    ) -> tuple[float, float, str]:
        logger.debug("Geocoding location: %r", location)
        response = await client.get(
            _GEOCODING_URL,
            params={"name": location, "count": 1, "language": "en", "format": "json"},
        )
        response.raise_for_status()
        data = response.json()

        results = data.get("results")
        if not results:
            raise ValueError(f"Location not found: {location!r}")

        place = results[0]
        lat: float = place["latitude"]
        lon: float = place["longitude"]

        name_parts = [place.get("name", location)]
        if place.get("country"):
            name_parts.append(place["country"])
        resolved_name = ", ".join(name_parts)

        logger.debug("Geocoded %r → %s (%.4f, %.4f)", location, resolved_name, lat, lon)
        return lat, lon, resolved_name

    async def _fetch_conditions(
        self,
        client: httpx.AsyncClient,
        lat: float,
        lon: float,
        resolved_name: str,
    ) -> dict[str, Any]:
        logger.debug("Fetching weather for (%.4f, %.4f)", lat, lon)
        response = await client.get(
            _WEATHER_URL,
            params={
                "latitude": lat,
                "longitude": lon,
                "current": ",".join([
                    "temperature_2m",
                    "relative_humidity_2m",
                    "weather_code",
                    "wind_speed_10m",
                ]),
                "temperature_unit": "celsius",
                "wind_speed_unit": "kmh",
            },
        )
        response.raise_for_status()
        current = response.json()["current"]

        weather_code = int(current["weather_code"])
        return {
            "location_name": resolved_name,
            "temperature_c": current["temperature_2m"],
            "conditions": _WMO_CONDITIONS.get(
                weather_code, f"Unknown conditions (code {weather_code})"
            ),
            "humidity_percent": int(current["relative_humidity_2m"]),
            "wind_speed_kmh": current["wind_speed_10m"],
        }
