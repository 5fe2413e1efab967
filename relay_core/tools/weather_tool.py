"""
weather_tool.py - current weather from the Open-Meteo API.
"""
from datetime import datetime
from typing import Any, Dict, Literal, Optional

import httpx

from relay_core.core.logging import logger
from relay_core.tools.base import BaseTool

GEOCODING_API_URL = "https://geocoding-api.open-meteo.com/v1/search"
WEATHER_API_URL = "https://api.open-meteo.com/v1/forecast"


class WeatherTool(BaseTool):
    """Get the current weather conditions for a location."""

    def __init__(self, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__()
        self.timeout = httpx.Timeout(timeout)
        self.transport = transport

    async def _locate(self, client: httpx.AsyncClient, location: str) -> Dict[str, Any]:
        params = {"name": location, "count": 1, "language": "en", "format": "json"}
        response = await client.get(GEOCODING_API_URL, params=params)
        response.raise_for_status()
        results = response.json().get("results") or []
        if not results:
            return {"error": f"Location '{location}' not found."}
        first = results[0]
        return {
            "latitude": first["latitude"],
            "longitude": first["longitude"],
            "country": first.get("country", "N/A"),
            "name": first["name"],
        }

    async def run(self, location: str, unit: Literal["celsius", "fahrenheit"] = "celsius") -> Dict[str, Any]:
        """
        Get the current weather conditions for a location.

        Args:
            location: The city name.
            unit: The temperature unit (celsius or fahrenheit).
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                place = await self._locate(client, location)
                if "error" in place:
                    return place
                response = await client.get(
                    WEATHER_API_URL,
                    params={
                        "latitude": place["latitude"],
                        "longitude": place["longitude"],
                        "current_weather": "true",
                        "temperature_unit": unit,
                        "windspeed_unit": "kmh",
                    },
                )
                response.raise_for_status()
                current = response.json()["current_weather"]
                symbol = "°C" if unit == "celsius" else "°F"
                return {
                    "location": place["name"],
                    "country": place["country"],
                    "temperature": f"{current['temperature']}{symbol}",
                    "wind_speed": f"{current['windspeed']} km/h",
                    "weather_code": current.get("weathercode"),
                    "last_updated": datetime.fromisoformat(current["time"]).strftime("%Y-%m-%d %H:%M"),
                }
            except httpx.HTTPError as e:
                logger.warning(f"Weather lookup for {location} failed: {e}")
                return {"error": f"Failed to fetch weather data: {e}"}
            except (KeyError, IndexError, ValueError):
                return {"error": "Could not parse weather data from API response."}
