"""
Current weather lookup via Open-Meteo.
"""
import logging
from typing import Any, Dict, Optional
import httpx
from pydantic import BaseModel, Field

from app.core.config import WEATHER_API_URL
from app.llm.tools.base import Tool

logger = logging.getLogger(__name__)


class WeatherArgs(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class WeatherTool(Tool):
    name = "getWeather"
    description = "Get the current weather at a location"
    Args = WeatherArgs

    def __init__(self, base_url: str = WEATHER_API_URL, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    async def execute(self, args: WeatherArgs) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(
                self.base_url,
                params={
                    "latitude": args.latitude,
                    "longitude": args.longitude,
                    "current": "temperature_2m",
                    "hourly": "temperature_2m",
                    "daily": "sunrise,sunset",
                    "timezone": "auto",
                },
            )
            response.raise_for_status()
            return response.json()
