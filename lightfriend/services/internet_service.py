"""
Web lookups used by the SMS agent: Perplexity answers, Open-Meteo weather
and Firecrawl page scraping.
"""
import logging
from typing import Optional

import httpx

from lightfriend.core import config
from lightfriend.core.errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

PERPLEXITY_URL = "https://api.perplexity.ai/chat/completions"
PERPLEXITY_MODEL = "sonar-pro"
GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
FIRECRAWL_SCRAPE_URL = "https://api.firecrawl.dev/v1/scrape"

SEARCH_SYSTEM_PROMPT = (
    "You are a search assistant for someone texting from a basic phone. "
    "Answer with the facts only, in plain text, as briefly as possible."
)


class LocationNotFoundError(Exception):
    pass


def describe_weather_code(code: int) -> str:
    """Map a WMO weather code to words."""
    if code == 0:
        return "clear sky"
    if 1 <= code <= 3:
        return "partly cloudy"
    if 45 <= code <= 48:
        return "foggy"
    if 51 <= code <= 57:
        return "drizzling"
    if 61 <= code <= 65:
        return "raining"
    if 71 <= code <= 77:
        return "snowing"
    if 80 <= code <= 82:
        return "rain showers"
    if 85 <= code <= 86:
        return "snow showers"
    if code == 95:
        return "thunderstorm"
    if 96 <= code <= 99:
        return "thunderstorm with hail"
    return "unknown weather"


async def ask_perplexity(
    query: str,
    system_prompt: str = SEARCH_SYSTEM_PROMPT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    if not config.PERPLEXITY_API_KEY:
        raise ConfigurationError("PERPLEXITY_API_KEY not configured")

    payload = {
        "model": PERPLEXITY_MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": query},
        ],
    }
    async with httpx.AsyncClient(timeout=60.0, transport=transport) as client:
        response = await client.post(
            PERPLEXITY_URL,
            json=payload,
            headers={"Authorization": f"Bearer {config.PERPLEXITY_API_KEY}", "accept": "application/json"},
        )
    if response.is_error:
        raise ExternalServiceError("perplexity", response.text[:200], response.status_code)
    try:
        return response.json()["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ExternalServiceError("perplexity", "Failed to extract message content") from e


async def get_weather(
    location: str,
    units: str = "metric",
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Current weather for a place name, as one sentence.

    Args:
        location: Free-form place name
        units: "metric" or "imperial"

    Raises:
        LocationNotFoundError: The geocoder knows no such place
        ExternalServiceError: Open-Meteo failed
    """
    imperial = units == "imperial"
    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        geo = await client.get(
            GEOCODING_URL,
            params={"name": location, "count": 1, "language": "en", "format": "json"},
        )
        if geo.is_error:
            raise ExternalServiceError("open-meteo", "Geocoding failed", geo.status_code)
        results = geo.json().get("results") or []
        if not results:
            raise LocationNotFoundError(f"Location not found: {location}")
        place = results[0]

        forecast = await client.get(
            FORECAST_URL,
            params={
                "latitude": place["latitude"],
                "longitude": place["longitude"],
                "current": "temperature_2m,relative_humidity_2m,wind_speed_10m,weather_code",
                "temperature_unit": "fahrenheit" if imperial else "celsius",
                "wind_speed_unit": "mph" if imperial else "ms",
            },
        )
    if forecast.is_error:
        raise ExternalServiceError("open-meteo", "Forecast failed", forecast.status_code)

    current = forecast.json().get("current")
    if not current:
        raise ExternalServiceError("open-meteo", "No current weather data")

    name = place.get("name") or location
    temp_unit, speed_unit = ("Fahrenheit", "miles per hour") if imperial else ("Celsius", "meters per second")
    description = describe_weather_code(int(current.get("weather_code") or 0))
    return (
        f"The weather in {name} is {description} with a temperature of "
        f"{round(current.get('temperature_2m') or 0)} degrees {temp_unit}. "
        f"The humidity is {round(current.get('relative_humidity_2m') or 0)}% and wind speed is "
        f"{round(current.get('wind_speed_10m') or 0)} {speed_unit}."
    )


async def scrape_url(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> str:
    """Fetch a page as markdown through Firecrawl."""
    if not config.FIRECRAWL_API_KEY:
        raise ConfigurationError("FIRECRAWL_API_KEY not configured")
    async with httpx.AsyncClient(timeout=60.0, transport=transport) as client:
        response = await client.post(
            FIRECRAWL_SCRAPE_URL,
            json={"url": url, "formats": ["markdown"]},
            headers={"Authorization": f"Bearer {config.FIRECRAWL_API_KEY}"},
        )
    if response.is_error:
        raise ExternalServiceError("firecrawl", response.text[:200], response.status_code)
    data = response.json().get("data") or {}
    return data.get("markdown") or ""
