"""
Turn-by-turn directions: Geoapify geocoding plus Google Directions.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import httpx

from lightfriend.core import config
from lightfriend.core.errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

GEOAPIFY_GEOCODE_URL = "https://api.geoapify.com/v1/geocode/search"
DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"

TRAVEL_MODES = {
    "driving": "driving",
    "walking": "walking",
    "public transport": "transit",
    "transit": "transit",
    "bicycling": "bicycling",
}

_TAG_RE = re.compile(r"<[^>]+>")


class DirectionsError(Exception):
    """No usable route for the request."""


@dataclass
class Directions:
    duration: str
    distance: str
    instructions: List[str] = field(default_factory=list)

    def to_text(self) -> str:
        steps = "\n".join(f"{i}. {step}" for i, step in enumerate(self.instructions, start=1))
        return f"Duration: {self.duration}, distance: {self.distance}.\n{steps}"


def normalize_mode(mode: str) -> str:
    try:
        return TRAVEL_MODES[mode.strip().lower()]
    except KeyError:
        raise DirectionsError(
            "Invalid mode. Supported: driving, walking, public transport (or transit), bicycling"
        )


def strip_html(text: str) -> str:
    text = text.replace('<div style="font-size:0.9em">', " - ")
    return _TAG_RE.sub("", text).strip()


async def geocode(client: httpx.AsyncClient, address: str) -> Tuple[float, float, str]:
    response = await client.get(
        GEOAPIFY_GEOCODE_URL,
        params={"text": address, "limit": 1, "apiKey": config.GEOAPIFY_API_KEY},
    )
    if response.is_error:
        raise ExternalServiceError("geoapify", f"Geocoding failed for '{address}'", response.status_code)
    features = response.json().get("features") or []
    if not features:
        raise DirectionsError(f"Could not find the address '{address}'")
    props = features[0].get("properties") or {}
    return props["lat"], props["lon"], props.get("formatted", address)


def parse_directions(data: dict) -> Directions:
    if data.get("status") != "OK":
        raise DirectionsError(f"Directions API error: {data.get('error_message', data.get('status', 'Unknown error'))}")

    routes = data.get("routes") or []
    legs = routes[0].get("legs") if routes else None
    if not legs:
        raise DirectionsError("No directions found")

    leg = legs[0]
    instructions = [
        strip_html(step["html_instructions"])
        for step in leg.get("steps") or []
        if step.get("html_instructions")
    ]
    if not instructions:
        raise DirectionsError("No directions found")

    return Directions(
        duration=(leg.get("duration") or {}).get("text", "Unknown"),
        distance=(leg.get("distance") or {}).get("text", "Unknown"),
        instructions=instructions,
    )


async def get_directions(
    start_address: str,
    end_address: str,
    mode: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Directions:
    """
    Geocode both addresses and fetch a route between them.

    Raises:
        DirectionsError: Unknown mode, unknown address or no route
        ExternalServiceError: Provider failure
    """
    if not config.GEOAPIFY_API_KEY or not config.GOOGLE_API_KEY:
        raise ConfigurationError("GEOAPIFY_API_KEY and GOOGLE_API_KEY must be set")
    api_mode = normalize_mode(mode)

    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        start_lat, start_lon, _ = await geocode(client, start_address)
        end_lat, end_lon, _ = await geocode(client, end_address)
        response = await client.get(
            DIRECTIONS_URL,
            params={
                "origin": f"{start_lat},{start_lon}",
                "destination": f"{end_lat},{end_lon}",
                "mode": api_mode,
                "key": config.GOOGLE_API_KEY,
            },
        )
    if response.is_error:
        raise ExternalServiceError("google", "Failed to fetch directions", response.status_code)

    directions = parse_directions(response.json())
    logger.info(f"Directions found: mode={api_mode}, steps={len(directions.instructions)}")
    return directions
