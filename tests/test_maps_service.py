import httpx
import pytest

from lightfriend.core import config
from lightfriend.services import maps_service
from lightfriend.services.maps_service import DirectionsError

DIRECTIONS_OK = {
    "status": "OK",
    "routes": [{"legs": [{
        "duration": {"text": "25 mins"},
        "distance": {"text": "8.1 km"},
        "steps": [
            {"html_instructions": "Walk to <b>Keskustori</b>"},
            {"html_instructions": 'Bus <b>3</b><div style="font-size:0.9em">towards Hervanta</div>'},
        ],
    }]}],
}


@pytest.fixture(autouse=True)
def maps_keys(monkeypatch):
    monkeypatch.setattr(config, "GEOAPIFY_API_KEY", "geo-test")
    monkeypatch.setattr(config, "GOOGLE_API_KEY", "google-test")


def test_strip_html():
    assert maps_service.strip_html('Bus <b>3</b><div style="font-size:0.9em">towards Hervanta</div>') == (
        "Bus 3 - towards Hervanta"
    )


def test_parse_directions():
    directions = maps_service.parse_directions(DIRECTIONS_OK)
    assert directions.duration == "25 mins"
    assert directions.instructions == ["Walk to Keskustori", "Bus 3 - towards Hervanta"]
    assert directions.to_text().startswith("Duration: 25 mins, distance: 8.1 km.\n1. Walk to Keskustori")


def test_parse_directions_api_error():
    with pytest.raises(DirectionsError, match="Directions API error: bad key"):
        maps_service.parse_directions({"status": "REQUEST_DENIED", "error_message": "bad key"})


def test_parse_directions_without_steps():
    with pytest.raises(DirectionsError, match="No directions found"):
        maps_service.parse_directions({"status": "OK", "routes": []})


@pytest.mark.parametrize("mode,expected", [("public transport", "transit"), ("Driving", "driving")])
def test_normalize_mode(mode, expected):
    assert maps_service.normalize_mode(mode) == expected


def test_normalize_mode_rejects_unknown():
    with pytest.raises(DirectionsError, match="Invalid mode"):
        maps_service.normalize_mode("teleport")


async def test_get_directions_geocodes_then_routes():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.host == "api.geoapify.com":
            lat = 61.49 if request.url.params["text"] == "Keskustori" else 61.45
            return httpx.Response(200, json={"features": [{"properties": {"lat": lat, "lon": 23.76}}]})
        assert request.url.params["origin"] == "61.49,23.76"
        assert request.url.params["mode"] == "transit"
        return httpx.Response(200, json=DIRECTIONS_OK)

    directions = await maps_service.get_directions(
        "Keskustori", "Hervanta", "public transport", transport=httpx.MockTransport(handler)
    )
    assert directions.distance == "8.1 km"
    assert len(requests) == 3


async def test_get_directions_unknown_address():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"features": []}))
    with pytest.raises(DirectionsError, match="Could not find the address"):
        await maps_service.get_directions("???", "Hervanta", "walking", transport=transport)
