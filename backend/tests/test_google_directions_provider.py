"""Tests for google_directions_provider.py.

The googlemaps client is replaced by a mock. No network access occurs during
these tests.
"""

import googlemaps.exceptions
import pytest

import google_directions_provider
from errors import NetworkError, NoRouteFoundError, RoutingProviderError
from google_directions_provider import GoogleDirectionsRouteProvider
from models import MobilityType, Point, RouteOptions, TransportMode

# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------

_START = Point(lat=38.5, lng=-120.2)
_FINISH = Point(lat=43.252, lng=-126.453)

# Encodes (38.5, -120.2), (40.7, -120.95), (43.252, -126.453).
_POLYLINE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"
# Encodes (38.5, -120.2) only.
_SINGLE_POINT_POLYLINE = "_p~iF~ps|U"


def _make_directions_result(distance_m=1500, duration_s=1200, steps=None):
    """Returns a minimal Directions API-style result list."""
    return [
        {
            "overview_polyline": {"points": _POLYLINE},
            "legs": [
                {
                    "distance": {"value": distance_m, "text": "1.5 km"},
                    "duration": {"value": duration_s, "text": "20 mins"},
                    "steps": steps
                    if steps is not None
                    else [
                        {
                            "html_instructions": "Head north",
                            "polyline": {"points": _POLYLINE},
                        }
                    ],
                }
            ],
        }
    ]


class _MockMapsClient:
    """Minimal mock of googlemaps.Client for testing."""

    def __init__(self, directions_result=None, error=None):
        self._directions = (
            directions_result
            if directions_result is not None
            else _make_directions_result()
        )
        self._error = error
        self.calls = []

    def directions(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return self._directions


def _provider(maps):
    return GoogleDirectionsRouteProvider(api_key="test-key", maps_client=maps)


# ---------------------------------------------------------------------------
# Unit tests: _decode_polyline / _route_coordinates
# ---------------------------------------------------------------------------


def test_decode_polyline_known_value():
    points = google_directions_provider._decode_polyline(_POLYLINE)
    assert points == [(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]


def test_decode_polyline_empty():
    assert google_directions_provider._decode_polyline("") == []


def test_route_coordinates_are_lng_lat():
    coords = google_directions_provider._route_coordinates(_make_directions_result()[0])
    assert coords[0] == [-120.2, 38.5]
    assert len(coords) == 3


def test_route_coordinates_drop_shared_step_endpoint():
    route = _make_directions_result(
        steps=[
            {"polyline": {"points": _SINGLE_POINT_POLYLINE}},
            {"polyline": {"points": _POLYLINE}},
        ]
    )[0]
    coords = google_directions_provider._route_coordinates(route)
    assert coords == [[-120.2, 38.5], [-120.95, 40.7], [-126.453, 43.252]]


def test_route_coordinates_fall_back_to_overview_polyline():
    route = _make_directions_result(steps=[{"html_instructions": "Go"}])[0]
    coords = google_directions_provider._route_coordinates(route)
    assert len(coords) == 3


# ---------------------------------------------------------------------------
# Unit tests: metadata
# ---------------------------------------------------------------------------


def test_profiles_use_google_travel_modes():
    provider = _provider(_MockMapsClient())
    assert provider.get_provider_name() == "Google Directions"
    assert provider.get_profile_for_mobility(MobilityType.STANDARD, TransportMode.WALK) == "walking"
    assert provider.get_profile_for_mobility(MobilityType.STANDARD, TransportMode.BIKE) == "bicycling"
    assert provider.get_profile_for_mobility(MobilityType.STANDARD, TransportMode.CAR_TAXI) == "driving"
    assert provider.get_profile_for_mobility(MobilityType.STROLLER, TransportMode.CAR_TAXI) == "walking"
    assert "Directions API" in provider.get_api_key_instructions()


# ---------------------------------------------------------------------------
# Integration tests: build_route
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_build_route_happy_path():
    maps = _MockMapsClient()
    route = await _provider(maps).build_route(_START, _FINISH)

    assert len(maps.calls) == 1
    call = maps.calls[0]
    assert call["origin"] == "38.5,-120.2"
    assert call["destination"] == "43.252,-126.453"
    assert call["waypoints"] == []
    assert call["mode"] == "walking"
    assert route.distance == 1500
    assert route.duration == 1200
    assert route.instructions[0]["html_instructions"] == "Head north"


@pytest.mark.asyncio
async def test_long_route_is_split_into_two_requests():
    maps = _MockMapsClient()
    waypoints = tuple(Point(lat=39.0 + i * 0.1, lng=-121.0) for i in range(28))

    route = await _provider(maps).build_route(
        _START, _FINISH, RouteOptions(profile="driving", waypoints=waypoints)
    )

    # 30 points, 27 per request: [0-26], [26-29].
    assert len(maps.calls) == 2
    assert sorted(len(c["waypoints"]) for c in maps.calls) == [2, 25]
    assert route.distance == 3000
    assert all(c["mode"] == "driving" for c in maps.calls)


@pytest.mark.asyncio
async def test_empty_result_raises_no_route_found():
    with pytest.raises(NoRouteFoundError):
        await _provider(_MockMapsClient(directions_result=[])).build_route(
            _START, _FINISH
        )


@pytest.mark.asyncio
async def test_api_error_raises_provider_error():
    maps = _MockMapsClient(
        error=googlemaps.exceptions.ApiError("REQUEST_DENIED", "The provided API key is invalid.")
    )
    with pytest.raises(RoutingProviderError, match="REQUEST_DENIED") as exc_info:
        await _provider(maps).build_route(_START, _FINISH)
    assert exc_info.value.window_index == 0


@pytest.mark.asyncio
async def test_http_error_raises_provider_error_with_status():
    maps = _MockMapsClient(error=googlemaps.exceptions.HTTPError(500))
    with pytest.raises(RoutingProviderError) as exc_info:
        await _provider(maps).build_route(_START, _FINISH)
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_timeout_raises_network_error():
    maps = _MockMapsClient(error=googlemaps.exceptions.Timeout())
    with pytest.raises(NetworkError):
        await _provider(maps).build_route(_START, _FINISH)


@pytest.mark.asyncio
async def test_missing_api_key_raises_provider_error(monkeypatch):
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    provider = GoogleDirectionsRouteProvider()
    with pytest.raises(RoutingProviderError, match="API key is not configured"):
        await provider.build_route(_START, _FINISH)


@pytest.mark.asyncio
async def test_malformed_api_key_raises_provider_error():
    """googlemaps rejects non-"AIza" keys with ValueError; it must not escape."""
    provider = GoogleDirectionsRouteProvider(api_key="not-a-google-key")
    with pytest.raises(RoutingProviderError, match="Invalid Google Maps API key") as exc_info:
        await provider.build_route(_START, _FINISH)
    assert exc_info.value.window_index == 0
    assert exc_info.value.provider == "Google Directions"
