"""Google Directions routing backend.

Uses the Google Maps Python client (googlemaps). The client is synchronous,
so each window request runs in a worker thread. One Directions request takes
an origin, a destination and up to 25 intermediate waypoints.
"""

import asyncio
import logging
import os
from typing import Any

import googlemaps
import googlemaps.exceptions
import httpx

from errors import NetworkError, NoRouteFoundError, RoutingProviderError
from models import RouteWindow, SegmentResult
from route_providers import DEFAULT_TIMEOUT_S, MobilityProfileResolver, RouteProvider

logger = logging.getLogger(__name__)

# Origin + 25 waypoints + destination.
GOOGLE_MAX_POINTS_PER_REQUEST: int = 27

_API_KEY_INSTRUCTIONS = """\
How to get a Google Maps API key
  1. Open the Google Cloud console: https://console.cloud.google.com/
  2. Create (or select) a project and enable billing.
  3. Enable the "Directions API" for the project.
  4. Under "APIs & Services > Credentials", create an API key.
  5. Set it as the GOOGLE_MAPS_API_KEY environment variable.

Restrict the key to the Directions API before using it in production.\
"""


class GoogleDirectionsRouteProvider(RouteProvider):
    """Routes via the Google Directions API."""

    provider_name = "Google Directions"
    api_key_instructions = _API_KEY_INSTRUCTIONS
    max_points_per_request = GOOGLE_MAX_POINTS_PER_REQUEST

    def __init__(
        self,
        api_key: str | None = None,
        *,
        maps_client: googlemaps.Client | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        super().__init__(
            api_key or os.environ.get("GOOGLE_MAPS_API_KEY"),
            http_client=http_client,
            timeout_s=timeout_s,
        )
        self._maps = maps_client
        self._resolver = MobilityProfileResolver(
            foot="walking", bike="bicycling", car="driving"
        )

    @property
    def profile_resolver(self) -> MobilityProfileResolver:
        return self._resolver

    @property
    def maps_client(self) -> googlemaps.Client:
        """The Maps client, created from the API key on first use."""
        if self._maps is None:
            if not self.api_key:
                raise RoutingProviderError(
                    "Google Maps API key is not configured.",
                    provider=self.provider_name,
                )
            try:
                self._maps = googlemaps.Client(key=self.api_key, timeout=self.timeout_s)
            except ValueError as exc:
                # The client rejects keys that are not "AIza..." keys.
                raise RoutingProviderError(
                    "Invalid Google Maps API key.", provider=self.provider_name
                ) from exc
        return self._maps

    async def fetch_segment(
        self,
        window: RouteWindow,
        profile: str,
        avoid_stairs: bool,
        *,
        client: httpx.AsyncClient,
    ) -> SegmentResult:
        if avoid_stairs:
            logger.warning(
                "Google Directions cannot avoid steps; routing with mode=%s", profile
            )

        points = [f"{p.lat},{p.lng}" for p in window.points]
        maps = self.maps_client
        try:
            result = await asyncio.to_thread(
                maps.directions,
                origin=points[0],
                destination=points[-1],
                waypoints=points[1:-1],
                mode=profile,
                optimize_waypoints=False,
            )
        except googlemaps.exceptions.HTTPError as exc:
            raise RoutingProviderError(
                f"HTTP {exc.status_code}",
                provider=self.provider_name,
                status_code=exc.status_code,
            ) from exc
        except (googlemaps.exceptions.Timeout, googlemaps.exceptions.TransportError) as exc:
            raise NetworkError(
                f"Request failed: {exc!r}", provider=self.provider_name
            ) from exc
        except googlemaps.exceptions.ApiError as exc:
            raise RoutingProviderError(
                f"{exc.status}: {exc.message}" if exc.message else str(exc.status),
                provider=self.provider_name,
            ) from exc

        if not result:
            raise NoRouteFoundError(
                "No route found between the selected points.",
                provider=self.provider_name,
            )

        route = result[0]
        legs = route.get("legs", [])
        steps = [step for leg in legs for step in leg.get("steps", [])]
        return SegmentResult(
            geometry_coords=_route_coordinates(route),
            distance_meters=sum(leg["distance"]["value"] for leg in legs),
            duration_seconds=sum(leg["duration"]["value"] for leg in legs),
            instructions=steps,
        )


def _route_coordinates(route: dict[str, Any]) -> list[list[float]]:
    """Returns the route as ``[lng, lat]`` pairs built from step polylines.

    Step polylines follow the road far more closely than the simplified
    overview polyline. Consecutive steps share an endpoint, which is kept
    once. Falls back to the overview polyline if no step has one.
    """
    points: list[tuple[float, float]] = []
    for leg in route.get("legs", []):
        for step in leg.get("steps", []):
            step_points = _decode_polyline(step.get("polyline", {}).get("points", ""))
            if points and step_points and step_points[0] == points[-1]:
                step_points = step_points[1:]
            points.extend(step_points)

    if not points:
        points = _decode_polyline(route.get("overview_polyline", {}).get("points", ""))

    return [[lng, lat] for lat, lng in points]


def _decode_polyline(encoded: str) -> list[tuple[float, float]]:
    """Decodes a Google-encoded polyline string to a list of (lat, lng) points.

    See: https://developers.google.com/maps/documentation/utilities/polylinealgorithm
    """
    result: list[tuple[float, float]] = []
    index = 0
    lat = 0
    lng = 0

    while index < len(encoded):
        deltas = []
        for _ in range(2):
            shift = 0
            value = 0
            while True:
                b = ord(encoded[index]) - 63
                index += 1
                value |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(value >> 1) if (value & 1) else (value >> 1))
        lat += deltas[0]
        lng += deltas[1]
        result.append((lat / 1e5, lng / 1e5))

    return result
