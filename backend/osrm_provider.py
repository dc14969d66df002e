"""OSRM routing backend.

Talks to an OSRM ``/route/v1`` endpoint (the public demo server by default,
override with ``OSRM_BASE_URL``). OSRM expects ``lng,lat`` pairs in the URL
path and reports durations in seconds. No API key is needed.
"""

import logging
import os

import httpx

from errors import NoRouteFoundError, RoutingProviderError
from models import RouteWindow, SegmentResult
from route_providers import (
    DEFAULT_TIMEOUT_S,
    MobilityProfileResolver,
    RouteProvider,
    fetch_json,
)

logger = logging.getLogger(__name__)

OSRM_DEFAULT_BASE_URL: str = "https://router.project-osrm.org"
# Conservative cap for shared servers; self-hosted OSRM allows far more.
OSRM_MAX_POINTS_PER_REQUEST: int = 25

_API_KEY_INSTRUCTIONS = """\
OSRM does not need an API key.
  * The public demo server (router.project-osrm.org) is rate limited and
    intended for light use only.
  * For production, run your own osrm-backend instance and set
    OSRM_BASE_URL to its address (e.g. http://localhost:5000).\
"""


class OsrmRouteProvider(RouteProvider):
    """Routes via an OSRM server."""

    provider_name = "OSRM"
    api_key_instructions = _API_KEY_INSTRUCTIONS

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        max_points_per_request: int = OSRM_MAX_POINTS_PER_REQUEST,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        super().__init__(api_key, http_client=http_client, timeout_s=timeout_s)
        self.base_url = (
            base_url or os.environ.get("OSRM_BASE_URL") or OSRM_DEFAULT_BASE_URL
        ).rstrip("/")
        self.max_points_per_request = max_points_per_request
        self._resolver = MobilityProfileResolver(foot="foot", bike="bike", car="car")

    @property
    def profile_resolver(self) -> MobilityProfileResolver:
        return self._resolver

    def build_url(self, window: RouteWindow, profile: str) -> str:
        coordinates = ";".join(f"{p.lng},{p.lat}" for p in window.points)
        return f"{self.base_url}/route/v1/{profile}/{coordinates}"

    async def fetch_segment(
        self,
        window: RouteWindow,
        profile: str,
        avoid_stairs: bool,
        *,
        client: httpx.AsyncClient,
    ) -> SegmentResult:
        if avoid_stairs:
            logger.warning("OSRM cannot avoid steps; routing with profile=%s", profile)

        try:
            data = await fetch_json(
                client,
                self.build_url(window, profile),
                provider=self.provider_name,
                params={
                    "overview": "full",
                    "geometries": "geojson",
                    "steps": "true",
                },
            )
        except RoutingProviderError as exc:
            # OSRM reports NoRoute with HTTP 400.
            if isinstance(exc.body, dict) and exc.body.get("code") == "NoRoute":
                raise self._no_route(exc.body) from exc
            raise

        if not isinstance(data, dict):
            raise RoutingProviderError(
                "Unexpected response format.", provider=self.provider_name
            )
        code = data.get("code")
        if code == "NoRoute":
            raise self._no_route(data)
        if code != "Ok":
            raise RoutingProviderError(
                f"OSRM error {code}: {data.get('message', 'Unknown error')}",
                provider=self.provider_name,
            )

        routes = data.get("routes") or []
        if not routes:
            raise NoRouteFoundError(
                "No route found between the selected points.",
                provider=self.provider_name,
            )

        route = routes[0]
        instructions = [
            step
            for leg in route.get("legs", [])
            for step in leg.get("steps", [])
        ]
        return SegmentResult(
            geometry_coords=route.get("geometry", {}).get("coordinates", []),
            distance_meters=route.get("distance", 0),
            duration_seconds=route.get("duration", 0),
            instructions=instructions,
        )

    def _no_route(self, body: dict) -> NoRouteFoundError:
        return NoRouteFoundError(
            body.get("message") or "No route found between the selected points.",
            provider=self.provider_name,
        )
