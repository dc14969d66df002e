"""GraphHopper routing backend.

Docs: https://docs.graphhopper.com/#tag/Routing-API

The hosted free tier accepts at most 5 points per request and exposes only
the foot, bike and car profiles. Deployments with an accessibility profile
(e.g. a self-hosted instance with ``wheelchair``) can pass it as
``accessibility_profile``; step-free requests then use it, and requests on
that profile also send the step-avoidance parameters.
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

GRAPHHOPPER_BASE_URL: str = "https://graphhopper.com/api/1"
# Hosted API point cap per /route request on the free plan.
GRAPHHOPPER_MAX_POINTS_PER_REQUEST: int = 5

_API_LIMIT_MESSAGE = (
    "GraphHopper API limit reached. Please wait or upgrade your plan at "
    "https://www.graphhopper.com/pricing/"
)

_API_KEY_INSTRUCTIONS = """\
How to get a GraphHopper API key
  1. Go to https://graphhopper.com/
  2. Click "Sign Up" and create a free account.
  3. Open your dashboard and create an API key.
  4. Set it as the GRAPHHOPPER_API_KEY environment variable.

Free tier includes: 500 requests per day, 5 points per route request.
Long routes are split automatically, so each one may use several requests.\
"""


class GraphHopperRouteProvider(RouteProvider):
    """Routes via the GraphHopper Routing API."""

    provider_name = "GraphHopper"
    api_key_instructions = _API_KEY_INSTRUCTIONS
    max_points_per_request = GRAPHHOPPER_MAX_POINTS_PER_REQUEST

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str = GRAPHHOPPER_BASE_URL,
        accessibility_profile: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        super().__init__(
            api_key or os.environ.get("GRAPHHOPPER_API_KEY"),
            http_client=http_client,
            timeout_s=timeout_s,
        )
        self.base_url = base_url.rstrip("/")
        self.accessibility_profile = accessibility_profile
        self._resolver = MobilityProfileResolver(
            foot="foot",
            bike="bike",
            car="car",
            accessibility=accessibility_profile,
        )
        if not self.api_key:
            logger.warning("GraphHopper API key not found in environment variables")

    @property
    def profile_resolver(self) -> MobilityProfileResolver:
        return self._resolver

    def build_params(
        self, window: RouteWindow, profile: str, avoid_stairs: bool
    ) -> list[tuple[str, str]]:
        """Returns the query parameters for one window, points in order."""
        params = [
            ("key", self.api_key or ""),
            ("profile", profile),
            ("points_encoded", "false"),
            ("instructions", "true"),
            ("locale", "en"),
        ]
        params.extend(("point", f"{p.lat},{p.lng}") for p in window.points)

        if avoid_stairs:
            if self.accessibility_profile and profile == self.accessibility_profile:
                # Avoid rules only work in flexible mode.
                params.append(("ch.disable", "true"))
                params.append(("avoid", "steps"))
            else:
                logger.warning(
                    "Step-free routing requested but profile=%s is not the "
                    "configured accessibility profile (%s); routing without "
                    "avoid=steps",
                    profile,
                    self.accessibility_profile,
                )
        return params

    async def fetch_segment(
        self,
        window: RouteWindow,
        profile: str,
        avoid_stairs: bool,
        *,
        client: httpx.AsyncClient,
    ) -> SegmentResult:
        try:
            data = await fetch_json(
                client,
                f"{self.base_url}/route",
                provider=self.provider_name,
                params=self.build_params(window, profile, avoid_stairs),
            )
        except RoutingProviderError as exc:
            if "API limit" in exc.message:
                raise RoutingProviderError(
                    _API_LIMIT_MESSAGE,
                    provider=self.provider_name,
                    status_code=exc.status_code,
                ) from exc
            raise

        if not isinstance(data, dict):
            raise RoutingProviderError(
                "Unexpected response format.", provider=self.provider_name
            )

        message = data.get("message")
        if message:
            if "API limit" in message:
                raise RoutingProviderError(_API_LIMIT_MESSAGE, provider=self.provider_name)
            raise RoutingProviderError(message, provider=self.provider_name)

        paths = data.get("paths") or []
        if not paths:
            raise NoRouteFoundError(
                "No route found between the selected points.",
                provider=self.provider_name,
            )

        path = paths[0]
        return SegmentResult(
            geometry_coords=path.get("points", {}).get("coordinates", []),
            distance_meters=path.get("distance", 0),
            # GraphHopper reports time in milliseconds.
            duration_seconds=path.get("time", 0) / 1000,
            instructions=path.get("instructions") or [],
        )
