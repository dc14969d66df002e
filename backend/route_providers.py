"""Route provider contract, shared transport and mobility profile resolution.

A ``RouteProvider`` turns ``build_route(start, finish, options)`` into one
or more HTTP requests against a third-party routing service. Concrete
providers only describe their own request/response format
(``fetch_segment``) and profile table. Splitting long point chains into
windows, running the window requests and stitching the results is shared
here.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from errors import NetworkError, RoutingError, RoutingProviderError
from models import (
    STEP_FREE_MOBILITY,
    MobilityType,
    Point,
    RouteData,
    RouteOptions,
    RouteRequest,
    RouteWindow,
    SegmentResult,
    TransportMode,
    UserProfile,
)
from route_composition import aggregate_segments, segment_points

logger = logging.getLogger(__name__)

# Transport timeout applied to clients the providers create themselves.
DEFAULT_TIMEOUT_S: float = 10.0


# ---------------------------------------------------------------------------
# Mobility profile resolution
# ---------------------------------------------------------------------------


class MobilityProfileResolver:
    """Maps a traveller's mobility and transport mode to a provider profile.

    Total over its inputs: anything unrecognised (including ``None`` and
    raw strings that are not enum values) resolves to the foot profile.
    """

    def __init__(
        self,
        *,
        foot: str,
        bike: str,
        car: str,
        accessibility: str | None = None,
    ):
        self.foot = foot
        self.accessibility = accessibility
        self._by_transport = {
            TransportMode.WALK: foot,
            TransportMode.BIKE: bike,
            TransportMode.CAR_TAXI: car,
            # Transit routing needs a dedicated API; walking is the fallback.
            TransportMode.PUBLIC_TRANSIT: foot,
        }

    def resolve(
        self,
        mobility_type: MobilityType | str | None,
        transport_mode: TransportMode | str | None,
    ) -> str:
        if _coerce(MobilityType, mobility_type) in STEP_FREE_MOBILITY:
            return self.accessibility or self.foot
        mode = _coerce(TransportMode, transport_mode)
        return self._by_transport.get(mode, self.foot)


def _coerce(enum_cls, value):
    """Returns ``enum_cls(value)``, or None when the value is not a member."""
    try:
        return enum_cls(value)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    params: Any = None,
) -> Any:
    """GETs ``url`` and returns the decoded JSON body.

    Raises:
        NetworkError: On connection failures and timeouts.
        RoutingProviderError: On a non-2xx status or a non-JSON body. The
            upstream ``message`` field is used as the error text when present.
    """
    try:
        response = await client.get(url, params=params)
    except httpx.TransportError as exc:
        raise NetworkError(
            f"Request failed: {exc!r}", provider=provider
        ) from exc

    if response.is_error:
        body = _json_or_none(response)
        raise RoutingProviderError(
            _error_message(response, body),
            provider=provider,
            status_code=response.status_code,
            body=body,
        )

    try:
        return response.json()
    except ValueError as exc:
        raise RoutingProviderError(
            "Provider returned a non-JSON response.",
            provider=provider,
            status_code=response.status_code,
        ) from exc


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response: httpx.Response, body: Any) -> str:
    """Extracts the most useful error text from a failed response."""
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    text = response.text.strip()
    if text:
        return text
    return f"HTTP {response.status_code}"


# ---------------------------------------------------------------------------
# Provider contract
# ---------------------------------------------------------------------------


class RouteProvider(ABC):
    """Capability contract implemented once per routing backend."""

    #: Largest number of points a single provider request may carry.
    max_points_per_request: int = 5

    def __init__(
        self,
        api_key: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.api_key = api_key
        self._http_client = http_client
        self.timeout_s = timeout_s

    # -- Per-provider hooks ------------------------------------------------

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @property
    @abstractmethod
    def profile_resolver(self) -> MobilityProfileResolver:
        ...

    @property
    @abstractmethod
    def api_key_instructions(self) -> str:
        ...

    @abstractmethod
    async def fetch_segment(
        self,
        window: RouteWindow,
        profile: str,
        avoid_stairs: bool,
        *,
        client: httpx.AsyncClient,
    ) -> SegmentResult:
        """Routes one window. Issues exactly one upstream request."""

    # -- Public operations -------------------------------------------------

    def get_provider_name(self) -> str:
        return self.provider_name

    def get_api_key_instructions(self) -> str:
        return self.api_key_instructions

    def get_profile_for_mobility(
        self,
        mobility_type: MobilityType | str | None,
        transport_mode: TransportMode | str | None,
    ) -> str:
        return self.profile_resolver.resolve(mobility_type, transport_mode)

    def options_for_profile(
        self, profile: UserProfile, waypoints: Sequence[Point] = ()
    ) -> RouteOptions:
        """Builds route options that honour a traveller profile."""
        return RouteOptions(
            profile=self.get_profile_for_mobility(
                profile.mobility, profile.primary_transport
            ),
            avoid_stairs=profile.needs_step_free_route,
            waypoints=tuple(waypoints),
        )

    async def build_route(
        self,
        start: Point,
        finish: Point,
        options: RouteOptions | None = None,
    ) -> RouteData:
        """Builds a route from ``start`` to ``finish`` through the waypoints.

        Long point chains are split into windows of at most
        ``max_points_per_request`` points. All windows are requested
        concurrently. The first failing window cancels the others and its
        error propagates with ``window_index`` set; no partial route is
        returned.

        Raises:
            InvalidRequestError: On a malformed request.
            RoutingProviderError: On an upstream HTTP or API error.
            NoRouteFoundError: If any window has no route.
            NetworkError: On transport failures.
        """
        options = options or RouteOptions()
        profile = options.profile or self.profile_resolver.foot
        request = RouteRequest(start=start, finish=finish, waypoints=options.waypoints)
        points = request.all_points()
        windows = segment_points(points, self.max_points_per_request)

        logger.info(
            "%s route: %d points, %d windows, profile=%s, avoid_stairs=%s",
            self.provider_name,
            len(points),
            len(windows),
            profile,
            options.avoid_stairs,
        )

        if self._http_client is not None:
            segments = await self._fetch_windows(
                windows, profile, options.avoid_stairs, self._http_client
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                segments = await self._fetch_windows(
                    windows, profile, options.avoid_stairs, client
                )

        route = aggregate_segments(segments, points)
        logger.info(
            "%s route built: %.0fm, %.0fs, %d instructions",
            self.provider_name,
            route.distance,
            route.duration,
            len(route.instructions),
        )
        return route

    async def _fetch_windows(
        self,
        windows: list[RouteWindow],
        profile: str,
        avoid_stairs: bool,
        client: httpx.AsyncClient,
    ) -> list[SegmentResult]:
        """Fetches every window concurrently; results keep window order."""
        tasks = [
            asyncio.create_task(
                self._fetch_window(index, window, profile, avoid_stairs, client)
            )
            for index, window in enumerate(windows)
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            # Let cancelled windows unwind before the client closes.
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _fetch_window(
        self,
        index: int,
        window: RouteWindow,
        profile: str,
        avoid_stairs: bool,
        client: httpx.AsyncClient,
    ) -> SegmentResult:
        try:
            return await self.fetch_segment(
                window, profile, avoid_stairs, client=client
            )
        except RoutingError as exc:
            if exc.provider is None:
                exc.provider = self.provider_name
            exc.window_index = index
            logger.warning(
                "%s window %d (points %d..%d) failed: %s",
                self.provider_name,
                index,
                window.global_start_index,
                window.global_start_index + len(window.points) - 1,
                exc.message,
            )
            raise


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------

PROVIDER_NAMES: tuple[str, ...] = ("graphhopper", "osrm", "google")


def create_provider(name: str, **kwargs: Any) -> RouteProvider:
    """Constructs the provider registered under ``name``.

    Raises:
        ValueError: If ``name`` is not a known provider.
    """
    # Imported here: the concrete providers import this module.
    from google_directions_provider import GoogleDirectionsRouteProvider
    from graphhopper_provider import GraphHopperRouteProvider
    from osrm_provider import OsrmRouteProvider

    registry: Mapping[str, type[RouteProvider]] = {
        "graphhopper": GraphHopperRouteProvider,
        "osrm": OsrmRouteProvider,
        "google": GoogleDirectionsRouteProvider,
    }
    try:
        provider_cls = registry[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown route provider {name!r}; expected one of {', '.join(PROVIDER_NAMES)}."
        ) from None
    return provider_cls(**kwargs)
