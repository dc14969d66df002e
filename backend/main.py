"""Routeweaver backend service.

Exposes endpoints for multi-stop route building across routing providers,
mobility profile lookup, trip duration and GeoJSON export, and the
conversational traveller-profile setup.
"""

import logging
import os
from functools import lru_cache
from typing import Any

from anthropic import AsyncAnthropic
from fastapi import FastAPI, HTTPException

import route_planning
from errors import (
    InvalidRequestError,
    NetworkError,
    NoRouteFoundError,
    RoutingProviderError,
)
from models import (
    ApiKeyInstructionsResponse,
    BuildRouteRequest,
    ExportGeoJsonRequest,
    ProfileAnswerRequest,
    ProfileAnswerResponse,
    ProfileQuestionRequest,
    ProfileQuestionResponse,
    RouteData,
    RouteDurationBreakdown,
    RouteDurationRequest,
    RouteOptions,
    RouteProfileRequest,
    RouteProfileResponse,
)
from profile_setup import ProfileSetupWizard
from route_providers import RouteProvider, create_provider

logging.basicConfig(level=logging.INFO)

app = FastAPI(
    title="Routeweaver Backend",
    description="Multi-stop route building over GraphHopper, OSRM and Google Directions.",
    version="0.1.0",
)


def get_provider(name: str) -> RouteProvider:
    """Returns the shared route provider for ``name``.

    Raises:
        HTTPException 400: If the provider name is unknown.
    """
    try:
        return _cached_provider(name.lower())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@lru_cache(maxsize=None)
def _cached_provider(name: str) -> RouteProvider:
    # One instance per provider, so the Google Maps client session is reused.
    return create_provider(name)


def get_claude_client() -> AsyncAnthropic:
    return AsyncAnthropic(api_key=os.environ.get("ANTHROPIC_API_KEY", ""))


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint used to verify the service is live."""
    return {"status": "ok"}


@app.post("/build-route", response_model=RouteData)
async def build_route(request: BuildRouteRequest) -> RouteData:
    """Builds a route from start to finish through the requested waypoints.

    Long waypoint lists are split into several provider requests and stitched
    into one route.

    Args:
        request: ``BuildRouteRequest`` with the provider name, points, and
            either an explicit provider profile or the traveller's mobility
            type and transport mode.

    Returns:
        ``RouteData`` with GeoJSON geometry, total distance (m), total
        duration (s), instructions and the echoed waypoints.

    Raises:
        HTTPException 400: On an unknown provider or an invalid request.
        HTTPException 404: If the provider found no route.
        HTTPException 502: If the provider call fails.
    """
    provider = get_provider(request.provider)

    profile = request.profile
    if profile is None and (request.mobility_type or request.transport_mode):
        profile = provider.get_profile_for_mobility(
            request.mobility_type, request.transport_mode
        )

    waypoints = request.waypoints
    if request.optimize_waypoints and len(waypoints) > 1:
        waypoints = route_planning.sort_waypoints_by_nearest_neighbor(
            request.start, waypoints
        )

    options = RouteOptions(
        profile=profile,
        avoid_stairs=request.avoid_stairs,
        waypoints=tuple(waypoints),
    )
    try:
        return await provider.build_route(request.start, request.finish, options)
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NoRouteFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (RoutingProviderError, NetworkError) as exc:
        logging.exception("build_route failed")
        raise HTTPException(
            status_code=502,
            detail=f"Failed to build the route: {exc}",
        ) from exc


@app.post("/route-profile", response_model=RouteProfileResponse)
async def route_profile(request: RouteProfileRequest) -> RouteProfileResponse:
    """Returns the provider profile for a mobility type and transport mode.

    Unknown or missing values fall back to the provider's walking profile.
    """
    provider = get_provider(request.provider)
    return RouteProfileResponse(
        provider=provider.get_provider_name(),
        profile=provider.get_profile_for_mobility(
            request.mobility_type, request.transport_mode
        ),
    )


@app.get(
    "/providers/{name}/api-key-instructions",
    response_model=ApiKeyInstructionsResponse,
)
async def api_key_instructions(name: str) -> ApiKeyInstructionsResponse:
    provider = get_provider(name)
    return ApiKeyInstructionsResponse(
        provider=provider.get_provider_name(),
        instructions=provider.get_api_key_instructions(),
    )


@app.post("/route-duration", response_model=RouteDurationBreakdown)
async def route_duration(request: RouteDurationRequest) -> RouteDurationBreakdown:
    """Adds per-stop visit time, based on travel pace, to the travel time."""
    return route_planning.calculate_route_duration(
        request.travel_duration_s, request.poi_count, request.travel_pace
    )


@app.post("/export-geojson")
async def export_geojson(request: ExportGeoJsonRequest) -> dict[str, Any]:
    """Exports a built route and its stops as a GeoJSON FeatureCollection."""
    return route_planning.route_to_geojson(request.route, request.name)


@app.post("/profile-setup/question", response_model=ProfileQuestionResponse)
async def profile_setup_question(
    request: ProfileQuestionRequest,
) -> ProfileQuestionResponse:
    """Asks the next profile question.

    The caller keeps the profile and conversation history and sends them
    back with every call.

    Raises:
        HTTPException 502: If the upstream Anthropic API call fails.
    """
    wizard = ProfileSetupWizard(
        request.profile,
        claude_client=get_claude_client(),
        history=request.history,
    )
    field = wizard.next_field()
    try:
        question = await wizard.ask_next_question()
    except Exception as exc:  # noqa: BLE001
        logging.exception("profile_setup_question failed")
        raise HTTPException(
            status_code=502,
            detail="Failed to generate the next question. Please try again.",
        ) from exc

    return ProfileQuestionResponse(
        field=field,
        question=question,
        is_complete=question is None,
        profile=wizard.profile,
        history=wizard.history,
    )


@app.post("/profile-setup/answer", response_model=ProfileAnswerResponse)
async def profile_setup_answer(request: ProfileAnswerRequest) -> ProfileAnswerResponse:
    """Parses the traveller's answer and applies it to the profile.

    An answer that cannot be understood returns ``success=False`` with the
    same field still pending.

    Raises:
        HTTPException 400: If the field is unknown or the answer is empty.
        HTTPException 502: If the upstream Anthropic API call fails.
    """
    if not request.answer.strip():
        raise HTTPException(status_code=400, detail="answer must not be empty.")
    try:
        wizard = ProfileSetupWizard(
            request.profile,
            claude_client=get_claude_client(),
            history=request.history,
            pending_field=request.field,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        outcome = await wizard.submit_answer(request.answer)
    except Exception as exc:  # noqa: BLE001
        logging.exception("profile_setup_answer failed")
        raise HTTPException(
            status_code=502,
            detail="Failed to process the answer. Please try again.",
        ) from exc

    return ProfileAnswerResponse(
        success=outcome.success,
        error=outcome.error,
        profile=wizard.profile,
        history=wizard.history,
        next_field=outcome.next_field,
        is_complete=outcome.is_complete,
        completion_percentage=wizard.profile.completion_percentage(),
    )
