"""Trip planning helpers that sit around a built route.

  * ``sort_waypoints_by_nearest_neighbor`` orders stops greedily before a
    route is requested.
  * ``calculate_route_duration`` adds time spent at each stop to the
    provider's travel time.
  * ``route_to_geojson`` exports a route and its stops as a GeoJSON
    FeatureCollection.
"""

import math
from collections.abc import Sequence
from typing import Any

from models import Point, RouteData, RouteDurationBreakdown, TravelPace

# -- Visit time ------------------------------------------------------------
# Hours spent at each stop, by travel pace.
POI_VISIT_HOURS: dict[TravelPace, float] = {
    TravelPace.LOW: 2.5,
    TravelPace.MEDIUM: 2.0,
    TravelPace.HIGH: 1.5,
}
DEFAULT_TRAVEL_PACE: TravelPace = TravelPace.MEDIUM


# ---------------------------------------------------------------------------
# Waypoint ordering
# ---------------------------------------------------------------------------


def sort_waypoints_by_nearest_neighbor(
    start: Point, waypoints: Sequence[Point]
) -> list[Point]:
    """Orders waypoints by repeatedly visiting the closest unvisited one.

    Greedy, so not optimal, but cheap and good enough for a handful of stops.
    Ties keep the original order.
    """
    remaining = list(waypoints)
    ordered: list[Point] = []
    current = start
    while remaining:
        nearest = min(
            range(len(remaining)),
            key=lambda i: _haversine_m(
                current.lat, current.lng, remaining[i].lat, remaining[i].lng
            ),
        )
        current = remaining.pop(nearest)
        ordered.append(current)
    return ordered


def _haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Returns the great-circle distance in metres between two points."""
    earth_r = 6_371_000  # metres
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = lat2_r - lat1_r
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return earth_r * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


# ---------------------------------------------------------------------------
# Duration
# ---------------------------------------------------------------------------


def visit_hours_per_poi(travel_pace: TravelPace | None) -> float:
    return POI_VISIT_HOURS.get(travel_pace, POI_VISIT_HOURS[DEFAULT_TRAVEL_PACE])


def calculate_route_duration(
    travel_duration_s: float,
    poi_count: int,
    travel_pace: TravelPace | None = None,
) -> RouteDurationBreakdown:
    """Splits the total trip time into travel and visit time, in seconds."""
    travel_s = max(travel_duration_s or 0, 0)
    visit_s = (
        poi_count * visit_hours_per_poi(travel_pace) * 3600 if poi_count > 0 else 0.0
    )
    total_s = travel_s + visit_s
    return RouteDurationBreakdown(
        total_s=total_s,
        travel_s=travel_s,
        visit_s=visit_s,
        total_formatted=format_duration(total_s),
        travel_formatted=format_duration(travel_s),
        visit_formatted=format_duration(visit_s),
    )


def format_duration(duration_s: float) -> str:
    """Formats seconds as ``HH:MM``, rounding to the nearest minute."""
    if not duration_s or duration_s < 0:
        return "00:00"
    total_minutes = round(duration_s / 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


# ---------------------------------------------------------------------------
# GeoJSON export
# ---------------------------------------------------------------------------


def route_to_geojson(route: RouteData, name: str = "Route") -> dict[str, Any]:
    """Exports a route as a FeatureCollection.

    The first feature is the route LineString. One Point feature follows per
    requested stop, tagged ``start``, ``waypoint`` or ``finish``.
    """
    features: list[dict[str, Any]] = [
        {
            "type": "Feature",
            "geometry": route.geometry.model_dump(),
            "properties": {
                "name": name,
                "distance": route.distance,
                "duration": route.duration,
                "poi_count": len(route.waypoints),
                "feature_type": "route",
            },
        }
    ]

    last = len(route.waypoints) - 1
    for index, (lat, lng) in enumerate(route.waypoints):
        if index == 0:
            poi_type = "start"
        elif index == last:
            poi_type = "finish"
        else:
            poi_type = "waypoint"
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [lng, lat]},
                "properties": {
                    "poi_type": poi_type,
                    "sequence": index + 1,
                    "feature_type": "poi",
                },
            }
        )

    return {"type": "FeatureCollection", "features": features}
