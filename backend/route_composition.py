"""Multi-segment route composition.

Routing providers cap the number of points accepted per request. A long
waypoint chain is therefore split into overlapping windows, routed one
window per request, and the partial results are stitched back into a single
route that looks exactly like an unsplit one.

Consecutive windows share exactly one boundary point: the last point of
window i is the first point of window i+1. The provider's geometry for
window i+1 therefore starts with the coordinate that window i ended on, and
the merge drops that first coordinate unconditionally.
"""

import logging
from collections.abc import Sequence

from errors import InvalidRequestError
from models import Point, RouteData, RouteGeometry, RouteWindow, SegmentResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------


def segment_points(
    points: Sequence[Point], max_points_per_request: int
) -> list[RouteWindow]:
    """Splits ``points`` into windows of at most ``max_points_per_request``.

    Windows advance by ``max_points_per_request - 1`` so that each pair of
    neighbours overlaps in one point. With a cap of 5, 6 points give windows
    [0–4], [4–5]; 10 points give [0–4], [4–8], [8–9]. The final window may be
    as small as 2 points but never smaller.

    Raises:
        InvalidRequestError: If fewer than two points are given.
        ValueError: If ``max_points_per_request`` is below 2.
    """
    if max_points_per_request < 2:
        raise ValueError(
            f"max_points_per_request must be at least 2, got {max_points_per_request}."
        )
    n = len(points)
    if n < 2:
        raise InvalidRequestError(
            f"A route needs at least 2 points, got {n}."
        )

    if n <= max_points_per_request:
        return [RouteWindow(points=tuple(points), global_start_index=0)]

    step = max_points_per_request - 1
    windows: list[RouteWindow] = []
    start = 0
    last = 0
    while last < n - 1:
        last = min(start + max_points_per_request - 1, n - 1)
        windows.append(
            RouteWindow(points=tuple(points[start:last + 1]), global_start_index=start)
        )
        start += step

    logger.info(
        "Split %d points into %d windows (max %d per request)",
        n,
        len(windows),
        max_points_per_request,
    )
    return windows


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate_segments(
    segments: Sequence[SegmentResult], original_points: Sequence[Point]
) -> RouteData:
    """Merges per-window results, in window order, into one route.

    Distance and duration are summed, instructions concatenated. Geometry
    keeps every coordinate of the first segment and drops index 0 of each
    later segment, which is the boundary point already emitted. A provider
    that omits the boundary point yields a visible gap at the joint rather
    than a silently shifted line.
    """
    if not segments:
        raise ValueError("Cannot aggregate an empty list of segments.")

    coordinates: list[list[float]] = list(segments[0].geometry_coords)
    for segment in segments[1:]:
        coordinates.extend(segment.geometry_coords[1:])

    instructions = [
        instruction
        for segment in segments
        for instruction in segment.instructions
    ]

    return RouteData(
        geometry=RouteGeometry(coordinates=coordinates),
        distance=sum(s.distance_meters for s in segments),
        duration=sum(s.duration_seconds for s in segments),
        instructions=instructions,
        waypoints=[[p.lat, p.lng] for p in original_points],
    )
