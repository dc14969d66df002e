"""Pydantic models for the Routeweaver backend.

Two groups live here:
  * the routing value types that flow through the route composition engine
    (Point, RouteOptions, RouteWindow, SegmentResult, RouteData), and
  * the traveller profile domain filled in by the profile setup wizard
    (MobilityType, TransportMode, UserProfile and friends).

HTTP request/response bodies for ``main.py`` are at the bottom.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# An opaque provider-supplied turn-by-turn record, passed through unmodified.
Instruction = dict[str, Any]


# ---------------------------------------------------------------------------
# Routing value types
# ---------------------------------------------------------------------------


class Point(BaseModel):
    """A WGS84 coordinate. Immutable; no identity beyond its coordinates."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class RouteRequest(BaseModel):
    """An ordered route request: start, optional waypoints, finish."""

    model_config = ConfigDict(frozen=True)

    start: Point
    finish: Point
    waypoints: tuple[Point, ...] = ()

    def all_points(self) -> list[Point]:
        """Returns ``[start, *waypoints, finish]``."""
        return [self.start, *self.waypoints, self.finish]


class RouteOptions(BaseModel):
    """Options accepted by ``RouteProvider.build_route``."""

    model_config = ConfigDict(frozen=True)

    profile: str | None = None
    """Provider profile id. ``None`` means the provider's walking profile."""

    avoid_stairs: bool = False
    """Request step-free paths where the provider supports it."""

    waypoints: tuple[Point, ...] = ()
    """Intermediate points, in visiting order."""


class RouteWindow(BaseModel):
    """The point list of one outbound provider request."""

    model_config = ConfigDict(frozen=True)

    points: tuple[Point, ...] = Field(min_length=2)
    global_start_index: int = Field(ge=0)
    """Index of ``points[0]`` in the full route. Diagnostics only."""


class SegmentResult(BaseModel):
    """The routed output of one window, before merging."""

    model_config = ConfigDict(frozen=True)

    geometry_coords: list[list[float]]
    """Ordered ``[lng, lat]`` pairs."""

    distance_meters: float = Field(ge=0)
    duration_seconds: float = Field(ge=0)
    instructions: list[Instruction] = Field(default_factory=list)


class RouteGeometry(BaseModel):
    """GeoJSON LineString geometry."""

    type: Literal["LineString"] = "LineString"
    coordinates: list[list[float]]


class RouteData(BaseModel):
    """The canonical route returned by every provider."""

    geometry: RouteGeometry
    distance: float
    """Total distance in metres."""

    duration: float
    """Total travel time in seconds."""

    instructions: list[Instruction] = Field(default_factory=list)
    waypoints: list[list[float]]
    """The requested points echoed back as ``[lat, lng]`` pairs."""


# ---------------------------------------------------------------------------
# Traveller profile domain
# ---------------------------------------------------------------------------


class MobilityType(str, Enum):
    """The traveller's main mobility factor."""

    STANDARD = "standard"
    WHEELCHAIR = "wheelchair"
    STROLLER = "stroller"
    LOW_ENDURANCE = "low_endurance"


# Mobility types that need step-free routing.
STEP_FREE_MOBILITY: frozenset = frozenset(
    {MobilityType.WHEELCHAIR, MobilityType.STROLLER}
)


class TransportMode(str, Enum):
    WALK = "walk"
    BIKE = "bike"
    PUBLIC_TRANSIT = "public_transit"
    CAR_TAXI = "car_taxi"


class TravelPace(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class InterestCategory(str, Enum):
    HISTORY_CULTURE = "history_culture"
    ART_MUSEUMS = "art_museums"
    ARCHITECTURE = "architecture"
    NATURE_PARKS = "nature_parks"
    ENTERTAINMENT = "entertainment"
    NIGHTLIFE = "nightlife"
    GASTRONOMY = "gastronomy"
    SHOPPING = "shopping"
    SPORT_FITNESS = "sport_fitness"
    TECHNOLOGY = "technology"


class DietaryPreference(BaseModel):
    vegan: bool = False
    vegetarian: bool = False
    gluten_free: bool = False
    halal: bool = False
    kosher: bool = False
    allergies: list[str] = []


class TimeWindow(BaseModel):
    """Preferred activity hours, 0–23."""

    start_hour: int = Field(ge=0, le=23)
    end_hour: int = Field(ge=0, le=23)


class UserProfile(BaseModel):
    """Structured traveller preferences used to tailor routes.

    A field that has not been answered yet is ``None`` (or empty for the
    list/dict fields). The profile setup wizard fills them one at a time.
    """

    user_id: str = ""
    mobility: MobilityType | None = None
    avoid_stairs: bool | None = None
    preferred_transport: list[TransportMode] = []
    """Travel modes in descending priority."""

    interests: dict[InterestCategory, float] = {}
    """Interest weight per category, 0.0–1.0."""

    budget_level: int | None = Field(default=None, ge=0, le=3)
    """0 = free only, 1 = low, 2 = medium, 3 = high."""

    travel_pace: TravelPace | None = None
    dietary: DietaryPreference | None = None
    time_window: TimeWindow | None = None

    def missing_fields(self) -> list[str]:
        """Returns the names of the fields still unanswered, in asking order."""
        missing: list[str] = []
        if self.mobility is None:
            missing.append("mobility")
        if self.avoid_stairs is None:
            missing.append("avoid_stairs")
        if not self.preferred_transport:
            missing.append("preferred_transport")
        if self.budget_level is None:
            missing.append("budget_level")
        if self.travel_pace is None:
            missing.append("travel_pace")
        if not self.interests:
            missing.append("interests")
        if self.dietary is None:
            missing.append("dietary")
        if self.time_window is None:
            missing.append("time_window")
        return missing

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def completion_percentage(self) -> int:
        total = len(PROFILE_FIELDS)
        return round((total - len(self.missing_fields())) / total * 100)

    @property
    def primary_transport(self) -> TransportMode | None:
        return self.preferred_transport[0] if self.preferred_transport else None

    @property
    def needs_step_free_route(self) -> bool:
        return self.mobility in STEP_FREE_MOBILITY or bool(self.avoid_stairs)


# Wizard asking order.
PROFILE_FIELDS: tuple[str, ...] = (
    "mobility",
    "avoid_stairs",
    "preferred_transport",
    "budget_level",
    "travel_pace",
    "interests",
    "dietary",
    "time_window",
)


class ConversationTurn(BaseModel):
    """One entry of the wizard's append-only conversation log."""

    role: Literal["user", "assistant"]
    content: str


# ---------------------------------------------------------------------------
# HTTP request / response bodies
# ---------------------------------------------------------------------------


class BuildRouteRequest(BaseModel):
    """Request body for the /build-route endpoint."""

    provider: str = "graphhopper"
    start: Point
    finish: Point
    waypoints: list[Point] = []
    profile: str | None = None
    """Explicit provider profile. Wins over mobility_type/transport_mode."""

    mobility_type: MobilityType | None = None
    transport_mode: TransportMode | None = None
    avoid_stairs: bool = False
    optimize_waypoints: bool = False
    """Reorder waypoints by nearest neighbour before routing."""


class RouteProfileRequest(BaseModel):
    provider: str = "graphhopper"
    mobility_type: str | None = None
    transport_mode: str | None = None


class RouteProfileResponse(BaseModel):
    provider: str
    profile: str


class ApiKeyInstructionsResponse(BaseModel):
    provider: str
    instructions: str


class RouteDurationRequest(BaseModel):
    travel_duration_s: float = Field(ge=0)
    poi_count: int = Field(ge=0)
    travel_pace: TravelPace | None = None


class RouteDurationBreakdown(BaseModel):
    """Trip duration split into travel and visit time, in seconds."""

    total_s: float
    travel_s: float
    visit_s: float
    total_formatted: str
    travel_formatted: str
    visit_formatted: str


class ExportGeoJsonRequest(BaseModel):
    name: str = "Route"
    route: RouteData


class ProfileQuestionRequest(BaseModel):
    """Request body for /profile-setup/question."""

    profile: UserProfile
    history: list[ConversationTurn] = []


class ProfileQuestionResponse(BaseModel):
    field: str | None
    question: str | None
    is_complete: bool
    profile: UserProfile
    """The profile with any derived fields (e.g. avoid_stairs) filled in."""

    history: list[ConversationTurn]


class ProfileAnswerRequest(BaseModel):
    """Request body for /profile-setup/answer."""

    profile: UserProfile
    history: list[ConversationTurn] = []
    field: str
    answer: str


class ProfileAnswerResponse(BaseModel):
    success: bool
    error: str | None = None
    profile: UserProfile
    history: list[ConversationTurn]
    next_field: str | None
    is_complete: bool
    completion_percentage: int
