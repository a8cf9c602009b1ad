from __future__ import annotations

from dataclasses import dataclass

from src.domain.models.geo import GeoPoint
from src.domain.models.stop import Stop


@dataclass(frozen=True, slots=True)
class StopTime:
    """A trip's visit to a stop (subset of GTFS stop_times.txt)."""

    trip_id: str
    stop_id: str
    stop_sequence: int


@dataclass(frozen=True, slots=True)
class GtfsTrip:
    trip_id: str
    route_id: str | None = None
    shape_id: str | None = None
    direction_id: str | None = None


@dataclass(frozen=True, slots=True)
class RouteShape:
    """One published shape variant of a route."""

    shape_id: str
    points: tuple[GeoPoint, ...]


@dataclass(frozen=True, slots=True)
class GtfsFeed:
    """In-memory representation of the subset of GTFS needed for detour detection."""

    stops_by_id: dict[str, Stop]
    stop_times: tuple[StopTime, ...]
    trips_by_id: dict[str, GtfsTrip]
    shapes_by_id: dict[str, tuple[GeoPoint, ...]]
