from __future__ import annotations

import dataclasses
from collections import Counter
from dataclasses import dataclass, field

from src.app.ports.output import IGtfsRepository
from src.domain.models import RealtimeVehicle, RouteShape, Stop
from src.domain.models.gtfs import GtfsFeed


@dataclass(slots=True)
class TransitNetworkService:
    """Static-network lookups the detour engine needs, derived from GTFS.

    - route_id -> shape variants (every distinct shape used by the route's
      trips, most used first)
    - route_id -> ids of stops served by the route
    - trip_id -> direction_id

    The feed is loaded once and cached; call `reload()` after a feed update.
    """

    gtfs_repository: IGtfsRepository

    _feed: GtfsFeed | None = field(default=None, init=False, repr=False)
    _route_shapes: dict[str, tuple[RouteShape, ...]] | None = field(
        default=None, init=False, repr=False
    )
    _route_stop_ids: dict[str, frozenset[str]] | None = field(
        default=None, init=False, repr=False
    )

    def feed(self) -> GtfsFeed:
        if self._feed is None:
            self._feed = self.gtfs_repository.load_feed()
        return self._feed

    def reload(self) -> None:
        self._feed = None
        self._route_shapes = None
        self._route_stop_ids = None

    def route_shapes(self) -> dict[str, tuple[RouteShape, ...]]:
        if self._route_shapes is not None:
            return self._route_shapes

        feed = self.feed()
        counts: dict[str, Counter[str]] = {}
        for trip in feed.trips_by_id.values():
            if not trip.route_id or not trip.shape_id:
                continue
            pts = feed.shapes_by_id.get(trip.shape_id)
            if not pts or len(pts) < 2:
                continue
            counts.setdefault(trip.route_id, Counter())[trip.shape_id] += 1

        self._route_shapes = {
            route_id: tuple(
                RouteShape(shape_id=shape_id, points=feed.shapes_by_id[shape_id])
                for shape_id, _ in shape_counts.most_common()
            )
            for route_id, shape_counts in counts.items()
        }
        return self._route_shapes

    def shapes_for_route(self, route_id: str) -> tuple[RouteShape, ...]:
        return self.route_shapes().get(route_id, ())

    def route_stop_ids(self) -> dict[str, frozenset[str]]:
        if self._route_stop_ids is not None:
            return self._route_stop_ids

        feed = self.feed()
        out: dict[str, set[str]] = {}
        for st in feed.stop_times:
            trip = feed.trips_by_id.get(st.trip_id)
            if trip is None or not trip.route_id:
                continue
            out.setdefault(trip.route_id, set()).add(st.stop_id)

        self._route_stop_ids = {k: frozenset(v) for k, v in out.items()}
        return self._route_stop_ids

    def stops(self) -> tuple[Stop, ...]:
        return tuple(self.feed().stops_by_id.values())

    def trip_direction(self, trip_id: str | None) -> str | None:
        if not trip_id:
            return None
        trip = self.feed().trips_by_id.get(trip_id)
        return trip.direction_id if trip is not None else None

    def with_direction(self, vehicle: RealtimeVehicle) -> RealtimeVehicle:
        """Fill a missing direction_id from the vehicle's scheduled trip."""

        if vehicle.direction_id is not None:
            return vehicle
        direction = self.trip_direction(vehicle.trip_id)
        if direction is None:
            return vehicle
        return dataclasses.replace(vehicle, direction_id=direction)
