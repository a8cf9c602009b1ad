from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from src.domain.algorithms.geo_utils import (
    haversine_distance_m,
    point_to_polyline_distance_m,
    polyline_distance_m,
    simplify_path,
)
from src.domain.models import (
    Breadcrumb,
    CompletedOffRoutePath,
    DetourState,
    GeoPoint,
    RouteShape,
    VehicleTrackingRecord,
    route_key,
)
from src.domain.models.config import RouteDetourSettings

# Consecutive breadcrumbs closer than this are GPS jitter, not movement.
BREADCRUMB_MIN_SPACING_M = 10.0

# Simplified off-route paths shorter than this are noise clusters.
MIN_DETOUR_PATH_LENGTH_M = 150.0


@dataclass(frozen=True, slots=True)
class ShapeMatch:
    """Where a vehicle sits relative to its route's candidate shapes."""

    shape_id: str | None
    distance_m: float
    is_off_route: bool


def candidate_shapes(shapes: Sequence[RouteShape] | None) -> tuple[RouteShape, ...]:
    if not shapes:
        return ()
    return tuple(s for s in shapes if len(s.points) >= 2)


def match_shape(
    point: GeoPoint, shapes: Sequence[RouteShape], settings: RouteDetourSettings
) -> ShapeMatch | None:
    """Nearest candidate shape for a point; None when the route has no shapes."""

    best: RouteShape | None = None
    best_d = float("inf")
    for shape in candidate_shapes(shapes):
        d = point_to_polyline_distance_m(point, shape.points)
        if d < best_d:
            best_d = d
            best = shape

    if best is None:
        return None
    return ShapeMatch(
        shape_id=best.shape_id,
        distance_m=best_d,
        is_off_route=best_d > settings.off_route_threshold_m,
    )


def update_vehicle_tracking(
    state: DetourState,
    *,
    vehicle_id: str,
    trip_id: str | None,
    route_id: str,
    direction_id: str | None,
    point: GeoPoint,
    match: ShapeMatch,
    settings: RouteDetourSettings,
    now: datetime,
) -> CompletedOffRoutePath | None:
    """Advance one vehicle's off-route state machine by a single position.

    Returns a completed off-route path when the vehicle has just rejoined its
    route after an excursion that survives `close_off_route_path`.
    """

    record = state.vehicle_tracking.get(vehicle_id)
    key = route_key(route_id, direction_id)
    if record is None or record.route_key != key:
        # New vehicle, or it moved to another route/direction: an open trail
        # from the previous assignment must not leak into this one.
        record = VehicleTrackingRecord(
            vehicle_id=vehicle_id,
            trip_id=trip_id,
            route_id=route_id,
            direction_id=direction_id,
            last_update_at=now,
            last_matched_shape_id=match.shape_id,
        )
        state.vehicle_tracking[vehicle_id] = record

    record.trip_id = trip_id
    record.last_update_at = now

    if match.is_off_route:
        if not record.is_off_route:
            record.is_off_route = True
            record.off_route_started_at = now
            record.breadcrumbs = []

        last = record.breadcrumbs[-1] if record.breadcrumbs else None
        if last is None or (
            haversine_distance_m(last.point, point) >= BREADCRUMB_MIN_SPACING_M
        ):
            record.breadcrumbs.append(
                Breadcrumb(
                    point=point,
                    timestamp=now,
                    matched_shape_id=match.shape_id,
                    off_route_distance_m=match.distance_m,
                )
            )
        record.last_matched_shape_id = match.shape_id
        return None

    completed = None
    if record.is_off_route:
        completed = close_off_route_path(record, settings=settings, now=now)
        record.is_off_route = False
        record.breadcrumbs = []
        record.off_route_started_at = None

    record.last_matched_shape_id = match.shape_id or record.last_matched_shape_id
    return completed


def close_off_route_path(
    record: VehicleTrackingRecord, *, settings: RouteDetourSettings, now: datetime
) -> CompletedOffRoutePath | None:
    """Turn a closed breadcrumb trail into a completed path, or reject it.

    Rejected: too few breadcrumbs, too short in time, or a simplified path
    under MIN_DETOUR_PATH_LENGTH_M.
    """

    crumbs = record.breadcrumbs
    if len(crumbs) < settings.min_off_route_points:
        return None

    started_at = record.off_route_started_at or crumbs[0].timestamp
    duration_s = (now - started_at).total_seconds()
    if duration_s < settings.min_off_route_duration_s:
        return None

    path = simplify_path([c.point for c in crumbs])
    if polyline_distance_m(path) < MIN_DETOUR_PATH_LENGTH_M:
        return None

    return CompletedOffRoutePath(
        vehicle_id=record.vehicle_id,
        route_id=record.route_id,
        direction_id=record.direction_id,
        route_key=record.route_key,
        path=path,
        duration_s=duration_s,
        completed_at=now,
    )
