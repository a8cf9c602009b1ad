from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from src.app.services.detour_detection_service import DetourDetectionService
from src.domain.models import GeoPoint, RealtimeVehicle, RouteShape


@dataclass(frozen=True, slots=True)
class Route12:
    """Route 12 runs due east along lat 45.0.

    At this latitude 0.001 deg of longitude is ~79 m and 0.001 deg of
    latitude is ~111 m.
    """

    t0: datetime = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
    shape: RouteShape = RouteShape(
        shape_id="S12",
        points=(GeoPoint(lat=45.0, lon=-75.0), GeoPoint(lat=45.0, lon=-74.97)),
    )
    # Parallel street 111 m north of the route, points ~157 m apart.
    detour_trail: tuple[tuple[float, float], ...] = (
        (45.001, -74.995),
        (45.001, -74.993),
        (45.001, -74.991),
        (45.001, -74.989),
    )
    before_detour: tuple[float, float] = (45.0, -74.999)
    after_detour: tuple[float, float] = (45.0, -74.985)
    # On the route, ~111 m from the centroid of the detour trail.
    near_centroid: tuple[float, float] = (45.0, -74.992)

    @property
    def shapes(self) -> dict[str, tuple[RouteShape, ...]]:
        return {"12": (self.shape,)}

    def trail_points(self) -> tuple[GeoPoint, ...]:
        return tuple(GeoPoint(lat=lat, lon=lon) for lat, lon in self.detour_trail)


def _make_vehicle(
    vehicle_id: str | None,
    lat: float,
    lon: float,
    *,
    route_id: str | None = "12",
    direction_id: str | None = "0",
    trip_id: str | None = None,
    timestamp: datetime | None = None,
) -> RealtimeVehicle:
    return RealtimeVehicle(
        vehicle_id=vehicle_id,
        trip_id=trip_id,
        route_id=route_id,
        direction_id=direction_id,
        lat=lat,
        lon=lon,
        timestamp=timestamp,
    )


@pytest.fixture
def route12() -> Route12:
    return Route12()


@pytest.fixture
def make_vehicle() -> Callable[..., RealtimeVehicle]:
    return _make_vehicle


@pytest.fixture
def drive_detour(route12: Route12) -> Callable[..., datetime]:
    """Drive one vehicle around the detour trail, 30 s per position.

    Returns the time at which the vehicle rejoined the route.
    """

    def _drive(
        service: DetourDetectionService,
        vehicle_id: str,
        start: datetime,
        *,
        direction_id: str | None = "0",
    ) -> datetime:
        positions = (route12.before_detour, *route12.detour_trail, route12.after_detour)
        now = start
        for i, (lat, lon) in enumerate(positions):
            now = start + timedelta(seconds=30 * i)
            service.process_vehicle(
                _make_vehicle(vehicle_id, lat, lon, direction_id=direction_id),
                route12.shapes,
                now=now,
            )
        return now

    return _drive
