from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .geo import GeoPoint


@dataclass(frozen=True, slots=True)
class RealtimeVehicle:
    """One vehicle position update from the realtime feed."""

    vehicle_id: str | None
    trip_id: str | None
    route_id: str | None
    lat: float
    lon: float
    direction_id: str | None = None
    bearing: float | None = None
    speed_mps: float | None = None
    timestamp: datetime | None = None
    stop_id: str | None = None

    @property
    def position(self) -> GeoPoint | None:
        return GeoPoint.maybe(self.lat, self.lon)
