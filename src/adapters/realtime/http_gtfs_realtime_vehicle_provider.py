from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from google.transit import gtfs_realtime_pb2

from src.adapters.realtime.gtfs_rt_http import CachedFeed
from src.app.ports.output import IRealtimeVehicleProvider
from src.domain.models.realtime import RealtimeVehicle


def parse_vehicle_positions(
    feed: gtfs_realtime_pb2.FeedMessage,
) -> tuple[RealtimeVehicle, ...]:
    out: list[RealtimeVehicle] = []

    for ent in feed.entity:
        if not ent.HasField("vehicle"):
            continue

        v = ent.vehicle
        if not v.HasField("position"):
            continue

        pos = v.position

        trip_id = None
        route_id = None
        direction_id = None
        if v.HasField("trip"):
            trip_id = v.trip.trip_id or None
            route_id = v.trip.route_id or None
            if v.trip.HasField("direction_id"):
                direction_id = str(v.trip.direction_id)

        vehicle_id = None
        if v.HasField("vehicle"):
            vehicle_id = v.vehicle.id or v.vehicle.label or None
        vehicle_id = vehicle_id or ent.id or None

        bearing = float(pos.bearing) if pos.HasField("bearing") else None
        speed = float(pos.speed) if pos.HasField("speed") else None

        timestamp = None
        if v.HasField("timestamp") and int(v.timestamp) > 0:
            timestamp = datetime.fromtimestamp(int(v.timestamp), tz=timezone.utc)

        out.append(
            RealtimeVehicle(
                vehicle_id=vehicle_id,
                trip_id=trip_id,
                route_id=route_id,
                direction_id=direction_id,
                lat=float(pos.latitude),
                lon=float(pos.longitude),
                bearing=bearing,
                speed_mps=speed,
                timestamp=timestamp,
                stop_id=v.stop_id or None,
            )
        )

    return tuple(out)


@dataclass(slots=True)
class HttpGtfsRealtimeVehicleProvider(IRealtimeVehicleProvider):
    """Fetches a GTFS-Realtime VehiclePositions feed over HTTP.

    Env vars:
      - GTFS_RT_VEHICLE_POSITIONS_URL: URL to a GTFS-RT VehiclePositions feed
      - GTFS_RT_HEADERS, GTFS_RT_TIMEOUT_S, GTFS_RT_CACHE_TTL_S (default 10)

    Notes:
      - If URL is not configured, returns an empty tuple.
      - HTTP and decode errors propagate to the caller.
    """

    url: str | None = None
    headers_raw: str | None = None
    timeout_s: float = 10.0
    cache_ttl_s: float = 10.0

    _feed: CachedFeed = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._feed = CachedFeed.from_env(
            "GTFS_RT_VEHICLE_POSITIONS_URL",
            url=self.url,
            headers_raw=self.headers_raw,
            timeout_s=self.timeout_s,
            ttl_s=self.cache_ttl_s,
        )

    async def list_vehicles(self) -> tuple[RealtimeVehicle, ...]:
        feed = await self._feed.get()
        if feed is None:
            return ()
        return parse_vehicle_positions(feed)
