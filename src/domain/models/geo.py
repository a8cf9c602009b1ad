from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class GeoPoint:
    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.lat <= 90.0):
            raise ValueError(f"Invalid latitude: {self.lat}")
        if not (-180.0 <= self.lon <= 180.0):
            raise ValueError(f"Invalid longitude: {self.lon}")

    @staticmethod
    def maybe(lat: float | None, lon: float | None) -> GeoPoint | None:
        """Build a point from untrusted feed values, or None if unusable.

        Feeds occasionally publish 0/0, NaN or out-of-range coordinates for
        vehicles without a GPS fix.
        """

        if lat is None or lon is None:
            return None
        try:
            lat_f = float(lat)
            lon_f = float(lon)
        except (TypeError, ValueError):
            return None
        if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
            return None
        if lat_f == 0.0 and lon_f == 0.0:
            return None
        if not (-90.0 <= lat_f <= 90.0) or not (-180.0 <= lon_f <= 180.0):
            return None
        return GeoPoint(lat=lat_f, lon=lon_f)
