from __future__ import annotations

import math
from typing import Sequence

from src.domain.models import GeoPoint

EARTH_RADIUS_M = 6371000.0


def haversine_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters."""

    lat1 = math.radians(a.lat)
    lon1 = math.radians(a.lon)
    lat2 = math.radians(b.lat)
    lon2 = math.radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    s = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(s)))


def point_to_segment_distance_m(p: GeoPoint, a: GeoPoint, b: GeoPoint) -> float:
    """Distance from p to the segment a-b, in meters.

    The projection is done in a local equirectangular frame (longitude scaled
    by cos(lat)); the final distance is great-circle.
    """

    cos_lat = math.cos(math.radians((a.lat + b.lat) / 2.0))
    dx = (b.lon - a.lon) * cos_lat
    dy = b.lat - a.lat
    len_sq = dx * dx + dy * dy
    if len_sq == 0.0:
        return haversine_distance_m(p, a)

    px = (p.lon - a.lon) * cos_lat
    py = p.lat - a.lat
    t = max(0.0, min(1.0, (px * dx + py * dy) / len_sq))
    closest = GeoPoint(
        lat=a.lat + t * (b.lat - a.lat),
        lon=a.lon + t * (b.lon - a.lon),
    )
    return haversine_distance_m(p, closest)


def point_to_polyline_distance_m(p: GeoPoint, polyline: Sequence[GeoPoint]) -> float:
    if not polyline:
        return float("inf")
    if len(polyline) == 1:
        return haversine_distance_m(p, polyline[0])

    best = float("inf")
    for a, b in zip(polyline, polyline[1:]):
        d = point_to_segment_distance_m(p, a, b)
        if d < best:
            best = d
    return best


def polyline_distance_m(points: Sequence[GeoPoint]) -> float:
    if len(points) < 2:
        return 0.0
    total = 0.0
    for a, b in zip(points, points[1:]):
        total += float(haversine_distance_m(a, b))
    return float(total)


def paths_overlap(
    path_a: Sequence[GeoPoint],
    path_b: Sequence[GeoPoint],
    *,
    corridor_width_m: float,
    min_overlap_ratio: float,
) -> bool:
    """True if each path lies mostly inside the corridor around the other.

    Both directions must reach `min_overlap_ratio` of their points within
    `corridor_width_m`, so a short path contained in a long one does not
    count as the same detour.
    """

    if len(path_a) < 2 or len(path_b) < 2:
        return False

    def _ratio(points: Sequence[GeoPoint], other: Sequence[GeoPoint]) -> float:
        near = sum(
            1
            for p in points
            if point_to_polyline_distance_m(p, other) <= corridor_width_m
        )
        return near / len(points)

    return (
        _ratio(path_a, path_b) >= min_overlap_ratio
        and _ratio(path_b, path_a) >= min_overlap_ratio
    )


def simplify_path(
    points: Sequence[GeoPoint], *, min_spacing_m: float = 20.0
) -> tuple[GeoPoint, ...]:
    """Thin a GPS trail to points at least `min_spacing_m` apart.

    The first and last points are always kept so the simplified path spans
    the same extent as the raw trail.
    """

    if len(points) <= 2:
        return tuple(points)

    kept: list[GeoPoint] = [points[0]]
    for p in points[1:]:
        if haversine_distance_m(kept[-1], p) >= min_spacing_m:
            kept.append(p)

    if kept[-1] != points[-1]:
        kept.append(points[-1])
    return tuple(kept)


def path_centroid(points: Sequence[GeoPoint]) -> GeoPoint | None:
    if not points:
        return None
    return GeoPoint(
        lat=sum(p.lat for p in points) / len(points),
        lon=sum(p.lon for p in points) / len(points),
    )


def nearest_path_index(target: GeoPoint, points: Sequence[GeoPoint]) -> int:
    best_i = 0
    best_d = float("inf")
    for i, p in enumerate(points):
        d = haversine_distance_m(target, p)
        if d < best_d:
            best_d = d
            best_i = i
    return best_i
