from __future__ import annotations

from datetime import datetime, timedelta

from src.domain.algorithms.pending_paths import (
    longer_path,
    match_pending_path,
    prune_pending_paths,
)
from src.domain.models import CompletedOffRoutePath, DetourState, GeoPoint
from src.domain.models.config import DetourConfig

SETTINGS = DetourConfig().defaults()


def _path(lat: float, lons: list[float]) -> tuple[GeoPoint, ...]:
    return tuple(GeoPoint(lat=lat, lon=lon) for lon in lons)


TRAIL = _path(45.001, [-74.995, -74.993, -74.991, -74.989])
ELSEWHERE = _path(44.99, [-74.995, -74.993, -74.991, -74.989])


def _completed(
    vehicle_id: str, path: tuple[GeoPoint, ...], at: datetime
) -> CompletedOffRoutePath:
    return CompletedOffRoutePath(
        vehicle_id=vehicle_id,
        route_id="12",
        direction_id="0",
        route_key="12_0",
        path=path,
        duration_s=120.0,
        completed_at=at,
    )


def test_first_path_becomes_pending(route12) -> None:
    state = DetourState()

    result = match_pending_path(
        state, _completed("A", TRAIL, route12.t0), settings=SETTINGS, now=route12.t0
    )

    assert result is None
    (pending,) = state.pending_paths["12_0"]
    assert pending.vehicle_id == "A"
    assert pending.match_count == 1
    assert pending.matched_vehicles == ["A"]


def test_second_vehicle_corroborates_and_removes_pending(route12) -> None:
    state = DetourState()
    t = route12.t0
    match_pending_path(state, _completed("A", TRAIL, t), settings=SETTINGS, now=t)

    later = t + timedelta(minutes=2)
    result = match_pending_path(
        state, _completed("B", TRAIL, later), settings=SETTINGS, now=later
    )

    assert result is not None
    assert result.vehicle_ids == ("A", "B")
    assert result.pending.vehicle_id == "A"
    assert "12_0" not in state.pending_paths


def test_same_vehicle_twice_never_corroborates(route12) -> None:
    state = DetourState()
    t = route12.t0
    longer = _path(45.001, [-74.997, -74.995, -74.993, -74.991, -74.989])

    match_pending_path(state, _completed("A", TRAIL, t), settings=SETTINGS, now=t)
    later = t + timedelta(minutes=5)
    result = match_pending_path(
        state, _completed("A", longer, later), settings=SETTINGS, now=later
    )

    assert result is None
    (pending,) = state.pending_paths["12_0"]
    assert pending.match_count == 1
    assert pending.path == longer
    assert pending.created_at == later


def test_non_overlapping_paths_stay_separate(route12) -> None:
    state = DetourState()
    t = route12.t0

    match_pending_path(state, _completed("A", TRAIL, t), settings=SETTINGS, now=t)
    result = match_pending_path(
        state, _completed("B", ELSEWHERE, t), settings=SETTINGS, now=t
    )

    assert result is None
    assert [p.vehicle_id for p in state.pending_paths["12_0"]] == ["A", "B"]


def test_expired_pending_paths_are_pruned(route12) -> None:
    state = DetourState()
    t = route12.t0
    match_pending_path(state, _completed("A", TRAIL, t), settings=SETTINGS, now=t)

    # Older than the 30 min pending-path expiry: B starts a new pending path.
    later = t + timedelta(minutes=31)
    result = match_pending_path(
        state, _completed("B", TRAIL, later), settings=SETTINGS, now=later
    )

    assert result is None
    assert [p.vehicle_id for p in state.pending_paths["12_0"]] == ["B"]

    prune_pending_paths(state, "12_0", settings=SETTINGS, now=later + timedelta(hours=1))
    assert "12_0" not in state.pending_paths


def test_longer_path_ties_favour_candidate() -> None:
    a = _path(45.0, [-75.0, -74.99])
    b = _path(45.1, [-75.0, -74.99])
    c = _path(45.2, [-75.0, -74.99, -74.98])

    assert longer_path(a, b) is a
    assert longer_path(a, c) is c
