from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from src.domain.algorithms.geo_utils import paths_overlap
from src.domain.models import CompletedOffRoutePath, DetourState, GeoPoint, PendingPath
from src.domain.models.config import RouteDetourSettings

# Distinct vehicles needed before a pending path becomes a detour.
MIN_CORROBORATING_VEHICLES = 2


@dataclass(frozen=True, slots=True)
class Corroboration:
    """Two or more vehicles observed overlapping off-route geometry."""

    completed: CompletedOffRoutePath
    pending: PendingPath
    vehicle_ids: tuple[str, ...]


def longer_path(
    candidate: tuple[GeoPoint, ...], incumbent: tuple[GeoPoint, ...]
) -> tuple[GeoPoint, ...]:
    """Pick the path with more points; ties go to `candidate`."""

    return candidate if len(candidate) >= len(incumbent) else incumbent


def prune_pending_paths(
    state: DetourState, key: str, *, settings: RouteDetourSettings, now: datetime
) -> list[PendingPath]:
    kept = [
        p
        for p in state.pending_paths.get(key, [])
        if (now - p.created_at).total_seconds() < settings.pending_path_expiry_s
    ]
    if kept:
        state.pending_paths[key] = kept
    else:
        state.pending_paths.pop(key, None)
    return kept


def match_pending_path(
    state: DetourState,
    completed: CompletedOffRoutePath,
    *,
    settings: RouteDetourSettings,
    now: datetime,
) -> Corroboration | None:
    """Match a completed path against its route key's pending paths.

    First overlapping pending path wins. Returns a Corroboration once the
    pending path has been seen by MIN_CORROBORATING_VEHICLES distinct
    vehicles; that pending path is then removed. Otherwise the path is
    merged into (or added as) a pending path and None is returned.
    """

    key = completed.route_key
    pending_list = prune_pending_paths(state, key, settings=settings, now=now)

    for pending in pending_list:
        if not paths_overlap(
            completed.path,
            pending.path,
            corridor_width_m=settings.corridor_width_m,
            min_overlap_ratio=settings.path_overlap_ratio,
        ):
            continue

        matched = pending.matched_vehicles or [pending.vehicle_id]
        if completed.vehicle_id not in matched:
            matched.append(completed.vehicle_id)
        pending.matched_vehicles = matched
        pending.match_count = len(matched)

        if pending.match_count >= MIN_CORROBORATING_VEHICLES:
            pending_list.remove(pending)
            if not pending_list:
                state.pending_paths.pop(key, None)
            return Corroboration(
                completed=completed, pending=pending, vehicle_ids=tuple(matched)
            )

        # Same vehicle repeating its own excursion: keep waiting.
        if len(completed.path) > len(pending.path):
            pending.path = completed.path
        pending.created_at = now
        return None

    state.pending_paths.setdefault(key, []).append(
        PendingPath(
            vehicle_id=completed.vehicle_id,
            path=completed.path,
            created_at=now,
            route_id=completed.route_id,
            direction_id=completed.direction_id,
            matched_vehicles=[completed.vehicle_id],
            match_count=1,
        )
    )
    return None
