from __future__ import annotations

from datetime import datetime

from src.domain.algorithms.geo_utils import haversine_distance_m, path_centroid, paths_overlap
from src.domain.algorithms.off_route_tracker import ShapeMatch
from src.domain.algorithms.pending_paths import Corroboration, longer_path
from src.domain.models import (
    ConfidenceLevel,
    Detour,
    DetourState,
    DetourStatus,
    GeoPoint,
    VehicleEvidence,
)
from src.domain.models.config import (
    ClearingThresholds,
    ConfidenceThresholds,
    RouteDetourSettings,
)

# (min distinct vehicles, base score), highest first.
_BASE_SCORES: tuple[tuple[int, int], ...] = ((5, 92), (4, 85), (3, 75), (2, 65))
_SINGLE_VEHICLE_SCORE = 40

_FRESH_WINDOW_S = 5 * 60
_FRESH_BONUS = 5
_RECENT_WINDOW_S = 15 * 60
_RECENT_BONUS = 2
_ALERT_BONUS = 8

# Clearing vehicles must pass within this multiple of the corridor width of
# the detour centroid.
CLEARING_RADIUS_CORRIDOR_MULTIPLIER = 3.0


def distinct_vehicle_count(detour: Detour) -> int:
    return len(detour.confirming_vehicle_ids)


def confidence_score(detour: Detour, *, now: datetime) -> int:
    vehicles = distinct_vehicle_count(detour)
    score = _SINGLE_VEHICLE_SCORE
    for min_vehicles, base in _BASE_SCORES:
        if vehicles >= min_vehicles:
            score = base
            break

    age_s = (now - detour.last_seen_at).total_seconds()
    if age_s <= _FRESH_WINDOW_S:
        score += _FRESH_BONUS
    elif age_s <= _RECENT_WINDOW_S:
        score += _RECENT_BONUS

    if detour.official_alert is not None:
        score += _ALERT_BONUS

    return max(0, min(100, score))


def confidence_level(score: float, thresholds: ConfidenceThresholds) -> ConfidenceLevel:
    if score >= thresholds.high:
        return ConfidenceLevel.HIGH_CONFIDENCE
    if score >= thresholds.likely:
        return ConfidenceLevel.LIKELY
    return ConfidenceLevel.SUSPECTED


def refresh_confidence(
    detour: Detour, *, settings: RouteDetourSettings, now: datetime
) -> Detour:
    """Recompute the derived evidence count, score and tier of a detour."""

    detour.evidence_count = distinct_vehicle_count(detour)
    detour.confidence_score = confidence_score(detour, now=now)
    detour.confidence_level = confidence_level(
        detour.confidence_score, settings.confidence_thresholds
    )
    return detour


def _find_overlapping_detour(
    state: DetourState,
    key: str,
    path: tuple[GeoPoint, ...],
    settings: RouteDetourSettings,
) -> Detour | None:
    for detour in list(state.active_detours.values()):
        if detour.route_key != key or detour.status is not DetourStatus.SUSPECTED:
            continue
        if paths_overlap(
            path,
            detour.polyline,
            corridor_width_m=settings.corridor_width_m,
            min_overlap_ratio=settings.path_overlap_ratio,
        ):
            return detour
    return None


def promote_corroborated_path(
    state: DetourState,
    corroboration: Corroboration,
    *,
    settings: RouteDetourSettings,
    now: datetime,
) -> tuple[Detour, bool]:
    """Merge corroborated evidence into a matching detour or create one.

    Returns the detour and whether it was newly created.
    """

    completed = corroboration.completed
    pending = corroboration.pending

    existing = _find_overlapping_detour(state, completed.route_key, completed.path, settings)
    if existing is not None:
        existing.last_seen_at = now
        for vehicle_id in corroboration.vehicle_ids:
            recently_confirmed = any(
                e.vehicle_id == vehicle_id
                and (now - e.timestamp).total_seconds() < settings.pending_path_expiry_s
                for e in existing.confirmed_by
            )
            if not recently_confirmed:
                existing.confirmed_by.append(
                    VehicleEvidence(vehicle_id=vehicle_id, timestamp=now)
                )
        return refresh_confidence(existing, settings=settings, now=now), False

    polyline = longer_path(completed.path, pending.path)
    evidence = [VehicleEvidence(vehicle_id=pending.vehicle_id, timestamp=pending.created_at)]
    for vehicle_id in corroboration.vehicle_ids:
        if vehicle_id != pending.vehicle_id:
            evidence.append(VehicleEvidence(vehicle_id=vehicle_id, timestamp=now))

    detour = Detour(
        id=state.next_detour_id(now),
        route_id=completed.route_id,
        direction_id=completed.direction_id,
        route_key=completed.route_key,
        polyline=polyline,
        centroid=path_centroid(polyline),
        first_detected_at=pending.created_at,
        last_seen_at=now,
        confirmed_by=evidence,
    )
    refresh_confidence(detour, settings=settings, now=now)
    state.active_detours[detour.id] = detour
    return detour, True


def clearing_threshold(detour: Detour, thresholds: ClearingThresholds) -> int:
    """On-route vehicles needed to clear, never more than confirmed it."""

    if detour.confidence_level is ConfidenceLevel.HIGH_CONFIDENCE:
        required = thresholds.high_confidence
    elif detour.confidence_level is ConfidenceLevel.LIKELY:
        required = thresholds.likely
    else:
        required = thresholds.suspected

    evidence_count = detour.evidence_count or distinct_vehicle_count(detour)
    return min(required, evidence_count)


def record_clearing_observation(
    state: DetourState,
    *,
    vehicle_id: str,
    key: str,
    point: GeoPoint,
    match: ShapeMatch,
    settings: RouteDetourSettings,
    now: datetime,
) -> list[Detour]:
    """Count an on-route vehicle as clearing evidence for nearby detours.

    Returns the detours that transitioned to cleared on this observation.
    """

    if match.is_off_route:
        return []

    radius_m = settings.corridor_width_m * CLEARING_RADIUS_CORRIDOR_MULTIPLIER
    window_s = settings.clearing_evidence_window_s
    cleared: list[Detour] = []

    for detour in list(state.active_detours.values()):
        if detour.route_key != key or detour.status is not DetourStatus.SUSPECTED:
            continue
        if detour.centroid is None:
            continue
        if haversine_distance_m(point, detour.centroid) >= radius_m:
            continue

        detour.clearing_evidence = [
            e
            for e in detour.clearing_evidence
            if (now - e.timestamp).total_seconds() < window_s
        ]
        if all(e.vehicle_id != vehicle_id for e in detour.clearing_evidence):
            detour.clearing_evidence.append(
                VehicleEvidence(vehicle_id=vehicle_id, timestamp=now)
            )

        clearing_vehicles = len({e.vehicle_id for e in detour.clearing_evidence})
        if clearing_vehicles >= clearing_threshold(detour, settings.clearing_thresholds):
            detour.status = DetourStatus.CLEARED
            detour.cleared_at = now
            detour.cleared_by_vehicle = vehicle_id
            detour.cleared_by_evidence_count = clearing_vehicles
            refresh_confidence(detour, settings=settings, now=now)
            cleared.append(detour)

    return cleared
