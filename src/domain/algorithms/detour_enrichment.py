from __future__ import annotations

from datetime import datetime
from typing import Collection, Iterable, Sequence

from src.domain.algorithms.detour_lifecycle import refresh_confidence
from src.domain.algorithms.geo_utils import nearest_path_index, point_to_polyline_distance_m
from src.domain.models import (
    AffectedStop,
    Detour,
    DetourStatus,
    OfficialAlertMatch,
    ServiceAlert,
    Stop,
)
from src.domain.models.config import RouteDetourSettings

# Official alert effects that describe a route running off its usual path.
DETOUR_ALERT_EFFECTS = frozenset(
    {"Detour", "Modified Service", "No Service", "Reduced Service"}
)


def find_correlating_alert(
    detour: Detour, alerts: Iterable[ServiceAlert]
) -> ServiceAlert | None:
    for alert in alerts:
        if detour.route_id in alert.affected_routes and alert.effect in DETOUR_ALERT_EFFECTS:
            return alert
    return None


def correlate_detour_with_alerts(
    detour: Detour,
    alerts: Sequence[ServiceAlert],
    *,
    settings: RouteDetourSettings,
    now: datetime,
) -> bool:
    """Attach (or detach) the official alert backing a suspected detour.

    Cleared detours are left untouched. Returns True if an alert is attached
    after the call.
    """

    if detour.status is not DetourStatus.SUSPECTED:
        return detour.official_alert is not None

    alert = find_correlating_alert(detour, alerts)
    if alert is None:
        detour.official_alert = None
    else:
        detour.official_alert = OfficialAlertMatch(
            alert_id=alert.alert_id,
            title=alert.title,
            effect=alert.effect,
            severity=alert.severity,
            matched_at=now,
        )
    detour.last_alert_check_at = now
    refresh_confidence(detour, settings=settings, now=now)
    return detour.official_alert is not None


def segment_label(stops: Sequence[AffectedStop]) -> str | None:
    if not stops:
        return None
    if len(stops) == 1:
        return f"Near {stops[0].name}"
    return f"{stops[0].name} to {stops[-1].name}"


def affected_stops(
    detour: Detour,
    stops: Iterable[Stop],
    route_stop_ids: Collection[str],
    *,
    settings: RouteDetourSettings,
) -> tuple[AffectedStop, ...]:
    """Stops of the detour's route lying within the match radius of its path.

    Ordered along the detour polyline (nearest vertex), then by distance.
    When the route has no known stops, every stop is a candidate.
    """

    if len(detour.polyline) < 2:
        return ()

    scored: list[tuple[int, float, Stop]] = []
    for stop in stops:
        if route_stop_ids and stop.id not in route_stop_ids:
            continue
        d = point_to_polyline_distance_m(stop.location, detour.polyline)
        if d > settings.stop_match_radius_m:
            continue
        scored.append((nearest_path_index(stop.location, detour.polyline), d, stop))

    scored.sort(key=lambda x: (x[0], x[1]))
    return tuple(
        AffectedStop(
            stop_id=stop.id,
            name=stop.name or f"Stop {stop.id}",
            code=stop.code or stop.id,
            distance_m=round(d),
            location=stop.location,
        )
        for _, d, stop in scored[: settings.max_affected_stops]
    )


def enrich_detour_with_route_context(
    detour: Detour,
    stops: Iterable[Stop],
    route_stop_ids: Collection[str],
    *,
    settings: RouteDetourSettings,
) -> Detour:
    """Fill in rider-facing affected stops and segment label."""

    if len(detour.polyline) < 2:
        return detour
    found = affected_stops(detour, stops, route_stop_ids, settings=settings)
    detour.affected_stops = found
    detour.segment_label = segment_label(found)
    return detour
