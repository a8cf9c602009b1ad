from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .geo import GeoPoint


class DetourStatus(str, Enum):
    SUSPECTED = "suspected"
    CLEARED = "cleared"


class ConfidenceLevel(str, Enum):
    SUSPECTED = "suspected"
    LIKELY = "likely"
    HIGH_CONFIDENCE = "high-confidence"


class ArchiveReason(str, Enum):
    CLEARED = "cleared"
    EXPIRED = "expired"
    EXPIRED_MAX_RETENTION = "expired_max_retention"


def route_key(route_id: str, direction_id: str | None) -> str:
    return f"{route_id}_{direction_id if direction_id is not None else 'unknown'}"


@dataclass(frozen=True, slots=True)
class Breadcrumb:
    """An off-route position recorded while a vehicle is away from its shape."""

    point: GeoPoint
    timestamp: datetime
    matched_shape_id: str | None
    off_route_distance_m: float


@dataclass(slots=True)
class VehicleTrackingRecord:
    vehicle_id: str
    trip_id: str | None
    route_id: str
    direction_id: str | None
    last_update_at: datetime
    is_off_route: bool = False
    breadcrumbs: list[Breadcrumb] = field(default_factory=list)
    off_route_started_at: datetime | None = None
    last_matched_shape_id: str | None = None

    @property
    def route_key(self) -> str:
        return route_key(self.route_id, self.direction_id)


@dataclass(frozen=True, slots=True)
class CompletedOffRoutePath:
    """A closed, filtered off-route trail ready for corroboration."""

    vehicle_id: str
    route_id: str
    direction_id: str | None
    route_key: str
    path: tuple[GeoPoint, ...]
    duration_s: float
    completed_at: datetime


@dataclass(slots=True)
class PendingPath:
    """An off-route path seen by one vehicle, waiting for a second."""

    vehicle_id: str
    path: tuple[GeoPoint, ...]
    created_at: datetime
    route_id: str
    direction_id: str | None
    matched_vehicles: list[str] = field(default_factory=list)
    match_count: int = 1


@dataclass(frozen=True, slots=True)
class VehicleEvidence:
    vehicle_id: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class OfficialAlertMatch:
    alert_id: str
    title: str
    effect: str
    severity: str
    matched_at: datetime

    @property
    def matched(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class AffectedStop:
    stop_id: str
    name: str
    code: str
    distance_m: int
    location: GeoPoint


@dataclass(frozen=True, slots=True)
class ServiceAlert:
    """Official service alert (subset of a GTFS-RT Alert entity)."""

    alert_id: str
    title: str
    effect: str
    severity: str = "low"
    affected_routes: tuple[str, ...] = ()
    description: str = ""


@dataclass(slots=True)
class Detour:
    """A suspected or cleared route deviation corroborated by several vehicles.

    `evidence_count`, `confidence_score` and `confidence_level` are derived
    values maintained by the lifecycle manager; do not assign them elsewhere.
    """

    id: str
    route_id: str
    direction_id: str | None
    route_key: str
    polyline: tuple[GeoPoint, ...]
    centroid: GeoPoint | None
    first_detected_at: datetime
    last_seen_at: datetime
    confirmed_by: list[VehicleEvidence] = field(default_factory=list)
    status: DetourStatus = DetourStatus.SUSPECTED
    evidence_count: int = 0
    confidence_score: int = 0
    confidence_level: ConfidenceLevel = ConfidenceLevel.SUSPECTED
    official_alert: OfficialAlertMatch | None = None
    last_alert_check_at: datetime | None = None
    affected_stops: tuple[AffectedStop, ...] = ()
    segment_label: str | None = None
    clearing_evidence: list[VehicleEvidence] = field(default_factory=list)
    cleared_at: datetime | None = None
    cleared_by_vehicle: str | None = None
    cleared_by_evidence_count: int | None = None

    @property
    def confirming_vehicle_ids(self) -> set[str]:
        return {e.vehicle_id for e in self.confirmed_by}

    @property
    def is_active(self) -> bool:
        return self.status is DetourStatus.SUSPECTED


@dataclass(frozen=True, slots=True)
class ArchivedDetour:
    detour: Detour
    archived_at: datetime
    reason: ArchiveReason

    @property
    def route_id(self) -> str:
        return self.detour.route_id


@dataclass(slots=True)
class DetourState:
    """All mutable detection state for one deployment.

    Owned by the caller and passed explicitly to every component. The lock
    guards the id counter and the history list, which are shared across
    route keys.
    """

    vehicle_tracking: dict[str, VehicleTrackingRecord] = field(default_factory=dict)
    pending_paths: dict[str, list[PendingPath]] = field(default_factory=dict)
    active_detours: dict[str, Detour] = field(default_factory=dict)
    history: list[ArchivedDetour] = field(default_factory=list)
    id_counter: int = 0

    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def next_detour_id(self, now: datetime) -> str:
        with self._lock:
            self.id_counter += 1
            return f"detour_{int(now.timestamp() * 1000)}_{self.id_counter}"

    def archive(
        self, detour: Detour, *, reason: ArchiveReason, now: datetime, limit: int
    ) -> ArchivedDetour:
        entry = ArchivedDetour(
            detour=copy.deepcopy(detour), archived_at=now, reason=reason
        )
        with self._lock:
            self.active_detours.pop(detour.id, None)
            self.history.insert(0, entry)
            del self.history[limit:]
        return entry
