from __future__ import annotations

import copy
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Collection, Iterable, Mapping, Sequence

from src.domain.algorithms.detour_enrichment import (
    correlate_detour_with_alerts,
    enrich_detour_with_route_context,
)
from src.domain.algorithms.detour_expiry import sweep_expired
from src.domain.algorithms.detour_lifecycle import (
    promote_corroborated_path,
    record_clearing_observation,
)
from src.domain.algorithms.off_route_tracker import match_shape, update_vehicle_tracking
from src.domain.algorithms.pending_paths import match_pending_path
from src.domain.exceptions import DetourNotFound
from src.domain.models import (
    ArchivedDetour,
    Detour,
    DetourState,
    RealtimeVehicle,
    RouteShape,
    ServiceAlert,
    Stop,
    route_key,
)
from src.domain.models.config import DetourConfig, normalize_route_id

logger = logging.getLogger(__name__)

RouteShapes = Mapping[str, Sequence[RouteShape]]


@dataclass(frozen=True, slots=True)
class VehicleOutcome:
    """What one vehicle update changed in the detour set."""

    vehicle_id: str
    detour: Detour | None = None
    created: bool = False
    cleared: tuple[Detour, ...] = ()


@dataclass(slots=True)
class _RouteKeyLocks:
    _locks: dict[str, threading.Lock] = field(default_factory=dict)
    _guard: threading.Lock = field(default_factory=threading.Lock)

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sort_key(detour: Detour) -> tuple[int, float]:
    return (detour.confidence_score, detour.last_seen_at.timestamp())


def latest_per_vehicle(vehicles: Iterable[RealtimeVehicle]) -> list[RealtimeVehicle]:
    """Collapse a batch to one update per vehicle, preferring the newest fix."""

    latest: dict[str, RealtimeVehicle] = {}
    untimed = datetime.min.replace(tzinfo=timezone.utc)
    for v in vehicles:
        if not v.vehicle_id:
            continue
        prev = latest.get(v.vehicle_id)
        if prev is None or (v.timestamp or untimed) >= (prev.timestamp or untimed):
            latest[v.vehicle_id] = v
    return list(latest.values())


@dataclass(slots=True)
class DetourDetectionService:
    """Detects route detours from batches of realtime vehicle positions.

    Owns one DetourState (pass your own to restore or inspect it). Tracking a
    vehicle touches only that vehicle's record, so batches may be processed on
    several threads; everything that mutates pending paths or detours of a
    route key runs under that key's lock.

    `sweep()` must be called periodically. Nothing else evicts stale vehicles,
    pending paths or detours, and state grows without bound if it is skipped.
    """

    config: DetourConfig = field(default_factory=DetourConfig)
    state: DetourState = field(default_factory=DetourState)

    _locks: _RouteKeyLocks = field(default_factory=_RouteKeyLocks, init=False, repr=False)

    def process_vehicle(
        self,
        vehicle: RealtimeVehicle,
        route_shapes: RouteShapes,
        *,
        now: datetime | None = None,
    ) -> VehicleOutcome | None:
        """Feed one position update through tracking, matching and clearing.

        Returns None when the update is unusable (missing id/route/position)
        or the route has no shapes loaded.
        """

        now = now or _utcnow()
        point = vehicle.position
        if not vehicle.vehicle_id or not vehicle.route_id or point is None:
            logger.debug("Ignoring incomplete vehicle update: %r", vehicle)
            return None

        shapes = route_shapes.get(vehicle.route_id)
        settings = self.config.for_route(vehicle.route_id)
        match = match_shape(point, shapes or (), settings)
        if match is None:
            return None

        completed = update_vehicle_tracking(
            self.state,
            vehicle_id=vehicle.vehicle_id,
            trip_id=vehicle.trip_id,
            route_id=vehicle.route_id,
            direction_id=vehicle.direction_id,
            point=point,
            match=match,
            settings=settings,
            now=now,
        )

        key = route_key(vehicle.route_id, vehicle.direction_id)
        detour: Detour | None = None
        created = False
        with self._locks.get(key):
            if completed is not None:
                corroboration = match_pending_path(
                    self.state, completed, settings=settings, now=now
                )
                if corroboration is not None:
                    detour, created = promote_corroborated_path(
                        self.state, corroboration, settings=settings, now=now
                    )
                    if created:
                        logger.info(
                            "Route %s: detour detected (%s, vehicles=%s)",
                            key,
                            detour.id,
                            ",".join(corroboration.vehicle_ids),
                        )
                    else:
                        logger.info(
                            "Route %s: detour %s reconfirmed (evidence=%d, score=%d)",
                            key,
                            detour.id,
                            detour.evidence_count,
                            detour.confidence_score,
                        )

            cleared = record_clearing_observation(
                self.state,
                vehicle_id=vehicle.vehicle_id,
                key=key,
                point=point,
                match=match,
                settings=settings,
                now=now,
            )
            for d in cleared:
                logger.info(
                    "Route %s: detour cleared (%s, by %s, clearing vehicles=%s)",
                    key,
                    d.id,
                    d.cleared_by_vehicle,
                    d.cleared_by_evidence_count,
                )

        return VehicleOutcome(
            vehicle_id=vehicle.vehicle_id,
            detour=detour,
            created=created,
            cleared=tuple(cleared),
        )

    def process_vehicles(
        self,
        vehicles: Iterable[RealtimeVehicle],
        route_shapes: RouteShapes,
        *,
        now: datetime | None = None,
        max_workers: int = 1,
    ) -> list[VehicleOutcome]:
        """Process one polling batch; all updates share the same `now`."""

        now = now or _utcnow()
        batch = latest_per_vehicle(vehicles)

        if max_workers <= 1 or len(batch) <= 1:
            results = [self.process_vehicle(v, route_shapes, now=now) for v in batch]
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                results = list(
                    executor.map(
                        lambda v: self.process_vehicle(v, route_shapes, now=now), batch
                    )
                )
        return [r for r in results if r is not None]

    def correlate_alerts(
        self, alerts: Sequence[ServiceAlert], *, now: datetime | None = None
    ) -> int:
        """Attach official alerts to suspected detours; returns matched count."""

        now = now or _utcnow()
        matched = 0
        for detour_id in list(self.state.active_detours):
            detour = self.state.active_detours.get(detour_id)
            if detour is None:
                continue
            with self._locks.get(detour.route_key):
                settings = self.config.for_route(detour.route_id)
                if correlate_detour_with_alerts(detour, alerts, settings=settings, now=now):
                    matched += 1
        return matched

    def sweep(self, *, now: datetime | None = None) -> list[ArchivedDetour]:
        now = now or _utcnow()
        tracked = len(self.state.vehicle_tracking)
        archived = sweep_expired(
            self.state,
            settings_for=self.config.for_route,
            history_limit=self.config.history_limit,
            now=now,
            lock_for=self._locks.get,
        )
        removed = tracked - len(self.state.vehicle_tracking)

        for entry in archived:
            logger.info(
                "Route %s: detour %s archived (%s)",
                entry.detour.route_key,
                entry.detour.id,
                entry.reason.value,
            )
        if removed > 0:
            logger.debug("Dropped %d stale vehicle tracking records", removed)
        return archived

    def enrich_route_context(
        self, stops: Sequence[Stop], route_stop_ids: Mapping[str, Collection[str]]
    ) -> None:
        for detour_id in list(self.state.active_detours):
            detour = self.state.active_detours.get(detour_id)
            if detour is None:
                continue
            with self._locks.get(detour.route_key):
                enrich_detour_with_route_context(
                    detour,
                    stops,
                    route_stop_ids.get(detour.route_id, ()),
                    settings=self.config.for_route(detour.route_id),
                )

    def _snapshot(self, detours: Iterable[Detour]) -> list[Detour]:
        out: list[Detour] = []
        for detour in detours:
            with self._locks.get(detour.route_key):
                out.append(copy.deepcopy(detour))
        return out

    def active_detours(self) -> list[Detour]:
        active = [d for d in list(self.state.active_detours.values()) if d.is_active]
        return sorted(self._snapshot(active), key=_sort_key, reverse=True)

    def detours_for_route(
        self, route_id: str, direction_id: str | None = None
    ) -> list[Detour]:
        wanted = normalize_route_id(route_id)
        direction = None if direction_id is None else str(direction_id)
        return [
            d
            for d in self.active_detours()
            if normalize_route_id(d.route_id) == wanted
            and (direction is None or d.direction_id is None or d.direction_id == direction)
        ]

    def has_active_detour(self, route_id: str, direction_id: str | None = None) -> bool:
        return bool(self.detours_for_route(route_id, direction_id))

    def get_detour(self, detour_id: str) -> Detour:
        detour = self.state.active_detours.get(detour_id)
        if detour is None:
            raise DetourNotFound(f"No detour with id {detour_id!r}")
        return self._snapshot([detour])[0]

    def history(
        self, *, route_id: str | None = None, limit: int | None = None
    ) -> list[ArchivedDetour]:
        entries = list(self.state.history)
        if route_id:
            wanted = normalize_route_id(route_id)
            entries = [e for e in entries if normalize_route_id(e.route_id) == wanted]
        max_items = self.config.history_limit if limit is None else limit
        return entries[: max(0, max_items)]
