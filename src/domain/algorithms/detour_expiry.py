from __future__ import annotations

from contextlib import AbstractContextManager, nullcontext
from datetime import datetime
from typing import Any, Callable

from src.domain.algorithms.detour_lifecycle import refresh_confidence
from src.domain.algorithms.pending_paths import prune_pending_paths
from src.domain.models import (
    ArchivedDetour,
    ArchiveReason,
    ConfidenceLevel,
    Detour,
    DetourState,
    DetourStatus,
)
from src.domain.models.config import RouteDetourSettings

SettingsLookup = Callable[[str | None], RouteDetourSettings]
LockLookup = Callable[[str], AbstractContextManager[Any]]


def expiry_reason(
    detour: Detour, *, settings: RouteDetourSettings, now: datetime
) -> ArchiveReason | None:
    """Why a detour should leave active state now, if at all.

    Suspected-status detours get their confidence refreshed first because
    recency is part of the score; a detour that has gone quiet can drop to
    the lowest tier and then become eligible for time-based expiry.
    """

    age_s = (now - detour.first_detected_at).total_seconds()
    if age_s > settings.max_detour_retention_s:
        return ArchiveReason.EXPIRED_MAX_RETENTION

    if detour.status is DetourStatus.CLEARED:
        cleared_at = detour.cleared_at or detour.last_seen_at
        if (now - cleared_at).total_seconds() > settings.cleared_detour_retention_s:
            return ArchiveReason.CLEARED
        return None

    refresh_confidence(detour, settings=settings, now=now)
    if detour.confidence_level is not ConfidenceLevel.SUSPECTED:
        return None
    silent_s = (now - detour.last_seen_at).total_seconds()
    if silent_s > settings.suspected_detour_expiry_s:
        return ArchiveReason.EXPIRED
    return None


def sweep_route_key(
    state: DetourState,
    key: str,
    *,
    settings_for: SettingsLookup,
    history_limit: int,
    now: datetime,
) -> list[ArchivedDetour]:
    """Expire/archive detours and prune pending paths of one route key."""

    archived: list[ArchivedDetour] = []
    for detour in [d for d in list(state.active_detours.values()) if d.route_key == key]:
        reason = expiry_reason(detour, settings=settings_for(detour.route_id), now=now)
        if reason is not None:
            archived.append(
                state.archive(detour, reason=reason, now=now, limit=history_limit)
            )

    pending = state.pending_paths.get(key)
    if pending:
        prune_pending_paths(
            state, key, settings=settings_for(pending[0].route_id), now=now
        )
    elif pending is not None:
        state.pending_paths.pop(key, None)
    return archived


def prune_stale_vehicles(
    state: DetourState, *, settings_for: SettingsLookup, now: datetime
) -> list[str]:
    removed: list[str] = []
    for vehicle_id, record in list(state.vehicle_tracking.items()):
        idle_s = (now - record.last_update_at).total_seconds()
        if idle_s > settings_for(record.route_id).pending_path_expiry_s:
            state.vehicle_tracking.pop(vehicle_id, None)
            removed.append(vehicle_id)
    return removed


def sweep_expired(
    state: DetourState,
    *,
    settings_for: SettingsLookup,
    history_limit: int,
    now: datetime,
    lock_for: LockLookup | None = None,
) -> list[ArchivedDetour]:
    """Run the full expiry & archival sweep over every route key.

    Callers must run this periodically: it is the only thing that bounds the
    memory held by `state`. Each route key is swept under `lock_for(key)`
    when given.
    """

    keys = set(list(state.pending_paths)) | {
        d.route_key for d in list(state.active_detours.values())
    }
    archived: list[ArchivedDetour] = []
    for key in sorted(keys):
        with lock_for(key) if lock_for is not None else nullcontext():
            archived.extend(
                sweep_route_key(
                    state,
                    key,
                    settings_for=settings_for,
                    history_limit=history_limit,
                    now=now,
                )
            )
    prune_stale_vehicles(state, settings_for=settings_for, now=now)
    return archived
