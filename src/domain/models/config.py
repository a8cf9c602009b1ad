from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from typing import Mapping

from src.domain.exceptions import InvalidDetourConfig

_DIGITS = re.compile(r"\d+")


@dataclass(frozen=True, slots=True)
class ConfidenceThresholds:
    """Score cut-offs for the `likely` and `high-confidence` tiers."""

    likely: float = 70.0
    high: float = 85.0


@dataclass(frozen=True, slots=True)
class ClearingThresholds:
    """Distinct on-route vehicles required to clear a detour, per tier."""

    suspected: int = 2
    likely: int = 3
    high_confidence: int = 4


@dataclass(frozen=True, slots=True)
class RouteOverride:
    """Per-route tuning. Unset fields fall back to the global defaults."""

    off_route_threshold_m: float | None = None
    corridor_width_m: float | None = None
    path_overlap_ratio: float | None = None
    min_off_route_points: int | None = None
    min_off_route_duration_s: float | None = None
    suspected_detour_expiry_s: float | None = None
    pending_path_expiry_s: float | None = None
    stop_match_radius_m: float | None = None
    max_affected_stops: int | None = None
    confidence_thresholds: ConfidenceThresholds | None = None
    clearing_thresholds: ClearingThresholds | None = None
    clearing_evidence_window_s: float | None = None
    cleared_detour_retention_s: float | None = None
    max_detour_retention_s: float | None = None


@dataclass(frozen=True, slots=True)
class RouteDetourSettings:
    """Fully resolved settings for one route; every field is populated."""

    off_route_threshold_m: float
    corridor_width_m: float
    path_overlap_ratio: float
    min_off_route_points: int
    min_off_route_duration_s: float
    suspected_detour_expiry_s: float
    pending_path_expiry_s: float
    stop_match_radius_m: float
    max_affected_stops: int
    confidence_thresholds: ConfidenceThresholds
    clearing_thresholds: ClearingThresholds
    clearing_evidence_window_s: float
    cleared_detour_retention_s: float
    max_detour_retention_s: float

    def __post_init__(self) -> None:
        for name in (
            "off_route_threshold_m",
            "corridor_width_m",
            "stop_match_radius_m",
            "suspected_detour_expiry_s",
            "pending_path_expiry_s",
            "clearing_evidence_window_s",
            "max_detour_retention_s",
        ):
            if getattr(self, name) <= 0:
                raise InvalidDetourConfig(f"{name} must be positive")
        if self.min_off_route_duration_s < 0 or self.cleared_detour_retention_s < 0:
            raise InvalidDetourConfig("durations must not be negative")
        if not (0.0 < self.path_overlap_ratio <= 1.0):
            raise InvalidDetourConfig(
                f"path_overlap_ratio must be in (0, 1], got {self.path_overlap_ratio}"
            )
        if self.min_off_route_points < 1 or self.max_affected_stops < 0:
            raise InvalidDetourConfig("point/stop counts out of range")
        if self.confidence_thresholds.likely > self.confidence_thresholds.high:
            raise InvalidDetourConfig("likely threshold must not exceed high threshold")
        clearing = self.clearing_thresholds
        if min(clearing.suspected, clearing.likely, clearing.high_confidence) < 1:
            raise InvalidDetourConfig("clearing thresholds must be at least 1")


def normalize_route_id(route_id: str | None) -> str | None:
    if route_id is None:
        return None
    normalized = str(route_id).strip().upper()
    return normalized or None


def base_route_id(route_id: str | None) -> str | None:
    """Numeric base of a branch route id: "2A" -> "2", "008" -> "8"."""

    normalized = normalize_route_id(route_id)
    if not normalized:
        return None
    match = _DIGITS.search(normalized)
    if match is None:
        return None
    return str(int(match.group(0)))


@dataclass(frozen=True, slots=True)
class DetourConfig:
    """Global detour-detection defaults plus per-route overrides.

    Override keys are normalized route ids. Lookups try the exact id first and
    then its numeric base route, so branches such as "2A"/"2B" inherit the
    tuning of "2".
    """

    off_route_threshold_m: float = 50.0
    corridor_width_m: float = 50.0
    path_overlap_ratio: float = 0.70
    min_off_route_points: int = 3
    min_off_route_duration_s: float = 30.0
    suspected_detour_expiry_s: float = 3 * 3600.0
    pending_path_expiry_s: float = 30 * 60.0
    stop_match_radius_m: float = 120.0
    max_affected_stops: int = 6
    confidence_thresholds: ConfidenceThresholds = field(
        default_factory=ConfidenceThresholds
    )
    clearing_thresholds: ClearingThresholds = field(default_factory=ClearingThresholds)
    clearing_evidence_window_s: float = 30 * 60.0
    cleared_detour_retention_s: float = 5 * 60.0
    max_detour_retention_s: float = 24 * 3600.0
    history_limit: int = 100
    route_overrides: Mapping[str, RouteOverride] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.history_limit < 0:
            raise InvalidDetourConfig("history_limit must not be negative")
        normalized: dict[str, RouteOverride] = {}
        for key, override in self.route_overrides.items():
            nk = normalize_route_id(key)
            if nk is None:
                raise InvalidDetourConfig(f"Invalid route override key: {key!r}")
            normalized[nk] = override
        object.__setattr__(self, "route_overrides", normalized)
        # Fail fast on bad defaults and bad overrides alike.
        self.defaults()
        for key in normalized:
            self.for_route(key)

    def route_override(self, route_id: str | None) -> RouteOverride | None:
        normalized = normalize_route_id(route_id)
        if normalized and normalized in self.route_overrides:
            return self.route_overrides[normalized]
        base = base_route_id(route_id)
        if base and base in self.route_overrides:
            return self.route_overrides[base]
        return None

    def defaults(self) -> RouteDetourSettings:
        return RouteDetourSettings(
            **{f.name: getattr(self, f.name) for f in fields(RouteDetourSettings)}
        )

    def for_route(self, route_id: str | None) -> RouteDetourSettings:
        override = self.route_override(route_id)
        if override is None:
            return self.defaults()

        values = {}
        for f in fields(RouteDetourSettings):
            value = getattr(override, f.name)
            values[f.name] = getattr(self, f.name) if value is None else value
        return RouteDetourSettings(**values)
