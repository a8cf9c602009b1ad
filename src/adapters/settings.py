from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from src.adapters.aws import env_bool
from src.domain.exceptions import InvalidDetourConfig
from src.domain.models.config import (
    ClearingThresholds,
    ConfidenceThresholds,
    DetourConfig,
    RouteOverride,
)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise InvalidDetourConfig(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidDetourConfig(f"{name} must be an integer, got {raw!r}") from exc


class ConfidenceThresholdsSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    likely: float | None = Field(default=None, ge=0.0, le=100.0)
    high: float | None = Field(default=None, ge=0.0, le=100.0)


class ClearingThresholdsSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    suspected: int | None = Field(default=None, ge=1)
    likely: int | None = Field(default=None, ge=1)
    high_confidence: int | None = Field(default=None, ge=1)


class RouteOverrideSchema(BaseModel):
    """One entry of DETOUR_ROUTE_OVERRIDES; omitted fields use the defaults."""

    model_config = ConfigDict(extra="forbid")

    off_route_threshold_m: float | None = Field(default=None, gt=0)
    corridor_width_m: float | None = Field(default=None, gt=0)
    path_overlap_ratio: float | None = Field(default=None, gt=0, le=1)
    min_off_route_points: int | None = Field(default=None, ge=1)
    min_off_route_duration_s: float | None = Field(default=None, ge=0)
    suspected_detour_expiry_s: float | None = Field(default=None, gt=0)
    pending_path_expiry_s: float | None = Field(default=None, gt=0)
    stop_match_radius_m: float | None = Field(default=None, gt=0)
    max_affected_stops: int | None = Field(default=None, ge=0)
    confidence_thresholds: ConfidenceThresholdsSchema | None = None
    clearing_thresholds: ClearingThresholdsSchema | None = None
    clearing_evidence_window_s: float | None = Field(default=None, gt=0)
    cleared_detour_retention_s: float | None = Field(default=None, ge=0)
    max_detour_retention_s: float | None = Field(default=None, gt=0)

    def to_domain(
        self, confidence: ConfidenceThresholds, clearing: ClearingThresholds
    ) -> RouteOverride:
        values: dict[str, Any] = self.model_dump(
            exclude={"confidence_thresholds", "clearing_thresholds"}
        )
        if self.confidence_thresholds is not None:
            c = self.confidence_thresholds
            values["confidence_thresholds"] = ConfidenceThresholds(
                likely=confidence.likely if c.likely is None else c.likely,
                high=confidence.high if c.high is None else c.high,
            )
        if self.clearing_thresholds is not None:
            c2 = self.clearing_thresholds
            values["clearing_thresholds"] = ClearingThresholds(
                suspected=clearing.suspected if c2.suspected is None else c2.suspected,
                likely=clearing.likely if c2.likely is None else c2.likely,
                high_confidence=clearing.high_confidence
                if c2.high_confidence is None
                else c2.high_confidence,
            )
        return RouteOverride(**values)


_OVERRIDES = TypeAdapter(dict[str, RouteOverrideSchema])


def parse_route_overrides(
    raw: str | bytes,
    *,
    confidence: ConfidenceThresholds,
    clearing: ClearingThresholds,
) -> dict[str, RouteOverride]:
    """Parse a JSON object of route id -> override into domain overrides."""

    try:
        parsed = _OVERRIDES.validate_json(raw)
    except ValidationError as exc:
        raise InvalidDetourConfig(f"Invalid route overrides: {exc}") from exc
    return {
        route_id: override.to_domain(confidence, clearing)
        for route_id, override in parsed.items()
    }


def _raw_route_overrides() -> str | None:
    inline = os.getenv("DETOUR_ROUTE_OVERRIDES")
    if inline and inline.strip():
        return inline
    path = os.getenv("DETOUR_ROUTE_OVERRIDES_PATH")
    if path and path.strip():
        return Path(path).read_text(encoding="utf-8")
    return None


def load_detour_config() -> DetourConfig:
    """Build the detection config from DETOUR_* environment variables.

    Raises InvalidDetourConfig on malformed or out-of-range values.
    """

    confidence = ConfidenceThresholds(
        likely=_env_float("DETOUR_CONFIDENCE_LIKELY", 70.0),
        high=_env_float("DETOUR_CONFIDENCE_HIGH", 85.0),
    )
    clearing = ClearingThresholds(
        suspected=_env_int("DETOUR_CLEARING_SUSPECTED", 2),
        likely=_env_int("DETOUR_CLEARING_LIKELY", 3),
        high_confidence=_env_int("DETOUR_CLEARING_HIGH", 4),
    )

    raw = _raw_route_overrides()
    overrides = (
        parse_route_overrides(raw, confidence=confidence, clearing=clearing)
        if raw is not None
        else {}
    )

    return DetourConfig(
        off_route_threshold_m=_env_float("DETOUR_OFF_ROUTE_THRESHOLD_M", 50.0),
        corridor_width_m=_env_float("DETOUR_CORRIDOR_WIDTH_M", 50.0),
        path_overlap_ratio=_env_float("DETOUR_PATH_OVERLAP_RATIO", 0.70),
        min_off_route_points=_env_int("DETOUR_MIN_OFF_ROUTE_POINTS", 3),
        min_off_route_duration_s=_env_float("DETOUR_MIN_OFF_ROUTE_DURATION_S", 30.0),
        suspected_detour_expiry_s=_env_float("DETOUR_SUSPECTED_EXPIRY_S", 10800.0),
        pending_path_expiry_s=_env_float("DETOUR_PENDING_PATH_EXPIRY_S", 1800.0),
        stop_match_radius_m=_env_float("DETOUR_STOP_MATCH_RADIUS_M", 120.0),
        max_affected_stops=_env_int("DETOUR_MAX_AFFECTED_STOPS", 6),
        confidence_thresholds=confidence,
        clearing_thresholds=clearing,
        clearing_evidence_window_s=_env_float("DETOUR_CLEARING_WINDOW_S", 1800.0),
        cleared_detour_retention_s=_env_float("DETOUR_CLEARED_RETENTION_S", 300.0),
        max_detour_retention_s=_env_float("DETOUR_MAX_RETENTION_S", 86400.0),
        history_limit=_env_int("DETOUR_HISTORY_LIMIT", 100),
        route_overrides=overrides,
    )


@dataclass(frozen=True, slots=True)
class MonitorRuntimeConfig:
    poll_interval_s: float
    max_workers: int
    monitor_enabled: bool

    @staticmethod
    def from_env() -> "MonitorRuntimeConfig":
        poll = _env_float("DETOUR_POLL_INTERVAL_S", 15.0)
        if poll <= 0:
            raise InvalidDetourConfig("DETOUR_POLL_INTERVAL_S must be positive")
        return MonitorRuntimeConfig(
            poll_interval_s=poll,
            max_workers=max(1, _env_int("DETOUR_MAX_WORKERS", 1)),
            monitor_enabled=env_bool("DETOUR_MONITOR_ENABLED", False),
        )

