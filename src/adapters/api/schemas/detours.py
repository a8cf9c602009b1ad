from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from src.domain.models import AffectedStop, ArchivedDetour, Detour, GeoPoint


class GeoPointSchema(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)

    @staticmethod
    def from_domain(p: GeoPoint) -> "GeoPointSchema":
        return GeoPointSchema(lat=p.lat, lon=p.lon)


class VehicleEvidenceSchema(BaseModel):
    vehicle_id: str
    timestamp: datetime


class OfficialAlertSchema(BaseModel):
    matched: bool = True
    alert_id: str
    title: str
    effect: str
    severity: str
    matched_at: datetime


class AffectedStopSchema(BaseModel):
    stop_id: str
    name: str
    code: str
    distance_m: int
    location: GeoPointSchema

    @staticmethod
    def from_domain(s: AffectedStop) -> "AffectedStopSchema":
        return AffectedStopSchema(
            stop_id=s.stop_id,
            name=s.name,
            code=s.code,
            distance_m=s.distance_m,
            location=GeoPointSchema.from_domain(s.location),
        )


class DetourSchema(BaseModel):
    id: str
    route_id: str
    direction_id: str | None = None
    route_key: str
    status: Literal["suspected", "cleared"]
    confidence_score: int
    confidence_level: Literal["suspected", "likely", "high-confidence"]
    evidence_count: int
    first_detected_at: datetime
    last_seen_at: datetime
    polyline: list[GeoPointSchema]
    centroid: GeoPointSchema | None = None
    confirmed_by: list[VehicleEvidenceSchema] = []
    official_alert: OfficialAlertSchema | None = None
    last_alert_check_at: datetime | None = None
    affected_stops: list[AffectedStopSchema] = []
    segment_label: str | None = None
    cleared_at: datetime | None = None
    cleared_by_vehicle: str | None = None
    cleared_by_evidence_count: int | None = None

    @staticmethod
    def from_domain(d: Detour) -> "DetourSchema":
        alert = d.official_alert
        return DetourSchema(
            id=d.id,
            route_id=d.route_id,
            direction_id=d.direction_id,
            route_key=d.route_key,
            status=d.status.value,
            confidence_score=d.confidence_score,
            confidence_level=d.confidence_level.value,
            evidence_count=d.evidence_count,
            first_detected_at=d.first_detected_at,
            last_seen_at=d.last_seen_at,
            polyline=[GeoPointSchema.from_domain(p) for p in d.polyline],
            centroid=GeoPointSchema.from_domain(d.centroid) if d.centroid else None,
            confirmed_by=[
                VehicleEvidenceSchema(vehicle_id=e.vehicle_id, timestamp=e.timestamp)
                for e in d.confirmed_by
            ],
            official_alert=None
            if alert is None
            else OfficialAlertSchema(
                alert_id=alert.alert_id,
                title=alert.title,
                effect=alert.effect,
                severity=alert.severity,
                matched_at=alert.matched_at,
            ),
            last_alert_check_at=d.last_alert_check_at,
            affected_stops=[AffectedStopSchema.from_domain(s) for s in d.affected_stops],
            segment_label=d.segment_label,
            cleared_at=d.cleared_at,
            cleared_by_vehicle=d.cleared_by_vehicle,
            cleared_by_evidence_count=d.cleared_by_evidence_count,
        )


class RouteDetourStatusSchema(BaseModel):
    route_id: str
    direction_id: str | None = None
    has_active_detour: bool


class ArchivedDetourSchema(BaseModel):
    archived_at: datetime
    reason: Literal["cleared", "expired", "expired_max_retention"]
    detour: DetourSchema

    @staticmethod
    def from_domain(entry: ArchivedDetour) -> "ArchivedDetourSchema":
        return ArchivedDetourSchema(
            archived_at=entry.archived_at,
            reason=entry.reason.value,
            detour=DetourSchema.from_domain(entry.detour),
        )
