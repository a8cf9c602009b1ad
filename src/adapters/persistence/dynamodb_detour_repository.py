from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Sequence

from src.adapters.aws import dynamodb_client, ensure_dynamodb_table
from src.app.ports.output import IDetourRepository
from src.domain.models import ArchivedDetour, Detour, GeoPoint


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _point(p: GeoPoint | None) -> dict[str, float] | None:
    if p is None:
        return None
    return {"lat": p.lat, "lon": p.lon}


def detour_to_dict(detour: Detour) -> dict[str, Any]:
    """JSON-ready representation of a detour, as published downstream."""

    alert = detour.official_alert
    return {
        "id": detour.id,
        "route_id": detour.route_id,
        "direction_id": detour.direction_id,
        "route_key": detour.route_key,
        "status": detour.status.value,
        "confidence_score": detour.confidence_score,
        "confidence_level": detour.confidence_level.value,
        "evidence_count": detour.evidence_count,
        "first_detected_at": _iso(detour.first_detected_at),
        "last_seen_at": _iso(detour.last_seen_at),
        "polyline": [_point(p) for p in detour.polyline],
        "centroid": _point(detour.centroid),
        "confirmed_by": [
            {"vehicle_id": e.vehicle_id, "timestamp": _iso(e.timestamp)}
            for e in detour.confirmed_by
        ],
        "official_alert": None
        if alert is None
        else {
            "matched": alert.matched,
            "alert_id": alert.alert_id,
            "title": alert.title,
            "effect": alert.effect,
            "severity": alert.severity,
            "matched_at": _iso(alert.matched_at),
        },
        "last_alert_check_at": _iso(detour.last_alert_check_at),
        "affected_stops": [
            {
                "stop_id": s.stop_id,
                "name": s.name,
                "code": s.code,
                "distance_m": s.distance_m,
                "location": _point(s.location),
            }
            for s in detour.affected_stops
        ],
        "segment_label": detour.segment_label,
        "cleared_at": _iso(detour.cleared_at),
        "cleared_by_vehicle": detour.cleared_by_vehicle,
        "cleared_by_evidence_count": detour.cleared_by_evidence_count,
    }


@dataclass(slots=True)
class DynamoDbDetourRepository(IDetourRepository):
    """Publishes active detours and archived history to DynamoDB.

    Env vars:
      - DETOUR_TABLE (default: routewatch-detours), hash key `detour_id`
      - DETOUR_HISTORY_TABLE (default: routewatch-detour-history), hash key
        `history_id`
      - ENDPOINT_URL (preferred for LocalStack)
      - AWS_REGION
    """

    table_name: str | None = None
    history_table_name: str | None = None

    def _table(self) -> str:
        return self.table_name or os.getenv("DETOUR_TABLE") or "routewatch-detours"

    def _history_table(self) -> str:
        return (
            self.history_table_name
            or os.getenv("DETOUR_HISTORY_TABLE")
            or "routewatch-detour-history"
        )

    def ensure_tables(self) -> None:
        ensure_dynamodb_table(self._table(), "detour_id")
        ensure_dynamodb_table(self._history_table(), "history_id")

    def _published_ids(self) -> set[str]:
        ddb = dynamodb_client()
        ids: set[str] = set()
        kwargs: dict[str, Any] = {
            "TableName": self._table(),
            "ProjectionExpression": "detour_id",
        }
        while True:
            resp = ddb.scan(**kwargs)
            for item in resp.get("Items", []):
                ids.add(item["detour_id"]["S"])
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return ids
            kwargs["ExclusiveStartKey"] = last_key

    def publish_active(self, detours: Sequence[Detour]) -> None:
        now_ms = int(time.time() * 1000)
        ddb = dynamodb_client()
        stale = self._published_ids() - {d.id for d in detours}

        for detour in detours:
            item: dict[str, Any] = {
                "detour_id": {"S": detour.id},
                "route_id": {"S": detour.route_id},
                "route_key": {"S": detour.route_key},
                "status": {"S": detour.status.value},
                "confidence_level": {"S": detour.confidence_level.value},
                "confidence_score": {"N": str(detour.confidence_score)},
                "updated_at_ms": {"N": str(now_ms)},
                "payload": {"S": json.dumps(detour_to_dict(detour))},
            }
            if detour.direction_id is not None:
                item["direction_id"] = {"S": detour.direction_id}
            ddb.put_item(TableName=self._table(), Item=item)

        for detour_id in sorted(stale):
            ddb.delete_item(TableName=self._table(), Key={"detour_id": {"S": detour_id}})

    def append_history(self, entries: Sequence[ArchivedDetour]) -> None:
        ddb = dynamodb_client()
        for entry in entries:
            archived_ms = int(entry.archived_at.timestamp() * 1000)
            ddb.put_item(
                TableName=self._history_table(),
                Item={
                    "history_id": {"S": f"{entry.detour.id}#{archived_ms}"},
                    "detour_id": {"S": entry.detour.id},
                    "route_id": {"S": entry.route_id},
                    "reason": {"S": entry.reason.value},
                    "archived_at_ms": {"N": str(archived_ms)},
                    "payload": {"S": json.dumps(detour_to_dict(entry.detour))},
                },
            )

    def get(self, *, detour_id: str) -> Mapping[str, Any] | None:
        ddb = dynamodb_client()
        resp = ddb.get_item(
            TableName=self._table(),
            Key={"detour_id": {"S": detour_id}},
            ConsistentRead=True,
        )
        item = resp.get("Item")
        if not item:
            return None

        out: dict[str, Any] = {
            "detour_id": item["detour_id"]["S"],
            "status": item.get("status", {}).get("S"),
            "updated_at_ms": int(item.get("updated_at_ms", {}).get("N", "0")),
        }
        if "payload" in item and "S" in item["payload"]:
            out["payload"] = json.loads(item["payload"]["S"])
        return out
