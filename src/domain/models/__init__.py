from .geo import GeoPoint
from .gtfs import RouteShape
from .realtime import RealtimeVehicle
from .stop import Stop
from .detour import (
    AffectedStop,
    ArchivedDetour,
    ArchiveReason,
    Breadcrumb,
    CompletedOffRoutePath,
    ConfidenceLevel,
    Detour,
    DetourState,
    DetourStatus,
    OfficialAlertMatch,
    PendingPath,
    ServiceAlert,
    VehicleEvidence,
    VehicleTrackingRecord,
    route_key,
)

__all__ = [
    "AffectedStop",
    "ArchivedDetour",
    "ArchiveReason",
    "Breadcrumb",
    "CompletedOffRoutePath",
    "ConfidenceLevel",
    "Detour",
    "DetourState",
    "DetourStatus",
    "GeoPoint",
    "OfficialAlertMatch",
    "PendingPath",
    "RealtimeVehicle",
    "RouteShape",
    "ServiceAlert",
    "Stop",
    "VehicleEvidence",
    "VehicleTrackingRecord",
    "route_key",
]
