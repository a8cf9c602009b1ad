from .detour_repository import IDetourRepository
from .gtfs_repository import IGtfsRepository
from .realtime_vehicle_provider import IRealtimeVehicleProvider
from .service_alert_provider import IServiceAlertProvider

__all__ = [
    "IDetourRepository",
    "IGtfsRepository",
    "IRealtimeVehicleProvider",
    "IServiceAlertProvider",
]
