from __future__ import annotations

import os
from functools import lru_cache

from src.adapters.aws import AwsRuntimeConfig
from src.adapters.persistence.dynamodb_detour_repository import DynamoDbDetourRepository
from src.adapters.persistence.local_gtfs_repository import LocalGtfsRepository
from src.adapters.realtime.http_gtfs_realtime_alert_provider import (
    HttpGtfsRealtimeAlertProvider,
)
from src.adapters.realtime.http_gtfs_realtime_vehicle_provider import (
    HttpGtfsRealtimeVehicleProvider,
)
from src.adapters.settings import MonitorRuntimeConfig, load_detour_config
from src.app.ports.output import IDetourRepository
from src.app.services.detour_detection_service import DetourDetectionService
from src.app.services.detour_monitor_service import DetourMonitorService
from src.app.services.transit_network_service import TransitNetworkService


@lru_cache(maxsize=1)
def get_detour_service() -> DetourDetectionService:
    """Process-wide detection service; API and background monitor share it."""

    return DetourDetectionService(config=load_detour_config())


@lru_cache(maxsize=1)
def get_transit_network_service() -> TransitNetworkService:
    return TransitNetworkService(gtfs_repository=LocalGtfsRepository())


def get_detour_repository() -> IDetourRepository | None:
    if not os.getenv("DETOUR_TABLE"):
        return None
    repo = DynamoDbDetourRepository()
    if AwsRuntimeConfig.from_env().create_tables:
        repo.ensure_tables()
    return repo


def build_monitor_service(
    runtime: MonitorRuntimeConfig | None = None,
) -> DetourMonitorService:
    runtime = runtime or MonitorRuntimeConfig.from_env()
    return DetourMonitorService(
        detection=get_detour_service(),
        network=get_transit_network_service(),
        vehicle_provider=HttpGtfsRealtimeVehicleProvider(),
        alert_provider=HttpGtfsRealtimeAlertProvider(),
        repository=get_detour_repository(),
        max_workers=runtime.max_workers,
    )
