from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from src.app.ports.output import (
    IDetourRepository,
    IRealtimeVehicleProvider,
    IServiceAlertProvider,
)
from src.app.services.detour_detection_service import DetourDetectionService
from src.app.services.transit_network_service import TransitNetworkService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TickReport:
    """Summary of one polling cycle."""

    vehicles: int
    created: int
    updated: int
    cleared: int
    alerts_matched: int
    archived: int
    active: int


@dataclass(slots=True)
class DetourMonitorService:
    """Drives the detection engine from the realtime feeds.

    One `tick()` fetches vehicle positions (and alerts, if configured), runs
    detection, correlates alerts, sweeps expired state, enriches detours with
    affected stops and publishes the result.
    """

    detection: DetourDetectionService
    network: TransitNetworkService
    vehicle_provider: IRealtimeVehicleProvider
    alert_provider: IServiceAlertProvider | None = None
    repository: IDetourRepository | None = None
    max_workers: int = 1

    async def tick(self, *, now: datetime | None = None) -> TickReport:
        now = now or datetime.now(timezone.utc)

        vehicles = await self.vehicle_provider.list_vehicles()
        # The first call loads the static feed from disk.
        route_shapes = await asyncio.to_thread(self.network.route_shapes)
        vehicles = tuple(self.network.with_direction(v) for v in vehicles)

        outcomes = await asyncio.to_thread(
            self.detection.process_vehicles,
            vehicles,
            route_shapes,
            now=now,
            max_workers=self.max_workers,
        )

        matched = 0
        if self.alert_provider is not None:
            try:
                alerts = await self.alert_provider.list_alerts()
            except Exception:
                # Prior alert attachments stay in place.
                logger.exception("Service alert fetch failed")
            else:
                matched = await asyncio.to_thread(
                    self.detection.correlate_alerts, alerts, now=now
                )

        archived = await asyncio.to_thread(self.detection.sweep, now=now)
        await asyncio.to_thread(self._enrich)
        active = self.detection.active_detours()

        if self.repository is not None:
            await asyncio.to_thread(self.repository.publish_active, active)
            if archived:
                await asyncio.to_thread(self.repository.append_history, archived)

        report = TickReport(
            vehicles=len(vehicles),
            created=sum(1 for o in outcomes if o.created),
            updated=sum(1 for o in outcomes if o.detour is not None and not o.created),
            cleared=sum(len(o.cleared) for o in outcomes),
            alerts_matched=matched,
            archived=len(archived),
            active=len(active),
        )
        logger.info(
            "Detour tick: vehicles=%d created=%d updated=%d cleared=%d "
            "alerts=%d archived=%d active=%d",
            report.vehicles,
            report.created,
            report.updated,
            report.cleared,
            report.alerts_matched,
            report.archived,
            report.active,
        )
        return report

    def _enrich(self) -> None:
        self.detection.enrich_route_context(
            self.network.stops(), self.network.route_stop_ids()
        )

    async def run_forever(
        self, *, poll_interval_s: float, stop: asyncio.Event | None = None
    ) -> None:
        """Tick every `poll_interval_s` until `stop` is set.

        A failed tick is logged and the loop carries on with the next one.
        """

        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Detour monitor tick failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=poll_interval_s)
            except asyncio.TimeoutError:
                pass
