from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Sequence

from src.app.services.detour_detection_service import DetourDetectionService
from src.app.services.detour_monitor_service import DetourMonitorService
from src.app.services.transit_network_service import TransitNetworkService
from src.domain.models import (
    ArchivedDetour,
    ArchiveReason,
    Detour,
    GeoPoint,
    RealtimeVehicle,
    ServiceAlert,
    Stop,
)
from src.domain.models.gtfs import GtfsFeed, GtfsTrip, StopTime


@dataclass(slots=True)
class FakeGtfsRepository:
    feed: GtfsFeed

    def load_feed(self) -> GtfsFeed:
        return self.feed


@dataclass(slots=True)
class ScriptedVehicleProvider:
    batches: list[tuple[RealtimeVehicle, ...]]

    async def list_vehicles(self) -> tuple[RealtimeVehicle, ...]:
        return self.batches.pop(0) if self.batches else ()


@dataclass(slots=True)
class FakeAlertProvider:
    alerts: tuple[ServiceAlert, ...] = ()

    async def list_alerts(self) -> tuple[ServiceAlert, ...]:
        return self.alerts


@dataclass(slots=True)
class FakeDetourRepository:
    published: list[list[str]] = field(default_factory=list)
    history: list[str] = field(default_factory=list)

    def publish_active(self, detours: Sequence[Detour]) -> None:
        self.published.append([d.id for d in detours])

    def append_history(self, entries: Sequence[ArchivedDetour]) -> None:
        self.history.extend(e.detour.id for e in entries)

    def get(self, *, detour_id: str):
        return None


def _network(route12) -> TransitNetworkService:
    feed = GtfsFeed(
        stops_by_id={
            "S1": Stop(
                id="S1",
                name="Main",
                location=GeoPoint(lat=45.0012, lon=-74.995),
                code="1001",
            ),
            "S2": Stop(
                id="S2",
                name="Elm",
                location=GeoPoint(lat=45.0012, lon=-74.989),
                code="1002",
            ),
        },
        stop_times=(
            StopTime(trip_id="T12", stop_id="S1", stop_sequence=1),
            StopTime(trip_id="T12", stop_id="S2", stop_sequence=2),
        ),
        trips_by_id={
            "T12": GtfsTrip(trip_id="T12", route_id="12", shape_id="S12", direction_id="0")
        },
        shapes_by_id={"S12": route12.shape.points},
    )
    return TransitNetworkService(gtfs_repository=FakeGtfsRepository(feed))


def _batches(route12, start_b: int) -> list[tuple[RealtimeVehicle, ...]]:
    """Vehicle A drives the detour; B follows `start_b` ticks later.

    Vehicles report only a trip id; direction comes from the static feed.
    """

    positions = [route12.before_detour, *route12.detour_trail, route12.after_detour]
    ticks = len(positions) + start_b
    out: list[tuple[RealtimeVehicle, ...]] = []
    for tick in range(ticks):
        batch = []
        for vid, offset in (("A", 0), ("B", start_b)):
            i = tick - offset
            if 0 <= i < len(positions):
                lat, lon = positions[i]
                batch.append(
                    RealtimeVehicle(
                        vehicle_id=vid, trip_id="T12", route_id="12", lat=lat, lon=lon
                    )
                )
        out.append(tuple(batch))
    return out


def test_ticks_detect_enrich_and_publish(route12, caplog) -> None:
    caplog.set_level(logging.INFO)
    batches = _batches(route12, start_b=4)
    repo = FakeDetourRepository()
    alert = ServiceAlert(
        alert_id="a1", title="Route 12 detour", effect="Detour", affected_routes=("12",)
    )
    monitor = DetourMonitorService(
        detection=DetourDetectionService(),
        network=_network(route12),
        vehicle_provider=ScriptedVehicleProvider(batches),
        alert_provider=FakeAlertProvider((alert,)),
        repository=repo,
    )

    reports = []
    for tick in range(len(batches)):
        now = route12.t0 + timedelta(seconds=30 * tick)
        reports.append(asyncio.run(monitor.tick(now=now)))

    assert sum(r.created for r in reports) == 1
    assert reports[-1].active == 1
    assert reports[-1].alerts_matched == 1

    (detour,) = monitor.detection.active_detours()
    assert detour.route_key == "12_0"
    assert detour.confidence_score == 78
    assert [s.stop_id for s in detour.affected_stops] == ["S1", "S2"]
    assert detour.segment_label == "Main to Elm"
    assert repo.published[-1] == [detour.id]
    assert repo.published[0] == []
    assert "Detour tick:" in caplog.text


def test_sweep_results_are_appended_to_history(route12) -> None:
    repo = FakeDetourRepository()
    monitor = DetourMonitorService(
        detection=DetourDetectionService(),
        network=_network(route12),
        vehicle_provider=ScriptedVehicleProvider(_batches(route12, start_b=4)),
        repository=repo,
    )
    t = route12.t0
    tick = 0
    while monitor.vehicle_provider.batches:
        asyncio.run(monitor.tick(now=t + timedelta(seconds=30 * tick)))
        tick += 1

    report = asyncio.run(monitor.tick(now=t + timedelta(hours=5)))

    assert report.archived == 1
    assert report.active == 0
    assert len(repo.history) == 1
    assert repo.published[-1] == []


def test_alert_feed_failure_does_not_block_sweep_or_publish(route12, caplog) -> None:
    @dataclass(slots=True)
    class DownAlertProvider:
        async def list_alerts(self) -> tuple[ServiceAlert, ...]:
            raise RuntimeError("alerts feed down")

    batches = _batches(route12, start_b=4)
    repo = FakeDetourRepository()
    monitor = DetourMonitorService(
        detection=DetourDetectionService(),
        network=_network(route12),
        vehicle_provider=ScriptedVehicleProvider(batches),
        alert_provider=DownAlertProvider(),
        repository=repo,
    )
    for tick in range(len(batches)):
        asyncio.run(monitor.tick(now=route12.t0 + timedelta(seconds=30 * tick)))

    (detour,) = monitor.detection.active_detours()
    assert detour.official_alert is None
    assert [s.stop_id for s in detour.affected_stops] == ["S1", "S2"]
    assert repo.published[-1] == [detour.id]

    report = asyncio.run(monitor.tick(now=route12.t0 + timedelta(days=2)))

    assert report.archived == 1
    assert report.alerts_matched == 0
    assert monitor.detection.history()[0].reason is ArchiveReason.EXPIRED_MAX_RETENTION
    assert repo.history == [detour.id]
    assert repo.published[-1] == []
    assert "Service alert fetch failed" in caplog.text
    assert "alerts feed down" in caplog.text


def test_run_forever_survives_failed_ticks(route12, caplog) -> None:
    @dataclass(slots=True)
    class FlakyProvider:
        calls: int = 0
        stop: asyncio.Event | None = None

        async def list_vehicles(self) -> tuple[RealtimeVehicle, ...]:
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("feed down")
            if self.stop is not None:
                self.stop.set()
            return ()

    provider = FlakyProvider()
    monitor = DetourMonitorService(
        detection=DetourDetectionService(),
        network=_network(route12),
        vehicle_provider=provider,
    )

    async def _run() -> None:
        provider.stop = asyncio.Event()
        await monitor.run_forever(poll_interval_s=0.01, stop=provider.stop)

    asyncio.run(_run())

    assert provider.calls == 2
    assert "Detour monitor tick failed" in caplog.text
    assert "feed down" in caplog.text
