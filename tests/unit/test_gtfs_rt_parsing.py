from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from google.transit import gtfs_realtime_pb2

from src.adapters.realtime import gtfs_rt_http
from src.adapters.realtime.gtfs_rt_http import parse_headers
from src.adapters.realtime.http_gtfs_realtime_alert_provider import (
    HttpGtfsRealtimeAlertProvider,
    parse_service_alerts,
    severity_for,
)
from src.adapters.realtime.http_gtfs_realtime_vehicle_provider import (
    HttpGtfsRealtimeVehicleProvider,
    parse_vehicle_positions,
)

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (
        "GTFS_RT_VEHICLE_POSITIONS_URL",
        "GTFS_RT_SERVICE_ALERTS_URL",
        "GTFS_RT_HEADERS",
        "GTFS_RT_TIMEOUT_S",
        "GTFS_RT_CACHE_TTL_S",
    ):
        monkeypatch.delenv(name, raising=False)


def _vehicle_feed() -> gtfs_realtime_pb2.FeedMessage:
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = "2.0"

    ent = feed.entity.add()
    ent.id = "e1"
    ent.vehicle.vehicle.id = "bus-7"
    ent.vehicle.trip.trip_id = "T1"
    ent.vehicle.trip.route_id = "12"
    ent.vehicle.trip.direction_id = 1
    ent.vehicle.position.latitude = 45.0
    ent.vehicle.position.longitude = -75.0
    ent.vehicle.position.bearing = 90.0
    ent.vehicle.timestamp = int(NOW.timestamp())

    # No vehicle descriptor: the entity id stands in.
    ent = feed.entity.add()
    ent.id = "e2"
    ent.vehicle.trip.route_id = "12"
    ent.vehicle.position.latitude = 45.1
    ent.vehicle.position.longitude = -75.1

    # No position: skipped.
    ent = feed.entity.add()
    ent.id = "e3"
    ent.vehicle.vehicle.id = "bus-9"
    return feed


def test_parse_vehicle_positions() -> None:
    first, second = parse_vehicle_positions(_vehicle_feed())

    assert first.vehicle_id == "bus-7"
    assert first.route_id == "12"
    assert first.trip_id == "T1"
    assert first.direction_id == "1"
    assert first.bearing == pytest.approx(90.0)
    assert first.speed_mps is None
    assert first.timestamp == NOW

    assert second.vehicle_id == "e2"
    assert second.direction_id is None
    assert second.trip_id is None
    assert second.timestamp is None


def _alert_feed() -> gtfs_realtime_pb2.FeedMessage:
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = "2.0"
    now_s = int(NOW.timestamp())

    ent = feed.entity.add()
    ent.id = "a1"
    ent.alert.effect = gtfs_realtime_pb2.Alert.DETOUR
    ent.alert.informed_entity.add().route_id = "12"
    ent.alert.informed_entity.add().route_id = "12"
    ent.alert.informed_entity.add().route_id = "14"
    fr = ent.alert.header_text.translation.add()
    fr.text = "Détour"
    fr.language = "fr"
    en = ent.alert.header_text.translation.add()
    en.text = "Route 12 detour"
    en.language = "en"
    period = ent.alert.active_period.add()
    period.start = now_s - 60

    ent = feed.entity.add()
    ent.id = "a2"
    ent.alert.effect = gtfs_realtime_pb2.Alert.NO_SERVICE
    ent.alert.informed_entity.add().route_id = "30"

    # Finished an hour ago.
    ent = feed.entity.add()
    ent.id = "a3"
    ent.alert.effect = gtfs_realtime_pb2.Alert.DETOUR
    period = ent.alert.active_period.add()
    period.start = now_s - 7200
    period.end = now_s - 3600
    return feed


def test_parse_service_alerts() -> None:
    detour, closure = parse_service_alerts(_alert_feed(), now=NOW)

    assert detour.alert_id == "a1"
    assert detour.effect == "Detour"
    assert detour.title == "Route 12 detour"
    assert detour.severity == "medium"
    assert detour.affected_routes == ("12", "14")

    assert closure.title == "No Service"
    assert closure.severity == "high"


@pytest.mark.parametrize(
    "effect, expected",
    [("No Service", "high"), ("Modified Service", "medium"), ("Other", "low")],
)
def test_severity_for(effect: str, expected: str) -> None:
    assert severity_for(effect) == expected


def test_parse_headers_skips_malformed_parts() -> None:
    assert parse_headers("apikey: abc ; junk; X-Foo:1:2") == {
        "apikey": "abc",
        "X-Foo": "1:2",
    }
    assert parse_headers(None) == {}


def test_providers_without_url_return_nothing() -> None:
    assert asyncio.run(HttpGtfsRealtimeVehicleProvider().list_vehicles()) == ()
    assert asyncio.run(HttpGtfsRealtimeAlertProvider().list_alerts()) == ()


def test_vehicle_provider_caches_within_ttl(monkeypatch) -> None:
    calls: list[dict[str, str]] = []

    async def _fake_fetch(url, *, headers, timeout_s):
        calls.append(headers)
        return _vehicle_feed()

    monkeypatch.setattr(gtfs_rt_http, "fetch_feed", _fake_fetch)
    provider = HttpGtfsRealtimeVehicleProvider(
        url="http://feed.test/vp", headers_raw="apikey:k", cache_ttl_s=60.0
    )

    async def _twice():
        return await provider.list_vehicles(), await provider.list_vehicles()

    first, second = asyncio.run(_twice())

    assert len(first) == 2
    assert second == first
    assert calls == [{"apikey": "k"}]


def test_alert_provider_caches_empty_feed(monkeypatch) -> None:
    calls = 0

    async def _fake_fetch(url, *, headers, timeout_s):
        nonlocal calls
        calls += 1
        return gtfs_realtime_pb2.FeedMessage()

    monkeypatch.setattr(gtfs_rt_http, "fetch_feed", _fake_fetch)
    provider = HttpGtfsRealtimeAlertProvider(url="http://feed.test/alerts")

    async def _twice():
        return await provider.list_alerts(), await provider.list_alerts()

    assert asyncio.run(_twice()) == ((), ())
    assert calls == 1
