from __future__ import annotations

from pathlib import Path

from src.adapters.persistence.local_gtfs_repository import LocalGtfsRepository
from src.domain.models.gtfs import StopTime


def _write(base: Path, name: str, text: str) -> None:
    (base / name).write_text(text, encoding="utf-8")


def test_load_feed_reads_gtfs_directory(tmp_path) -> None:
    # BOM on the header row is tolerated.
    (tmp_path / "stops.txt").write_text(
        "\ufeffstop_id,stop_code,stop_name,stop_lat,stop_lon\n"
        "S1,1001,Main St,45.0,-75.0\n"
        "S2,,Elm St,45.001,-74.99\n"
        "S3,,Bad,not-a-number,-74.99\n"
        "S4,,Null Island,0,0\n",
        encoding="utf-8",
    )
    _write(
        tmp_path,
        "stop_times.txt",
        "trip_id,stop_id,stop_sequence\nT1,S2,2\nT1,S1,1\n,S1,3\n",
    )
    _write(
        tmp_path,
        "trips.txt",
        "route_id,trip_id,shape_id,direction_id\n12,T1,SH1,0\n14,T2,,\n",
    )
    _write(
        tmp_path,
        "shapes.txt",
        "shape_id,shape_pt_lat,shape_pt_lon,shape_pt_sequence\n"
        "SH1,45.0,-74.99,2\n"
        "SH1,45.0,-75.0,1\n"
        "SH1,bad,-75.0,3\n",
    )

    feed = LocalGtfsRepository(base_path=tmp_path).load_feed()

    assert set(feed.stops_by_id) == {"S1", "S2"}
    assert feed.stops_by_id["S1"].code == "1001"
    assert feed.stops_by_id["S2"].code is None
    assert feed.stop_times == (
        StopTime(trip_id="T1", stop_id="S1", stop_sequence=1),
        StopTime(trip_id="T1", stop_id="S2", stop_sequence=2),
    )
    assert feed.trips_by_id["T1"].direction_id == "0"
    assert feed.trips_by_id["T2"].shape_id is None
    assert [p.lon for p in feed.shapes_by_id["SH1"]] == [-75.0, -74.99]


def test_trips_and_shapes_are_optional(tmp_path, monkeypatch) -> None:
    _write(tmp_path, "stops.txt", "stop_id,stop_name,stop_lat,stop_lon\nS1,Main,45,-75\n")
    _write(tmp_path, "stop_times.txt", "trip_id,stop_id,stop_sequence\n")
    monkeypatch.setenv("GTFS_PATH", str(tmp_path))

    feed = LocalGtfsRepository().load_feed()

    assert feed.trips_by_id == {}
    assert feed.shapes_by_id == {}
    assert list(feed.stops_by_id) == ["S1"]
