from __future__ import annotations

import csv
import os
from dataclasses import dataclass
from pathlib import Path

from src.app.ports.output import IGtfsRepository
from src.domain.models import GeoPoint, Stop
from src.domain.models.gtfs import GtfsFeed, GtfsTrip, StopTime


def _clean(row: dict[str, str | None], key: str) -> str | None:
    return (row.get(key) or "").strip() or None


@dataclass(slots=True)
class LocalGtfsRepository(IGtfsRepository):
    """Loads a GTFS feed from a directory of .txt files.

    Env vars:
      - GTFS_PATH: directory containing stops.txt, stop_times.txt, trips.txt
        and shapes.txt
    """

    base_path: str | Path | None = None

    def _base(self) -> Path:
        value = self.base_path or os.getenv("GTFS_PATH") or "data/gtfs"
        return Path(value)

    def load_feed(self) -> GtfsFeed:
        base = self._base()

        trips_by_id: dict[str, GtfsTrip] = {}
        trips_path = base / "trips.txt"
        if trips_path.exists():
            with trips_path.open("r", encoding="utf-8-sig", newline="") as fp:
                for row in csv.DictReader(fp):
                    trip_id = _clean(row, "trip_id")
                    if not trip_id:
                        continue
                    trips_by_id[trip_id] = GtfsTrip(
                        trip_id=trip_id,
                        route_id=_clean(row, "route_id"),
                        shape_id=_clean(row, "shape_id"),
                        direction_id=_clean(row, "direction_id"),
                    )

        shapes_by_id: dict[str, tuple[GeoPoint, ...]] = {}
        shapes_path = base / "shapes.txt"
        if shapes_path.exists():
            tmp: dict[str, list[tuple[int, GeoPoint]]] = {}
            with shapes_path.open("r", encoding="utf-8-sig", newline="") as fp:
                for row in csv.DictReader(fp):
                    shape_id = _clean(row, "shape_id")
                    if not shape_id:
                        continue
                    try:
                        seq = int(row.get("shape_pt_sequence") or 0)
                        lat = float(row["shape_pt_lat"])
                        lon = float(row["shape_pt_lon"])
                    except (TypeError, ValueError, KeyError):
                        continue
                    point = GeoPoint.maybe(lat, lon)
                    if point is None:
                        continue
                    tmp.setdefault(shape_id, []).append((seq, point))

            for shape_id, pts in tmp.items():
                pts.sort(key=lambda x: x[0])
                shapes_by_id[shape_id] = tuple(p for _, p in pts)

        stops_by_id: dict[str, Stop] = {}
        with (base / "stops.txt").open("r", encoding="utf-8-sig", newline="") as fp:
            for row in csv.DictReader(fp):
                stop_id = _clean(row, "stop_id")
                if not stop_id:
                    continue
                try:
                    point = GeoPoint.maybe(float(row["stop_lat"]), float(row["stop_lon"]))
                except (TypeError, ValueError, KeyError):
                    continue
                if point is None:
                    continue
                stops_by_id[stop_id] = Stop(
                    id=stop_id,
                    name=_clean(row, "stop_name") or stop_id,
                    location=point,
                    code=_clean(row, "stop_code"),
                )

        stop_times: list[StopTime] = []
        with (base / "stop_times.txt").open("r", encoding="utf-8-sig", newline="") as fp:
            for row in csv.DictReader(fp):
                trip_id = _clean(row, "trip_id")
                stop_id = _clean(row, "stop_id")
                if not trip_id or not stop_id:
                    continue
                try:
                    seq = int(row.get("stop_sequence") or 0)
                except ValueError:
                    continue
                stop_times.append(
                    StopTime(trip_id=trip_id, stop_id=stop_id, stop_sequence=seq)
                )

        stop_times.sort(key=lambda st: (st.trip_id, st.stop_sequence))

        return GtfsFeed(
            stops_by_id=stops_by_id,
            stop_times=tuple(stop_times),
            trips_by_id=trips_by_id,
            shapes_by_id=shapes_by_id,
        )
