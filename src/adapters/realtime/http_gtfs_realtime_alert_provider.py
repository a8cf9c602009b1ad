from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from google.transit import gtfs_realtime_pb2

from src.adapters.realtime.gtfs_rt_http import CachedFeed
from src.app.ports.output import IServiceAlertProvider
from src.domain.models import ServiceAlert

# GTFS-RT Alert.Effect enum values -> display names.
EFFECT_NAMES: dict[int, str] = {
    1: "No Service",
    2: "Reduced Service",
    3: "Significant Delays",
    4: "Detour",
    5: "Additional Service",
    6: "Modified Service",
    7: "Other",
    8: "Unknown",
    9: "Stop Moved",
}

_HIGH_SEVERITY = frozenset({"No Service", "Significant Delays"})
_MEDIUM_SEVERITY = frozenset({"Reduced Service", "Detour", "Modified Service"})


def effect_name(value: int) -> str:
    return EFFECT_NAMES.get(int(value), "Unknown")


def severity_for(effect: str) -> str:
    if effect in _HIGH_SEVERITY:
        return "high"
    if effect in _MEDIUM_SEVERITY:
        return "medium"
    return "low"


def _translated(text: gtfs_realtime_pb2.TranslatedString, language: str = "en") -> str:
    fallback = ""
    for t in text.translation:
        if not t.text:
            continue
        if t.language == language:
            return t.text
        if not fallback:
            fallback = t.text
    return fallback


def _is_active(alert: gtfs_realtime_pb2.Alert, now_s: int) -> bool:
    if not alert.active_period:
        return True
    for period in alert.active_period:
        start = int(period.start) if period.HasField("start") else 0
        end = int(period.end) if period.HasField("end") else 0
        if (start == 0 or start <= now_s) and (end == 0 or now_s <= end):
            return True
    return False


def parse_service_alerts(
    feed: gtfs_realtime_pb2.FeedMessage, *, now: datetime | None = None
) -> tuple[ServiceAlert, ...]:
    """Convert the alert entities of a feed that are active at `now`."""

    now_s = int((now or datetime.now(timezone.utc)).timestamp())
    out: list[ServiceAlert] = []

    for ent in feed.entity:
        if not ent.HasField("alert"):
            continue
        alert = ent.alert
        if not _is_active(alert, now_s):
            continue

        routes: list[str] = []
        for sel in alert.informed_entity:
            if sel.route_id and sel.route_id not in routes:
                routes.append(sel.route_id)

        effect = effect_name(alert.effect) if alert.HasField("effect") else "Unknown"
        out.append(
            ServiceAlert(
                alert_id=ent.id,
                title=_translated(alert.header_text) or effect,
                effect=effect,
                severity=severity_for(effect),
                affected_routes=tuple(routes),
                description=_translated(alert.description_text),
            )
        )

    return tuple(out)


@dataclass(slots=True)
class HttpGtfsRealtimeAlertProvider(IServiceAlertProvider):
    """Fetches a GTFS-Realtime ServiceAlerts feed over HTTP.

    Env vars:
      - GTFS_RT_SERVICE_ALERTS_URL: URL to a GTFS-RT ServiceAlerts feed
      - GTFS_RT_HEADERS, GTFS_RT_TIMEOUT_S, GTFS_RT_CACHE_TTL_S (default 60)

    The raw feed is cached; active periods are evaluated on every call. If
    URL is not configured, returns an empty tuple.
    """

    url: str | None = None
    headers_raw: str | None = None
    timeout_s: float = 10.0
    cache_ttl_s: float = 60.0

    _feed: CachedFeed = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._feed = CachedFeed.from_env(
            "GTFS_RT_SERVICE_ALERTS_URL",
            url=self.url,
            headers_raw=self.headers_raw,
            timeout_s=self.timeout_s,
            ttl_s=self.cache_ttl_s,
        )

    async def list_alerts(self) -> tuple[ServiceAlert, ...]:
        feed = await self._feed.get()
        if feed is None:
            return ()
        return parse_service_alerts(feed)
