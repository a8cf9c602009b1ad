from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass, field

import httpx
from google.transit import gtfs_realtime_pb2


def parse_headers(raw: str | None) -> dict[str, str]:
    """Parse 'Key:Value;Key2:Value2' into a header dict, skipping bad parts."""

    raw = (raw or "").strip()
    if not raw:
        return {}
    headers: dict[str, str] = {}
    for part in raw.split(";"):
        part = part.strip()
        if ":" not in part:
            continue
        k, v = part.split(":", 1)
        k = k.strip()
        if k:
            headers[k] = v.strip()
    return headers


async def fetch_feed(
    url: str, *, headers: dict[str, str], timeout_s: float
) -> gtfs_realtime_pb2.FeedMessage:
    async with httpx.AsyncClient(timeout=timeout_s) as client:
        resp = await client.get(url, headers=headers)
        resp.raise_for_status()
        content = resp.content

    feed = gtfs_realtime_pb2.FeedMessage()
    feed.ParseFromString(content)
    return feed


@dataclass(slots=True)
class CachedFeed:
    """One GTFS-RT endpoint with a per-process TTL cache.

    Concurrent callers share a single in-flight request. HTTP and decode
    errors propagate and leave the previous cache entry untouched.
    """

    url: str | None
    headers: dict[str, str] = field(default_factory=dict)
    timeout_s: float = 10.0
    ttl_s: float = 10.0

    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _fetched_at_monotonic: float | None = field(default=None, init=False, repr=False)
    _feed: gtfs_realtime_pb2.FeedMessage | None = field(
        default=None, init=False, repr=False
    )

    @staticmethod
    def from_env(
        url_var: str,
        *,
        url: str | None = None,
        headers_raw: str | None = None,
        timeout_s: float = 10.0,
        ttl_s: float = 10.0,
    ) -> "CachedFeed":
        """Resolve unset arguments from the environment.

        Env vars:
          - `url_var`: feed URL
          - GTFS_RT_HEADERS: optional headers, as 'Key:Value;Key2:Value2'
          - GTFS_RT_TIMEOUT_S: request timeout
          - GTFS_RT_CACHE_TTL_S: cache TTL seconds
        """

        if url is None:
            url = os.getenv(url_var)
        if headers_raw is None:
            headers_raw = os.getenv("GTFS_RT_HEADERS")
        if os.getenv("GTFS_RT_TIMEOUT_S"):
            timeout_s = float(os.environ["GTFS_RT_TIMEOUT_S"])
        if os.getenv("GTFS_RT_CACHE_TTL_S"):
            ttl_s = float(os.environ["GTFS_RT_CACHE_TTL_S"])
        return CachedFeed(
            url=(url or "").strip() or None,
            headers=parse_headers(headers_raw),
            timeout_s=timeout_s,
            ttl_s=ttl_s,
        )

    async def get(self) -> gtfs_realtime_pb2.FeedMessage | None:
        """Latest feed, or None if no URL is configured."""

        if not self.url:
            return None

        async with self._lock:
            if (
                self._feed is not None
                and self._fetched_at_monotonic is not None
                and (time.monotonic() - self._fetched_at_monotonic) < self.ttl_s
            ):
                return self._feed

            feed = await fetch_feed(
                self.url, headers=self.headers, timeout_s=self.timeout_s
            )
            self._fetched_at_monotonic = time.monotonic()
            self._feed = feed
            return feed
