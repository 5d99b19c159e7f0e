from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import httpx
import structlog

from app.settings import Settings
from ingest.parsers.feed import parse_feed
from normalize.classify import alert_statistics, classify_alerts, contextual_banner_title
from normalize.dates import parse_datetime, to_iso, utc_now
from normalize.models import ClassifiedAlert, UniversalAlert
from normalize.normalize import normalize_batch
from store.alerts import fetch_recent_alerts, latest_created_at, row_to_alert
from store.db import Database


logger = structlog.stdlib.get_logger()

LiveFetcher = Callable[[], Awaitable[list[UniversalAlert]]]
Trigger = Callable[[], Awaitable[object]]
Clock = Callable[[], datetime]

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

# table, read-path source label, defaults for empty columns
_PERSISTED_TABLES: tuple[tuple[str, str, dict[str, str]], ...] = (
    (
        "weather_alerts",
        "Environment Canada Weather",
        {"urgency": "Expected", "category": "Weather", "status": "Actual"},
    ),
    (
        "security_alerts",
        "Canadian Centre for Cyber Security",
        {"severity": "Moderate", "urgency": "Expected"},
    ),
    (
        "immigration_announcements",
        "Immigration Canada RSS",
        {"severity": "Minor", "urgency": "Future", "area": "Canada"},
    ),
)


@dataclass(frozen=True)
class Freshness:
    last_updated: str
    staleness_minutes: float
    is_stale: bool
    source: str

    def to_dict(self) -> dict:
        return {
            "lastUpdated": self.last_updated,
            "stalenessMinutes": (
                None if math.isinf(self.staleness_minutes) else self.staleness_minutes
            ),
            "isStale": self.is_stale,
            "source": self.source,
        }


@dataclass(frozen=True)
class UnifiedAlertData:
    alerts: list[ClassifiedAlert]
    freshness: Freshness
    sources: list[str] = field(default_factory=list)
    statistics: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "alerts": [a.to_dict() for a in self.alerts],
            "freshness": self.freshness.to_dict(),
            "sources": list(self.sources),
            "statistics": dict(self.statistics),
            "bannerTitle": contextual_banner_title(self.alerts),
        }


@dataclass(frozen=True)
class _CacheEntry:
    value: UnifiedAlertData
    fetched_at: datetime


def empty_unified_data() -> UnifiedAlertData:
    return UnifiedAlertData(
        alerts=[],
        freshness=Freshness(
            last_updated=to_iso(_EPOCH),
            staleness_minutes=math.inf,
            is_stale=True,
            source="database",
        ),
        sources=[],
        statistics=alert_statistics([]),
    )


def alert_ready_fetcher(client: httpx.AsyncClient, settings: Settings) -> LiveFetcher:
    """Live read-path fetch of the national Alert Ready feed."""

    async def fetch_live() -> list[UniversalAlert]:
        response = await client.get(
            settings.alert_ready_url,
            headers={
                "User-Agent": settings.user_agent,
                "Accept": "application/rss+xml, application/xml, text/xml",
            },
            timeout=httpx.Timeout(connect=5.0, read=15.0, write=5.0, pool=5.0),
        )
        response.raise_for_status()
        return normalize_batch(parse_feed(response.content), "alert-ready").alerts

    return fetch_live


class UnifiedDataProvider:
    """Read path over persisted and live alerts.

    Results are cached for ``cache_ttl_minutes``; the cache slot is replaced
    as a whole, never mutated. ``get_unified_data`` does not raise.
    """

    def __init__(
        self,
        db: Database,
        settings: Settings,
        *,
        live_fetcher: LiveFetcher,
        trigger: Trigger | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._db = db
        self._settings = settings
        self._live_fetcher = live_fetcher
        self._trigger = trigger
        self._clock = clock
        self._cache: _CacheEntry | None = None
        self._background_tasks: set[asyncio.Task] = set()

    async def get_unified_data(self) -> UnifiedAlertData:
        now = self._clock()
        entry = self._cache
        ttl = timedelta(minutes=self._settings.cache_ttl_minutes)
        if entry is not None and now - entry.fetched_at < ttl:
            return entry.value

        try:
            value = await self._load(now)
        except Exception:
            logger.exception("unified_data_failed")
            if self._cache is not None:
                return self._cache.value
            return empty_unified_data()

        self._cache = _CacheEntry(value=value, fetched_at=now)
        return value

    async def force_refresh(self) -> UnifiedAlertData:
        self._cache = None
        return await self.get_unified_data()

    def clear_cache(self) -> None:
        self._cache = None

    async def drain_background_tasks(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    def _read_persisted(self) -> list[UniversalAlert]:
        limits = {
            "weather_alerts": self._settings.weather_read_limit,
            "security_alerts": self._settings.security_read_limit,
            "immigration_announcements": self._settings.immigration_read_limit,
        }
        alerts: list[UniversalAlert] = []
        for table, label, defaults in _PERSISTED_TABLES:
            rows = fetch_recent_alerts(self._db, table, limit=limits[table])
            alerts.extend(
                row_to_alert(r, source_label=label, defaults=defaults) for r in rows
            )
        return alerts

    async def _fetch_live(self) -> list[UniversalAlert]:
        try:
            return await self._live_fetcher()
        except Exception as e:
            logger.warning("live_fetch_failed", error=str(e))
            return []

    async def _load(self, now: datetime) -> UnifiedAlertData:
        persisted = self._read_persisted()

        latest = parse_datetime(latest_created_at(self._db, "weather_alerts"))
        if latest is not None:
            staleness = (now - latest).total_seconds() / 60.0
            last_updated = to_iso(latest)
        else:
            staleness = math.inf
            last_updated = to_iso(_EPOCH)
        is_stale = staleness > self._settings.staleness_threshold_minutes

        alerts = persisted
        data_source = "database"
        if is_stale or not persisted:
            live = await self._fetch_live()
            if live:
                alerts = live
                data_source = "mixed" if persisted else "external_api"
                self._schedule_background_ingestion()
            else:
                logger.info("live_fetch_empty", persisted=len(persisted))

        classified = [c for c in classify_alerts(alerts) if not self._is_expired(c, now)]

        return UnifiedAlertData(
            alerts=classified,
            freshness=Freshness(
                last_updated=last_updated,
                staleness_minutes=staleness,
                is_stale=is_stale,
                source=data_source,
            ),
            sources=sorted({c.alert.source for c in classified}),
            statistics=alert_statistics(classified),
        )

    def _is_expired(self, alert: ClassifiedAlert, now: datetime) -> bool:
        expires = parse_datetime(alert.alert.expires)
        if expires is None:
            return False
        if alert.classification.type == "weather":
            grace = timedelta(hours=self._settings.weather_expiry_grace_hours)
        else:
            grace = timedelta(hours=self._settings.default_expiry_grace_hours)
        return now > expires + grace

    def _schedule_background_ingestion(self) -> None:
        if self._trigger is None:
            return
        task = asyncio.create_task(self._run_background_ingestion())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _run_background_ingestion(self) -> None:
        await asyncio.sleep(self._settings.background_ingest_delay_seconds)
        try:
            await self._trigger()
        except Exception:
            logger.exception("background_ingestion_failed")
            return
        self.clear_cache()
