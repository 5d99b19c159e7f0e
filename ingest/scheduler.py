from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

import httpx
import structlog

from app.settings import Settings
from correlate.correlation import run_correlation_analysis
from health.health import mark_source_polled, record_health_metric
from ingest.feed_packs import load_feed_pack_sources
from ingest.fetch import FetchError, FetchResult, Sleep, fetch_with_retry
from ingest.parsers.feed import parse_feed
from ingest.parsers.geojson import parse_geojson_alerts
from ingest.parsers.json import parse_json_records
from ingest.sources import (
    OFFICIAL_KINDS,
    AlertSource,
    SourceKind,
    ensure_sources,
    list_active_sources,
    should_poll,
)
from normalize.dates import parse_datetime, to_iso, utc_now
from normalize.models import UniversalAlert
from normalize.normalize import UNSPECIFIED_AREA, normalize_batch
from normalize.validate import validate_batch
from store.alerts import insert_queue_items, upsert_alerts
from store.db import Database


logger = structlog.stdlib.get_logger()

# Kinds with a dedicated table; everything else is buffered in the queue.
_TABLE_BY_KIND: dict[SourceKind, str] = {
    SourceKind.WEATHER_GEOMET: "weather_alerts",
    SourceKind.SECURITY_RSS: "security_alerts",
    SourceKind.IMMIGRATION_TRAVEL: "immigration_announcements",
}


@dataclass(frozen=True)
class SourceOutcome:
    source_id: str
    success: bool
    records_processed: int = 0
    error: str | None = None


@dataclass(frozen=True)
class CycleReport:
    timestamp: str
    processed: int
    skipped: int
    failed: int
    correlations: int
    results: list[SourceOutcome] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def seed_sources(db: Database, feeds_dir: Path) -> int:
    packs = load_feed_pack_sources(feeds_dir)
    sources = [s for entries in packs.values() for s in entries]
    ensure_sources(db, sources)
    logger.info("sources_seeded", packs=len(packs), sources=len(sources))
    return len(sources)


def decode_payload(result: FetchResult) -> list[dict]:
    """Records from a generic payload, chosen by content type then by sniffing."""
    content_type = result.content_type.lower()
    if "json" in content_type:
        return parse_json_records(result.payload)
    if "xml" in content_type or "rss" in content_type:
        return parse_feed(result.payload)
    try:
        return parse_json_records(result.payload)
    except ValueError:
        return parse_feed(result.payload)


def _extract_items(source: AlertSource, result: FetchResult) -> list[dict]:
    if source.kind == SourceKind.WEATHER_GEOMET:
        return parse_geojson_alerts(result.payload)
    if source.kind in (SourceKind.SECURITY_RSS, SourceKind.IMMIGRATION_TRAVEL):
        return parse_feed(result.payload)
    return decode_payload(result)


def confidence_score(alert: UniversalAlert, kind: SourceKind, *, now: datetime) -> float:
    """Trust in a queued alert: 0.5 base, raised for official publishers,
    known location and recency. Capped at 1.0."""
    score = 0.5
    if kind in OFFICIAL_KINDS:
        score += 0.3
    if alert.coordinates is not None or alert.area != UNSPECIFIED_AREA:
        score += 0.1
    published = parse_datetime(alert.published)
    if published is None or now - published < timedelta(hours=24):
        score += 0.1
    return round(min(1.0, score), 2)


def _store_payload(
    db: Database, source: AlertSource, result: FetchResult, *, now: datetime
) -> int:
    now_iso = to_iso(now)
    items = _extract_items(source, result)
    normalized = normalize_batch(items, source.kind.value)
    if normalized.failed:
        logger.warning(
            "normalize_batch_partial",
            source_id=source.id,
            failed=normalized.failed,
            total=normalized.total,
        )

    validation = validate_batch(normalized.alerts)
    if validation.invalid_alerts:
        logger.info(
            "validation_issues",
            source_id=source.id,
            invalid=validation.invalid_alerts,
            errors=validation.errors[:5],
        )

    table = _TABLE_BY_KIND.get(source.kind)
    if table is not None:
        return upsert_alerts(
            db,
            table,
            normalized.alerts,
            source_id=source.id,
            source_name=source.name,
            now_iso=now_iso,
        )
    payloads = [
        {**a.to_dict(), "confidence_score": confidence_score(a, source.kind, now=now)}
        for a in normalized.alerts
    ]
    return insert_queue_items(db, source_id=source.id, payloads=payloads, now_iso=now_iso)


async def process_source(
    client: httpx.AsyncClient,
    db: Database,
    source: AlertSource,
    settings: Settings,
    *,
    now: datetime | None = None,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Fetch, parse, normalize and persist one source.

    Exactly one health metric is written per call. Failures are recorded and
    then re-raised to the caller.
    """
    now = now or utc_now()
    now_iso = to_iso(now)
    started = time.monotonic()
    try:
        async with asyncio.timeout(settings.source_deadline_seconds):
            result = await fetch_with_retry(
                client,
                source,
                user_agent=settings.user_agent,
                max_retries=settings.fetch_max_retries,
                backoff_base_ms=settings.fetch_backoff_base_ms,
                sleep=sleep,
            )
        processed = _store_payload(db, source, result, now=now)
    except Exception as e:
        if isinstance(e, TimeoutError):
            message = f"deadline of {settings.source_deadline_seconds}s exceeded"
        else:
            message = str(e) or e.__class__.__name__
        status_code = e.status_code if isinstance(e, FetchError) else None
        elapsed_ms = e.elapsed_ms if isinstance(e, FetchError) else None
        if elapsed_ms is None:
            elapsed_ms = int((time.monotonic() - started) * 1000)
        record_health_metric(
            db,
            source_id=source.id,
            success=False,
            response_time_ms=elapsed_ms,
            error_message=message,
            http_status_code=status_code,
            timestamp=now_iso,
        )
        mark_source_polled(db, source_id=source.id, healthy=False, polled_at=now_iso)
        logger.error("source_failed", source_id=source.id, error=message)
        raise

    record_health_metric(
        db,
        source_id=source.id,
        success=True,
        response_time_ms=result.response_time_ms,
        records_processed=processed,
        http_status_code=result.status_code,
        timestamp=now_iso,
    )
    mark_source_polled(db, source_id=source.id, healthy=True, polled_at=now_iso)
    logger.info(
        "source_processed",
        source_id=source.id,
        records=processed,
        attempts=result.attempts,
        response_time_ms=result.response_time_ms,
    )
    return processed


async def run_ingestion_cycle(
    settings: Settings,
    db: Database,
    client: httpx.AsyncClient,
    *,
    now: datetime | None = None,
    sleep: Sleep = asyncio.sleep,
) -> CycleReport:
    """Poll every due source once, in order, then run correlation.

    A failing source is reported and the cycle moves on to the next one.
    """
    now = now or utc_now()
    results: list[SourceOutcome] = []
    skipped = 0

    for source in list_active_sources(db):
        if not should_poll(source, now):
            skipped += 1
            logger.debug("source_skipped", source_id=source.id)
            continue
        try:
            with structlog.contextvars.bound_contextvars(source_id=source.id):
                processed = await process_source(
                    client, db, source, settings, now=now, sleep=sleep
                )
        except Exception as e:
            results.append(
                SourceOutcome(
                    source_id=source.id,
                    success=False,
                    error=str(e) or e.__class__.__name__,
                )
            )
            continue
        results.append(
            SourceOutcome(source_id=source.id, success=True, records_processed=processed)
        )

    try:
        correlations = run_correlation_analysis(
            db,
            threshold=settings.correlation_threshold,
            window_hours=settings.correlation_window_hours,
            now=now,
        )
    except Exception:
        logger.exception("correlation_failed")
        correlations = 0

    report = CycleReport(
        timestamp=to_iso(now),
        processed=sum(1 for r in results if r.success),
        skipped=skipped,
        failed=sum(1 for r in results if not r.success),
        correlations=correlations,
        results=results,
    )
    logger.info(
        "ingestion_cycle_complete",
        processed=report.processed,
        skipped=report.skipped,
        failed=report.failed,
        correlations=report.correlations,
    )
    return report
