from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from normalize.dates import parse_datetime, utc_now
from store.db import Database


class SourceKind(StrEnum):
    WEATHER_GEOMET = "weather-geocmet"
    SECURITY_RSS = "security-rss"
    IMMIGRATION_TRAVEL = "immigration-travel"
    WEATHER = "weather"
    SECURITY = "security"
    POLICY = "policy"
    ALERT_READY = "alert-ready"
    BC_EMERGENCY = "bc-emergency"
    EVERBRIDGE = "everbridge"
    GENERIC = "generic"


_KIND_ALIASES: dict[str, SourceKind] = {
    "weather-geocmet": SourceKind.WEATHER_GEOMET,
    "weather-geomet": SourceKind.WEATHER_GEOMET,
    "geomet": SourceKind.WEATHER_GEOMET,
    "security-rss": SourceKind.SECURITY_RSS,
    "immigration-travel": SourceKind.IMMIGRATION_TRAVEL,
    "immigration": SourceKind.IMMIGRATION_TRAVEL,
    "travel": SourceKind.IMMIGRATION_TRAVEL,
    "weather": SourceKind.WEATHER,
    "security": SourceKind.SECURITY,
    "policy": SourceKind.POLICY,
    "alert-ready": SourceKind.ALERT_READY,
    "national": SourceKind.ALERT_READY,
    "emergency": SourceKind.ALERT_READY,
    "bc": SourceKind.BC_EMERGENCY,
    "bc-emergency": SourceKind.BC_EMERGENCY,
    "everbridge": SourceKind.EVERBRIDGE,
}

RESILIENT_KINDS = frozenset({SourceKind.WEATHER_GEOMET, SourceKind.SECURITY_RSS})
WEATHER_KINDS = frozenset({SourceKind.WEATHER_GEOMET, SourceKind.WEATHER})
SECURITY_KINDS = frozenset(
    {SourceKind.SECURITY_RSS, SourceKind.SECURITY, SourceKind.POLICY}
)
# Government weather and emergency-broadcast publishers.
OFFICIAL_KINDS = WEATHER_KINDS | {SourceKind.ALERT_READY, SourceKind.BC_EMERGENCY}


def resolve_source_kind(raw: str | None) -> SourceKind:
    key = (raw or "").strip().casefold().replace("_", "-")
    return _KIND_ALIASES.get(key, SourceKind.GENERIC)


@dataclass(frozen=True)
class AlertSource:
    id: str
    name: str
    kind: SourceKind
    api_endpoint: str
    is_active: bool = True
    polling_interval: int = 300
    last_poll_at: str | None = None
    health_status: str = "unknown"
    configuration: dict[str, Any] = field(default_factory=dict)

    @property
    def is_resilient(self) -> bool:
        return self.kind in RESILIENT_KINDS

    @property
    def api_key(self) -> str | None:
        key = self.configuration.get("api_key")
        return str(key) if key else None


def should_poll(source: AlertSource, now: datetime | None = None) -> bool:
    last_poll = parse_datetime(source.last_poll_at)
    if last_poll is None:
        return True
    now = now or utc_now()
    elapsed = (now - last_poll).total_seconds()
    return elapsed >= source.polling_interval


def _row_to_source(row: Any) -> AlertSource:
    try:
        configuration = json.loads(row["configuration"] or "{}")
    except json.JSONDecodeError:
        configuration = {}
    return AlertSource(
        id=str(row["id"]),
        name=str(row["name"]),
        kind=resolve_source_kind(row["source_type"]),
        api_endpoint=str(row["api_endpoint"]),
        is_active=bool(row["is_active"]),
        polling_interval=int(row["polling_interval"]),
        last_poll_at=row["last_poll_at"],
        health_status=str(row["health_status"]),
        configuration=configuration if isinstance(configuration, dict) else {},
    )


def list_active_sources(db: Database) -> list[AlertSource]:
    with db.lock:
        rows = db.conn.execute(
            """
            SELECT id, name, source_type, api_endpoint, is_active, polling_interval,
                   last_poll_at, health_status, configuration
            FROM alert_sources
            WHERE is_active = 1
            ORDER BY name ASC;
            """
        ).fetchall()
    return [_row_to_source(r) for r in rows]


def get_source(db: Database, source_id: str) -> AlertSource | None:
    with db.lock:
        row = db.conn.execute(
            "SELECT * FROM alert_sources WHERE id = ?;", (source_id,)
        ).fetchone()
    return _row_to_source(row) if row is not None else None


def ensure_sources(db: Database, sources: Iterable[AlertSource]) -> None:
    with db.lock:
        for source in sources:
            db.conn.execute(
                """
                INSERT OR IGNORE INTO alert_sources(
                  id, name, source_type, api_endpoint, is_active, polling_interval, configuration
                )
                VALUES(?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    source.id,
                    source.name,
                    source.kind.value,
                    source.api_endpoint,
                    1 if source.is_active else 0,
                    source.polling_interval,
                    json.dumps(source.configuration, ensure_ascii=False),
                ),
            )
            db.conn.execute(
                """
                UPDATE alert_sources
                SET name = ?,
                    source_type = ?,
                    api_endpoint = ?,
                    polling_interval = ?,
                    configuration = ?
                WHERE id = ?;
                """,
                (
                    source.name,
                    source.kind.value,
                    source.api_endpoint,
                    source.polling_interval,
                    json.dumps(source.configuration, ensure_ascii=False),
                    source.id,
                ),
            )
        db.conn.commit()
