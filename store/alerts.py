from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from normalize.dates import utc_now_iso
from normalize.models import Coordinates, UniversalAlert
from normalize.normalize import UNSPECIFIED_AREA
from store.db import ALERT_TABLES, Database


def _check_table(table: str) -> str:
    if table not in ALERT_TABLES:
        raise ValueError(f"unknown alert table: {table}")
    return table


def upsert_alerts(
    db: Database,
    table: str,
    alerts: Iterable[UniversalAlert],
    *,
    source_id: str | None = None,
    source_name: str | None = None,
    now_iso: str | None = None,
) -> int:
    """Insert or refresh alerts keyed by their natural id.

    ``created_at`` is kept from the first write; everything else, including
    ``ingested_at``, follows the latest payload.
    """
    table = _check_table(table)
    now_iso = now_iso or utc_now_iso()
    count = 0
    with db.lock:
        for alert in alerts:
            coords = alert.coordinates
            db.conn.execute(
                f"""
                INSERT INTO {table}(
                  id, source_id, source_name, title, description, severity, urgency,
                  category, status, area, published, updated, expires, effective,
                  url, instructions, author, source, latitude, longitude, raw,
                  created_at, ingested_at
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  source_id = excluded.source_id,
                  source_name = excluded.source_name,
                  title = excluded.title,
                  description = excluded.description,
                  severity = excluded.severity,
                  urgency = excluded.urgency,
                  category = excluded.category,
                  status = excluded.status,
                  area = excluded.area,
                  published = excluded.published,
                  updated = excluded.updated,
                  expires = excluded.expires,
                  effective = excluded.effective,
                  url = excluded.url,
                  instructions = excluded.instructions,
                  author = excluded.author,
                  source = excluded.source,
                  latitude = excluded.latitude,
                  longitude = excluded.longitude,
                  raw = excluded.raw,
                  ingested_at = excluded.ingested_at;
                """,
                (
                    alert.id,
                    source_id,
                    source_name,
                    alert.title,
                    alert.description,
                    alert.severity,
                    alert.urgency,
                    alert.category,
                    alert.status,
                    alert.area,
                    alert.published,
                    alert.updated,
                    alert.expires,
                    alert.effective,
                    alert.url,
                    alert.instructions,
                    alert.author,
                    alert.source,
                    coords.latitude if coords else None,
                    coords.longitude if coords else None,
                    json.dumps(alert.to_dict(), ensure_ascii=False),
                    now_iso,
                    now_iso,
                ),
            )
            count += 1
        db.conn.commit()
    return count


def fetch_recent_alerts(db: Database, table: str, *, limit: int) -> list[dict[str, Any]]:
    table = _check_table(table)
    with db.lock:
        rows = db.conn.execute(
            f"""
            SELECT *
            FROM {table}
            WHERE archived_at IS NULL
            ORDER BY created_at DESC
            LIMIT ?;
            """,
            (limit,),
        ).fetchall()
    return [dict(r) for r in rows]


def latest_created_at(db: Database, table: str) -> str | None:
    table = _check_table(table)
    with db.lock:
        row = db.conn.execute(
            f"SELECT MAX(created_at) AS latest FROM {table} WHERE archived_at IS NULL;"
        ).fetchone()
    return row["latest"] if row is not None else None


def count_rows(db: Database, table: str) -> int:
    table = _check_table(table)
    with db.lock:
        row = db.conn.execute(f"SELECT COUNT(*) AS n FROM {table};").fetchone()
    return int(row["n"])


def row_to_alert(
    row: Mapping[str, Any],
    *,
    source_label: str,
    defaults: Mapping[str, str] | None = None,
) -> UniversalAlert:
    defaults = defaults or {}

    def pick(name: str, fallback: str) -> str:
        value = row.get(name)
        if value and value != "Unknown":
            return str(value)
        return defaults.get(name, fallback)

    coordinates = None
    if row.get("latitude") is not None and row.get("longitude") is not None:
        coordinates = Coordinates(
            latitude=float(row["latitude"]), longitude=float(row["longitude"])
        )

    return UniversalAlert(
        id=str(row["id"]),
        title=pick("title", "Untitled alert"),
        description=pick("description", "No description available"),
        severity=pick("severity", "Unknown"),
        urgency=pick("urgency", "Unknown"),
        category=pick("category", "General"),
        status=pick("status", "Actual"),
        area=pick("area", UNSPECIFIED_AREA),
        published=pick("published", str(row.get("created_at") or utc_now_iso())),
        source=str(row.get("source_name") or source_label),
        updated=row.get("updated"),
        expires=row.get("expires"),
        effective=row.get("effective"),
        url=row.get("url"),
        instructions=row.get("instructions"),
        author=row.get("author"),
        coordinates=coordinates,
    )


def insert_queue_items(
    db: Database,
    *,
    source_id: str,
    payloads: Iterable[Mapping[str, Any]],
    now_iso: str | None = None,
) -> int:
    now_iso = now_iso or utc_now_iso()
    count = 0
    with db.lock:
        for payload in payloads:
            db.conn.execute(
                """
                INSERT INTO alert_ingestion_queue(
                  source_id, raw_payload, processing_status, created_at
                )
                VALUES(?, ?, 'pending', ?);
                """,
                (source_id, json.dumps(dict(payload), ensure_ascii=False), now_iso),
            )
            count += 1
        db.conn.commit()
    return count


def list_queue_items(
    db: Database, *, status: str | None = None
) -> list[dict[str, Any]]:
    with db.lock:
        if status is None:
            rows = db.conn.execute(
                "SELECT * FROM alert_ingestion_queue ORDER BY queue_id ASC;"
            ).fetchall()
        else:
            rows = db.conn.execute(
                """
                SELECT *
                FROM alert_ingestion_queue
                WHERE processing_status = ?
                ORDER BY queue_id ASC;
                """,
                (status,),
            ).fetchall()
    items = []
    for r in rows:
        item = dict(r)
        item["raw_payload"] = json.loads(item["raw_payload"])
        items.append(item)
    return items
