from __future__ import annotations

from normalize.dates import utc_now_iso
from store.db import Database


def record_health_metric(
    db: Database,
    *,
    source_id: str,
    success: bool,
    response_time_ms: int,
    records_processed: int = 0,
    error_message: str | None = None,
    http_status_code: int | None = None,
    timestamp: str | None = None,
) -> None:
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO source_health_metrics(
              source_id, timestamp, success, response_time_ms, records_processed,
              error_message, http_status_code
            )
            VALUES(?, ?, ?, ?, ?, ?, ?);
            """,
            (
                source_id,
                timestamp or utc_now_iso(),
                1 if success else 0,
                response_time_ms,
                records_processed,
                error_message,
                http_status_code,
            ),
        )
        db.conn.commit()


def mark_source_polled(
    db: Database,
    *,
    source_id: str,
    healthy: bool,
    polled_at: str | None = None,
) -> None:
    with db.lock:
        db.conn.execute(
            """
            UPDATE alert_sources
            SET last_poll_at = ?,
                health_status = ?
            WHERE id = ?;
            """,
            (polled_at or utc_now_iso(), "healthy" if healthy else "error", source_id),
        )
        db.conn.commit()


def list_metrics(db: Database, source_id: str) -> list[dict]:
    with db.lock:
        rows = db.conn.execute(
            """
            SELECT metric_id, source_id, timestamp, success, response_time_ms,
                   records_processed, error_message, http_status_code
            FROM source_health_metrics
            WHERE source_id = ?
            ORDER BY metric_id ASC;
            """,
            (source_id,),
        ).fetchall()
    return [{**dict(r), "success": bool(r["success"])} for r in rows]


def latest_metrics(db: Database) -> dict[str, dict]:
    with db.lock:
        rows = db.conn.execute(
            """
            SELECT m.metric_id, m.source_id, m.timestamp, m.success, m.response_time_ms,
                   m.records_processed, m.error_message, m.http_status_code
            FROM source_health_metrics m
            JOIN (
              SELECT source_id, MAX(metric_id) AS metric_id
              FROM source_health_metrics
              GROUP BY source_id
            ) latest ON latest.metric_id = m.metric_id;
            """
        ).fetchall()
    return {str(r["source_id"]): {**dict(r), "success": bool(r["success"])} for r in rows}
