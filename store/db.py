from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Database:
    conn: sqlite3.Connection
    lock: threading.Lock


ALERT_TABLES = ("weather_alerts", "security_alerts", "immigration_announcements")


def _alert_table_sql(table: str) -> str:
    return f"""
        CREATE TABLE IF NOT EXISTS {table} (
          id TEXT NOT NULL PRIMARY KEY,
          source_id TEXT NULL,
          source_name TEXT NULL,
          title TEXT NOT NULL,
          description TEXT NOT NULL,
          severity TEXT NOT NULL,
          urgency TEXT NOT NULL,
          category TEXT NOT NULL,
          status TEXT NOT NULL,
          area TEXT NOT NULL,
          published TEXT NOT NULL,
          updated TEXT NULL,
          expires TEXT NULL,
          effective TEXT NULL,
          url TEXT NULL,
          instructions TEXT NULL,
          author TEXT NULL,
          source TEXT NOT NULL,
          latitude REAL NULL,
          longitude REAL NULL,
          raw TEXT NOT NULL DEFAULT '{{}}',
          created_at TEXT NOT NULL,
          ingested_at TEXT NOT NULL,
          archived_at TEXT NULL
        );

        CREATE INDEX IF NOT EXISTS {table}_created_at_idx ON {table}(created_at);
    """


_MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version INTEGER NOT NULL PRIMARY KEY
        );

        CREATE TABLE IF NOT EXISTS alert_sources (
          id TEXT NOT NULL PRIMARY KEY,
          name TEXT NOT NULL,
          source_type TEXT NOT NULL,
          api_endpoint TEXT NOT NULL,
          is_active INTEGER NOT NULL DEFAULT 1,
          polling_interval INTEGER NOT NULL DEFAULT 300,
          last_poll_at TEXT NULL,
          health_status TEXT NOT NULL DEFAULT 'unknown',
          configuration TEXT NOT NULL DEFAULT '{}'
        );

        CREATE TABLE IF NOT EXISTS source_health_metrics (
          metric_id INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT,
          source_id TEXT NOT NULL,
          timestamp TEXT NOT NULL,
          success INTEGER NOT NULL,
          response_time_ms INTEGER NOT NULL,
          records_processed INTEGER NOT NULL DEFAULT 0,
          error_message TEXT NULL,
          http_status_code INTEGER NULL
        );

        CREATE INDEX IF NOT EXISTS source_health_metrics_source_idx
          ON source_health_metrics(source_id, timestamp);

        CREATE TABLE IF NOT EXISTS alert_ingestion_queue (
          queue_id INTEGER NOT NULL PRIMARY KEY AUTOINCREMENT,
          source_id TEXT NOT NULL,
          raw_payload TEXT NOT NULL,
          processing_status TEXT NOT NULL DEFAULT 'pending',
          processing_attempts INTEGER NOT NULL DEFAULT 0,
          created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS alert_ingestion_queue_status_idx
          ON alert_ingestion_queue(processing_status, created_at);

        CREATE TABLE IF NOT EXISTS incidents (
          id TEXT NOT NULL PRIMARY KEY,
          title TEXT NOT NULL,
          description TEXT NOT NULL DEFAULT '',
          timestamp TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS incidents_timestamp_idx ON incidents(timestamp);

        CREATE TABLE IF NOT EXISTS alert_correlations (
          primary_incident_id TEXT NOT NULL,
          related_incident_id TEXT NOT NULL,
          correlation_type TEXT NOT NULL,
          confidence_score REAL NOT NULL,
          updated_at TEXT NOT NULL,
          PRIMARY KEY (primary_incident_id, related_incident_id)
        );
        """
        + "".join(_alert_table_sql(t) for t in ALERT_TABLES),
    ),
]


def open_database(path: Path) -> Database:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA busy_timeout=5000;")
    _apply_migrations(conn)
    return Database(conn=conn, lock=threading.Lock())


def close_database(db: Database) -> None:
    with db.lock:
        db.conn.close()


def _apply_migrations(conn: sqlite3.Connection) -> None:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER NOT NULL PRIMARY KEY);"
    )
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) AS v FROM schema_migrations;"
    ).fetchone()
    current_version = int(row["v"])

    for version, sql in _MIGRATIONS:
        if version <= current_version:
            continue
        conn.executescript(sql)
        conn.execute("INSERT INTO schema_migrations(version) VALUES (?);", (version,))
        conn.commit()
