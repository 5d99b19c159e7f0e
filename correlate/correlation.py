from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from normalize.dates import to_iso, utc_now
from store.db import Database


logger = structlog.stdlib.get_logger()


@dataclass(frozen=True)
class Incident:
    id: str
    title: str
    description: str = ""


@dataclass(frozen=True)
class CorrelationEdge:
    primary_incident_id: str
    related_incident_id: str
    correlation_type: str
    confidence_score: float


def word_set(incident: Incident) -> set[str]:
    text = f"{incident.title} {incident.description}".lower()
    return {w for w in text.split() if w}


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def find_correlations(
    incidents: list[Incident], *, threshold: float = 0.7
) -> list[CorrelationEdge]:
    """Pairwise lexical correlation; quadratic in ``len(incidents)``."""
    words = [word_set(i) for i in incidents]
    edges: list[CorrelationEdge] = []
    for i in range(len(incidents)):
        for j in range(i + 1, len(incidents)):
            similarity = jaccard_similarity(words[i], words[j])
            if similarity > threshold:
                edges.append(
                    CorrelationEdge(
                        primary_incident_id=incidents[i].id,
                        related_incident_id=incidents[j].id,
                        correlation_type="semantic",
                        confidence_score=similarity,
                    )
                )
    return edges


def record_incident(
    db: Database,
    *,
    incident_id: str,
    title: str,
    description: str = "",
    timestamp: str | None = None,
) -> None:
    with db.lock:
        db.conn.execute(
            """
            INSERT INTO incidents(id, title, description, timestamp)
            VALUES(?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              title = excluded.title,
              description = excluded.description,
              timestamp = excluded.timestamp;
            """,
            (incident_id, title, description, timestamp or to_iso(utc_now())),
        )
        db.conn.commit()


def recent_incidents(db: Database, *, since_iso: str) -> list[Incident]:
    with db.lock:
        rows = db.conn.execute(
            """
            SELECT id, title, description
            FROM incidents
            WHERE timestamp >= ?
            ORDER BY timestamp DESC;
            """,
            (since_iso,),
        ).fetchall()
    return [
        Incident(id=str(r["id"]), title=str(r["title"]), description=str(r["description"] or ""))
        for r in rows
    ]


def upsert_correlations(
    db: Database, edges: list[CorrelationEdge], *, now_iso: str
) -> int:
    with db.lock:
        for edge in edges:
            db.conn.execute(
                """
                INSERT INTO alert_correlations(
                  primary_incident_id, related_incident_id, correlation_type,
                  confidence_score, updated_at
                )
                VALUES(?, ?, ?, ?, ?)
                ON CONFLICT(primary_incident_id, related_incident_id) DO UPDATE SET
                  correlation_type = excluded.correlation_type,
                  confidence_score = excluded.confidence_score,
                  updated_at = excluded.updated_at;
                """,
                (
                    edge.primary_incident_id,
                    edge.related_incident_id,
                    edge.correlation_type,
                    edge.confidence_score,
                    now_iso,
                ),
            )
        db.conn.commit()
    return len(edges)


def list_correlations(db: Database) -> list[CorrelationEdge]:
    with db.lock:
        rows = db.conn.execute(
            """
            SELECT primary_incident_id, related_incident_id, correlation_type, confidence_score
            FROM alert_correlations
            ORDER BY primary_incident_id, related_incident_id;
            """
        ).fetchall()
    return [
        CorrelationEdge(
            primary_incident_id=str(r["primary_incident_id"]),
            related_incident_id=str(r["related_incident_id"]),
            correlation_type=str(r["correlation_type"]),
            confidence_score=float(r["confidence_score"]),
        )
        for r in rows
    ]


def run_correlation_analysis(
    db: Database,
    *,
    threshold: float = 0.7,
    window_hours: int = 24,
    now: datetime | None = None,
) -> int:
    now = now or utc_now()
    incidents = recent_incidents(db, since_iso=to_iso(now - timedelta(hours=window_hours)))
    if len(incidents) < 2:
        return 0
    edges = find_correlations(incidents, threshold=threshold)
    upsert_correlations(db, edges, now_iso=to_iso(now))
    logger.info("correlation_complete", incidents=len(incidents), edges=len(edges))
    return len(edges)
