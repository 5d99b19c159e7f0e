from __future__ import annotations

import json

import structlog


logger = structlog.stdlib.get_logger()


def _first_position(coords: object) -> tuple[float, float] | None:
    # Descend nested rings/polygons until a [lon, lat] pair is found.
    while isinstance(coords, list) and coords and isinstance(coords[0], list):
        coords = coords[0]
    if isinstance(coords, list) and len(coords) >= 2:
        return (float(coords[0]), float(coords[1]))
    return None


def _feature_to_record(feature: dict) -> dict:
    props = feature.get("properties") or {}
    geometry = feature.get("geometry") or {}

    record = {
        "id": props.get("id") or feature.get("id") or None,
        "title": props.get("eventType") or props.get("event") or props.get("type"),
        "description": props.get("description") or props.get("headline"),
        "headline": props.get("headline"),
        "severity": props.get("severity"),
        "urgency": props.get("urgency"),
        "status": props.get("status"),
        "category": props.get("category") or props.get("event"),
        "area": props.get("areaDesc"),
        "published": props.get("sent") or props.get("onset") or props.get("effective"),
        "effective": props.get("onset") or props.get("effective"),
        "expires": props.get("expires") or props.get("expiry"),
        "instructions": props.get("instruction"),
        "author": props.get("senderName"),
        "url": props.get("url") or props.get("web"),
    }
    position = _first_position(geometry.get("coordinates"))
    if position is not None:
        record["longitude"], record["latitude"] = position
    return record


def parse_geojson_alerts(data: bytes | str) -> list[dict]:
    """Weather alert records from a GeoJSON document.

    A FeatureCollection yields one record per feature; malformed features are
    logged and skipped. A plain object carrying an ``alerts`` list is passed
    through unchanged.
    """
    doc = json.loads(data)
    if not isinstance(doc, dict):
        return []
    if doc.get("type") != "FeatureCollection":
        alerts = doc.get("alerts")
        return list(alerts) if isinstance(alerts, list) else []

    records: list[dict] = []
    for index, feature in enumerate(doc.get("features") or []):
        try:
            if not isinstance(feature, dict):
                raise TypeError("feature is not an object")
            records.append(_feature_to_record(feature))
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("feature_skipped", index=index, error=str(e))
    return records
