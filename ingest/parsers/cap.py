from __future__ import annotations

import xml.etree.ElementTree as ET

import structlog

from normalize.dates import iso_or_none


logger = structlog.stdlib.get_logger()


def _polygon_centroid(area: ET.Element) -> tuple[float, float] | None:
    points: list[tuple[float, float]] = []
    for polygon_el in area.findall("{*}polygon"):
        polygon_text = polygon_el.text
        if not polygon_text:
            continue
        for pair in polygon_text.split():
            lat_str, lon_str = pair.split(",", maxsplit=1)
            points.append((float(lat_str), float(lon_str)))
    if not points:
        return None
    lat = sum(p[0] for p in points) / len(points)
    lon = sum(p[1] for p in points) / len(points)
    return (lat, lon)


def _alert_to_record(alert: ET.Element) -> dict | None:
    info = alert.find("{*}info")
    if info is None:
        return None

    title = (info.findtext("{*}headline") or info.findtext("{*}event") or "").strip()
    if not title:
        return None

    area_desc = None
    centroid = None
    for area in info.findall("{*}area"):
        area_desc = area.findtext("{*}areaDesc") or area_desc
        centroid = centroid or _polygon_centroid(area)

    record = {
        "guid": alert.findtext("{*}identifier") or None,
        "title": title,
        "description": (info.findtext("{*}description") or "").strip(),
        "link": info.findtext("{*}web"),
        "pubDate": iso_or_none(alert.findtext("{*}sent")),
        "status": alert.findtext("{*}status"),
        "category": info.findtext("{*}event") or info.findtext("{*}category"),
        "severity": info.findtext("{*}severity"),
        "urgency": info.findtext("{*}urgency"),
        "area": area_desc,
        "effective": iso_or_none(
            info.findtext("{*}effective") or info.findtext("{*}onset")
        ),
        "expires": iso_or_none(info.findtext("{*}expires")),
        "instructions": info.findtext("{*}instruction"),
        "author": info.findtext("{*}senderName") or alert.findtext("{*}sender"),
    }
    if centroid is not None:
        record["latitude"], record["longitude"] = centroid
    return record


def parse_cap_alerts(data: bytes | str) -> list[dict]:
    """CAP alert documents as item dicts; a malformed alert is logged and skipped."""
    root = ET.fromstring(data)
    if root.tag.endswith("alert"):
        alert_els = [root]
    else:
        alert_els = root.findall(".//{*}alert")

    records: list[dict] = []
    for index, alert in enumerate(alert_els):
        try:
            record = _alert_to_record(alert)
        except (ValueError, TypeError) as e:
            logger.warning(
                "cap_item_skipped",
                index=index,
                identifier=alert.findtext("{*}identifier"),
                error=str(e),
            )
            continue
        if record is not None:
            records.append(record)
    return records
