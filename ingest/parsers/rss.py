from __future__ import annotations

import feedparser

from normalize.dates import iso_or_none


def _position(lat: object, lon: object) -> tuple[float, float] | None:
    if not lat or not lon:
        return None
    try:
        return (float(lat), float(lon))
    except (TypeError, ValueError):
        return None


def parse_rss(data: bytes | str) -> list[dict]:
    """RSS/Atom entries as plain item dicts. Entries without a title are dropped."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    parsed = feedparser.parse(data)
    records: list[dict] = []
    for entry in parsed.entries:
        title = str(entry.get("title") or "").strip()
        if not title:
            continue

        description = entry.get("summary")
        if not description and entry.get("content"):
            description = entry["content"][0].get("value")

        raw_date = entry.get("published") or entry.get("updated")

        record = {
            "title": title,
            "description": str(description or "").strip(),
            "link": entry.get("link"),
            "pubDate": iso_or_none(raw_date) or raw_date,
            "updated": iso_or_none(entry.get("updated")),
            "guid": entry.get("id"),
            "category": entry.get("category"),
            "author": entry.get("author"),
        }

        for key, cap_key in (
            ("severity", "cap_severity"),
            ("urgency", "cap_urgency"),
            ("status", "cap_status"),
            ("area", "cap_areadesc"),
            ("expires", "cap_expires"),
            ("effective", "cap_effective"),
        ):
            value = entry.get(cap_key)
            if value:
                record[key] = str(value).strip()

        position = _position(entry.get("geo_lat"), entry.get("geo_long"))
        if position is not None:
            record["latitude"], record["longitude"] = position

        records.append(record)
    return records
