"""Single entry point for XML-ish feed payloads (RSS, Atom, CAP)."""

from __future__ import annotations

import xml.etree.ElementTree as ET

import structlog

from ingest.parsers.cap import parse_cap_alerts
from ingest.parsers.rss import parse_rss


logger = structlog.stdlib.get_logger()


def parse_feed(data: bytes | str) -> list[dict]:
    """Extract alert items from a feed document.

    RSS and Atom entries are tried first; documents that yield nothing there
    and look like CAP are read as CAP alerts. Nothing recognisable gives an
    empty list rather than an error.
    """
    items = parse_rss(data)
    if items:
        return items

    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    if "<alert" not in text:
        return []
    try:
        return parse_cap_alerts(data)
    except ET.ParseError as e:
        logger.warning("cap_parse_failed", error=str(e))
        return []
