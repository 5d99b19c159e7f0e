from __future__ import annotations

import hashlib
import html
import re
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from normalize.dates import iso_or_none, utc_now_iso
from normalize.models import Coordinates, NormalizationResult, UniversalAlert


logger = structlog.stdlib.get_logger()

Accessor = Callable[[dict], Any]

_MAX_DESCRIPTION = 1000
UNSPECIFIED_AREA = "Location not specified"

_SEVERITY_SYNONYMS: dict[str, str] = {
    "extreme": "Extreme",
    "critical": "Extreme",
    "catastrophic": "Extreme",
    "emergency": "Extreme",
    "severe": "Severe",
    "major": "Severe",
    "high": "Severe",
    "moderate": "Moderate",
    "medium": "Moderate",
    "warning": "Moderate",
    "minor": "Minor",
    "low": "Minor",
    "advisory": "Minor",
    "info": "Info",
    "information": "Info",
    "informational": "Info",
}

_URGENCY_SYNONYMS: dict[str, str] = {
    "immediate": "Immediate",
    "now": "Immediate",
    "urgent": "Immediate",
    "expected": "Expected",
    "soon": "Expected",
    "likely": "Expected",
    "future": "Future",
    "later": "Future",
    "eventual": "Future",
    "past": "Past",
    "expired": "Past",
    "historical": "Past",
}

_STATUS_SYNONYMS: dict[str, str] = {
    "actual": "Actual",
    "real": "Actual",
    "live": "Actual",
    "exercise": "Exercise",
    "drill": "Exercise",
    "training": "Exercise",
    "system": "System",
    "technical": "System",
    "maintenance": "System",
    "test": "Test",
    "testing": "Test",
    "draft": "Draft",
    "preliminary": "Draft",
}

_TITLE_PREFIX_RE = re.compile(r"^(Alert|Warning|Advisory|Notice):\s*", re.IGNORECASE)
_TITLE_SUFFIX_RE = re.compile(
    r"\s*-\s*(Alert Ready|Emergency Alert|BC Emergency)$", re.IGNORECASE
)
_TITLE_TAG_RE = re.compile(r"^\[.*?\]\s*")
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def _key(name: str) -> Accessor:
    return lambda item: item.get(name)


def _prop(name: str) -> Accessor:
    def get(item: dict) -> Any:
        props = item.get("properties")
        return props.get(name) if isinstance(props, dict) else None

    return get


def _truncated(name: str, limit: int = 100) -> Accessor:
    def get(item: dict) -> Any:
        value = item.get(name)
        return str(value)[:limit] if value else None

    return get


def _first(item: dict, accessors: Iterable[Accessor]) -> Any:
    for accessor in accessors:
        value = accessor(item)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        return value
    return None


_ID_CHAIN: tuple[Accessor, ...] = (
    _key("guid"),
    _key("id"),
    _prop("id"),
    _key("link"),
    _key("url"),
)
_TITLE_CHAIN: tuple[Accessor, ...] = (
    _key("title"),
    _key("headline"),
    _key("name"),
    _key("subject"),
    _prop("headline"),
    _prop("title"),
    _prop("event"),
    _key("event_type"),
    _truncated("summary"),
    _truncated("description"),
)
_DESCRIPTION_CHAIN: tuple[Accessor, ...] = (
    _key("description"),
    _key("summary"),
    _key("message"),
    _key("content"),
    _key("details"),
    _prop("description"),
)
_SEVERITY_CHAIN: tuple[Accessor, ...] = (
    _key("severity"),
    _key("priority"),
    _key("level"),
    _prop("severity"),
)
_URGENCY_CHAIN: tuple[Accessor, ...] = (_key("urgency"), _prop("urgency"))
_STATUS_CHAIN: tuple[Accessor, ...] = (_key("status"), _prop("status"))
_CATEGORY_CHAIN: tuple[Accessor, ...] = (
    _key("category"),
    _key("type"),
    _key("event_type"),
    _prop("event"),
)
_AREA_CHAIN: tuple[Accessor, ...] = (
    _key("area"),
    _key("areaDesc"),
    _key("location"),
    _key("region"),
    _prop("areaDesc"),
)
_PUBLISHED_CHAIN: tuple[Accessor, ...] = (
    _key("published"),
    _key("pubDate"),
    _key("pub_date"),
    _key("created"),
    _key("timestamp"),
    _key("onset"),
    _prop("sent"),
    _prop("onset"),
    _prop("effective"),
)
_UPDATED_CHAIN: tuple[Accessor, ...] = (_key("updated"), _key("modified"))
_EXPIRES_CHAIN: tuple[Accessor, ...] = (
    _key("expires"),
    _key("expiry"),
    _key("expiryTime"),
    _prop("expires"),
)
_EFFECTIVE_CHAIN: tuple[Accessor, ...] = (
    _key("effective"),
    _key("onset"),
    _key("effectiveTime"),
)
_URL_CHAIN: tuple[Accessor, ...] = (_key("url"), _key("link"))
_INSTRUCTIONS_CHAIN: tuple[Accessor, ...] = (
    _key("instructions"),
    _key("instruction"),
    _key("action"),
)
_AUTHOR_CHAIN: tuple[Accessor, ...] = (
    _key("author"),
    _key("sender"),
    _key("senderName"),
)


def derive_source(source_type: str) -> str:
    """Canonical source label, decided only by the source type string."""
    text = str(source_type).casefold()
    if "alert-ready" in text or "national" in text:
        return "Alert Ready"
    if "bc" in text or "british" in text:
        return "BC Emergency"
    if "everbridge" in text:
        return "Everbridge"
    return "Other"


def _default_category(source_type: str) -> str:
    text = str(source_type).casefold()
    if "weather" in text:
        return "Weather"
    if "security" in text or "policy" in text:
        return "Security"
    if "immigration" in text or "travel" in text:
        return "Immigration"
    return "General"


def normalize_severity(value: Any, source_type: str = "") -> str:
    matched = _SEVERITY_SYNONYMS.get(str(value or "").strip().casefold())
    if matched is not None:
        return matched
    text = str(source_type).casefold()
    if "security" in text or "cyber" in text or "policy" in text:
        return "Moderate"
    if "weather" in text:
        return "Minor"
    return "Unknown"


def normalize_urgency(value: Any) -> str:
    return _URGENCY_SYNONYMS.get(str(value or "").strip().casefold(), "Unknown")


def normalize_status(value: Any) -> str:
    return _STATUS_SYNONYMS.get(str(value or "").strip().casefold(), "Unknown")


def clean_title(title: str) -> str:
    cleaned = _TITLE_PREFIX_RE.sub("", title.strip())
    cleaned = _TITLE_SUFFIX_RE.sub("", cleaned)
    cleaned = _TITLE_TAG_RE.sub("", cleaned).strip()
    if not cleaned:
        return title.strip()
    return cleaned[0].upper() + cleaned[1:]


def clean_description(description: str) -> str:
    text = _CDATA_RE.sub(r"\1", description)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    text = _WS_RE.sub(" ", text).strip()
    if len(text) > _MAX_DESCRIPTION:
        text = text[: _MAX_DESCRIPTION - 3] + "..."
    return text


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_coordinates(item: dict) -> Coordinates | None:
    lat = lon = None

    geometry = item.get("geometry")
    if isinstance(geometry, dict) and geometry.get("type") == "Point":
        point = geometry.get("coordinates") or []
        if len(point) >= 2:
            lon, lat = _to_float(point[0]), _to_float(point[1])

    if lat is None or lon is None:
        coords = item.get("coordinates")
        if isinstance(coords, dict):
            lat = _to_float(coords.get("latitude"))
            lon = _to_float(coords.get("longitude"))
        elif isinstance(coords, list | tuple) and len(coords) >= 2:
            lon, lat = _to_float(coords[0]), _to_float(coords[1])

    if lat is None or lon is None:
        lat = _to_float(item.get("latitude"))
        lon = _to_float(item.get("longitude"))

    if lat is None or lon is None:
        lat = _to_float(item.get("lat"))
        lon = _to_float(item.get("lng", item.get("lon")))

    if lat is None or lon is None:
        return None
    return Coordinates(latitude=lat, longitude=lon)


def generated_id(source_type: str, item: dict) -> str:
    basis = "|".join(
        str(_first(item, chain) or "")
        for chain in (_TITLE_CHAIN, _PUBLISHED_CHAIN, _DESCRIPTION_CHAIN)
    )
    digest = hashlib.sha256(basis.encode("utf-8")).hexdigest()[:16]
    return f"{source_type}-{digest}"


def _text(item: dict, accessors: Iterable[Accessor]) -> str | None:
    value = _first(item, accessors)
    return str(value) if value is not None else None


def normalize_alert(item: dict, source_type: str) -> UniversalAlert:
    """Map an arbitrary upstream record onto the canonical alert shape.

    Every field walks an ordered list of candidate keys and the first
    non-empty value wins; missing fields get safe defaults, so only a
    structurally broken ``item`` (e.g. not a mapping) raises.
    """
    source_type = str(source_type)

    title = str(_first(item, _TITLE_CHAIN) or f"Alert from {source_type}")
    description = str(_first(item, _DESCRIPTION_CHAIN) or "No description available")

    return UniversalAlert(
        id=str(_first(item, _ID_CHAIN) or generated_id(source_type, item)),
        title=clean_title(title),
        description=clean_description(description) or "No description available",
        severity=normalize_severity(_first(item, _SEVERITY_CHAIN), source_type),
        urgency=normalize_urgency(_first(item, _URGENCY_CHAIN)),
        category=str(_first(item, _CATEGORY_CHAIN) or _default_category(source_type)),
        status=normalize_status(_first(item, _STATUS_CHAIN) or "actual"),
        area=str(_first(item, _AREA_CHAIN) or UNSPECIFIED_AREA),
        published=iso_or_none(_first(item, _PUBLISHED_CHAIN)) or utc_now_iso(),
        source=derive_source(source_type),
        updated=iso_or_none(_first(item, _UPDATED_CHAIN)),
        expires=iso_or_none(_first(item, _EXPIRES_CHAIN)),
        effective=iso_or_none(_first(item, _EFFECTIVE_CHAIN)),
        url=_text(item, _URL_CHAIN),
        instructions=_text(item, _INSTRUCTIONS_CHAIN),
        author=_text(item, _AUTHOR_CHAIN),
        coordinates=extract_coordinates(item),
    )


def normalize_batch(items: Iterable[dict], source_type: str) -> NormalizationResult:
    alerts: list[UniversalAlert] = []
    errors: list[str] = []
    total = 0
    for index, item in enumerate(items):
        total += 1
        try:
            alerts.append(normalize_alert(item, source_type))
        except Exception as e:
            logger.warning(
                "normalize_item_failed",
                source_type=str(source_type),
                index=index,
                error=str(e),
            )
            errors.append(f"Item {index + 1}: {e}")
    return NormalizationResult(
        alerts=alerts,
        errors=errors,
        total=total,
        successful=len(alerts),
        failed=len(errors),
    )
