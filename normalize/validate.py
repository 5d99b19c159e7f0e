from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from normalize.dates import parse_datetime
from normalize.models import (
    SEVERITIES,
    SOURCES,
    STATUSES,
    URGENCIES,
    BatchValidationResult,
    UniversalAlert,
    ValidationResult,
)


REQUIRED_FIELDS = (
    "id",
    "title",
    "description",
    "severity",
    "urgency",
    "category",
    "status",
    "area",
    "published",
    "source",
)

_ENUM_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("severity", SEVERITIES),
    ("urgency", URGENCIES),
    ("status", STATUSES),
    ("source", SOURCES),
)

_DATE_FIELDS = ("published", "updated", "expires", "effective")


def _as_dict(alert: UniversalAlert | dict[str, Any]) -> dict[str, Any]:
    if isinstance(alert, UniversalAlert):
        return alert.to_dict()
    return dict(alert)


def _coordinate_errors(coordinates: Any) -> list[str]:
    if not isinstance(coordinates, dict):
        return ["Invalid latitude coordinate", "Invalid longitude coordinate"]
    errors: list[str] = []
    for name, limit in (("latitude", 90.0), ("longitude", 180.0)):
        value = coordinates.get(name)
        if (
            isinstance(value, bool)
            or not isinstance(value, int | float)
            or not -limit <= value <= limit
        ):
            errors.append(f"Invalid {name} coordinate")
    return errors


def validate_alert(alert: UniversalAlert | dict[str, Any]) -> ValidationResult:
    """Check one alert against the canonical schema.

    Errors make the alert invalid; warnings never do.
    """
    data = _as_dict(alert)
    errors: list[str] = []
    warnings: list[str] = []

    for name in REQUIRED_FIELDS:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(f"Missing required field: {name}")

    for name, allowed in _ENUM_FIELDS:
        value = data.get(name)
        if value is not None and value not in allowed:
            errors.append(
                f"Invalid {name}: {value}. Must be one of: {', '.join(allowed)}"
            )

    for name in _DATE_FIELDS:
        value = data.get(name)
        if value and parse_datetime(value) is None:
            errors.append(f"Invalid {name} date format")

    coordinates = data.get("coordinates")
    if coordinates is not None:
        errors.extend(_coordinate_errors(coordinates))

    if data.get("severity") in ("Extreme", "Severe") and not data.get("instructions"):
        warnings.append("High severity alert missing instructions")
    if not data.get("url"):
        warnings.append("Alert missing URL for additional details")
    if not data.get("author"):
        warnings.append("Alert missing author information")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_batch(
    alerts: Iterable[UniversalAlert | dict[str, Any]],
) -> BatchValidationResult:
    total = 0
    valid = 0
    errors: list[str] = []
    warnings: list[str] = []
    for index, alert in enumerate(alerts):
        total += 1
        result = validate_alert(alert)
        if result.is_valid:
            valid += 1
        errors.extend(f"Alert {index + 1}: {e}" for e in result.errors)
        warnings.extend(f"Alert {index + 1}: {w}" for w in result.warnings)
    return BatchValidationResult(
        total_alerts=total,
        valid_alerts=valid,
        invalid_alerts=total - valid,
        errors=errors,
        warnings=warnings,
    )
