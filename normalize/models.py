from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


SEVERITIES = ("Extreme", "Severe", "Moderate", "Minor", "Info", "Unknown")
URGENCIES = ("Immediate", "Expected", "Future", "Past", "Unknown")
STATUSES = ("Actual", "Exercise", "System", "Test", "Draft", "Unknown")
SOURCES = ("Alert Ready", "BC Emergency", "Everbridge", "Other")


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class UniversalAlert:
    id: str
    title: str
    description: str
    severity: str
    urgency: str
    category: str
    status: str
    area: str
    published: str
    source: str
    updated: str | None = None
    expires: str | None = None
    effective: str | None = None
    url: str | None = None
    instructions: str | None = None
    author: str | None = None
    coordinates: Coordinates | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.coordinates is None:
            data.pop("coordinates")
        return data


@dataclass(frozen=True)
class AlertClassification:
    type: str
    subtype: str
    icon: str
    urgency_score: float
    relevance_score: float
    is_routine: bool
    contextual_title: str


@dataclass(frozen=True)
class ClassifiedAlert:
    alert: UniversalAlert
    classification: AlertClassification

    def to_dict(self) -> dict[str, Any]:
        return {**self.alert.to_dict(), "classification": asdict(self.classification)}


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BatchValidationResult:
    total_alerts: int
    valid_alerts: int
    invalid_alerts: int
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NormalizationResult:
    alerts: list[UniversalAlert]
    errors: list[str]
    total: int
    successful: int
    failed: int
