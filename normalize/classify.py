from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from normalize.models import AlertClassification, ClassifiedAlert, UniversalAlert


WEATHER_SOURCE_KEYWORDS = (
    "environment canada",
    "environment and climate change canada",
    "alert ready",
    "weather",
    "meteorological",
)
SECURITY_SOURCE_KEYWORDS = (
    "cse",
    "csis",
    "cyber security",
    "cybersecurity",
    "security",
    "threat",
    "cisa",
    "emergency management",
)
IMMIGRATION_SOURCE_KEYWORDS = (
    "immigration",
    "ircc",
    "citizenship",
    "visa",
    "travel",
    "border",
)

_SEVERITY_WEIGHT = {"Extreme": 0.6, "Severe": 0.4, "Moderate": 0.2, "Minor": 0.1}
_URGENCY_WEIGHT = {"Immediate": 0.4, "Expected": 0.2, "Future": 0.1}

# (keywords, subtype, icon); first match wins, last entry is the fallback.
_WEATHER_SUBTYPES: tuple[tuple[tuple[str, ...], str, str], ...] = (
    (("storm", "thunder"), "storm warning", "storm"),
    (("snow", "blizzard"), "winter weather", "snow"),
    (("rain", "flood"), "precipitation alert", "rain"),
    (("wind", "gale"), "wind advisory", "wind"),
    (("heat", "temperature"), "temperature advisory", "thermometer"),
    ((), "general weather", "cloud"),
)
_SECURITY_SUBTYPES: tuple[tuple[tuple[str, ...], str, str], ...] = (
    (("cyber", "malware", "phishing"), "cyber security", "shield"),
    (("vulnerability", "exploit"), "vulnerability alert", "bug"),
    (("threat", "attack"), "threat advisory", "warning"),
    ((), "security advisory", "lock"),
)
_IMMIGRATION_SUBTYPES: tuple[tuple[tuple[str, ...], str, str], ...] = (
    (("travel", "visa"), "travel advisory", "plane"),
    (("policy", "regulation"), "policy update", "document"),
    (("service", "office"), "service advisory", "office"),
    ((), "immigration notice", "passport"),
)


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(k in text for k in keywords)


def _pick_subtype(
    content: str, table: tuple[tuple[tuple[str, ...], str, str], ...]
) -> tuple[str, str]:
    for keywords, subtype, icon in table:
        if not keywords or _contains_any(content, keywords):
            return subtype, icon
    raise ValueError("subtype table has no fallback entry")


def urgency_score(alert: UniversalAlert) -> float:
    score = _SEVERITY_WEIGHT.get(alert.severity, 0.0) + _URGENCY_WEIGHT.get(
        alert.urgency, 0.0
    )
    return min(1.0, max(0.0, score))


def _weather_relevance(alert: UniversalAlert) -> float:
    score = 0.5
    if alert.severity in ("Extreme", "Severe"):
        score += 0.3
    if alert.urgency == "Immediate":
        score += 0.2
    if alert.urgency == "Past":
        score -= 0.3
    return min(1.0, max(0.1, score))


def _classify_weather(alert: UniversalAlert, content: str) -> AlertClassification:
    subtype, icon = _pick_subtype(content, _WEATHER_SUBTYPES)
    routine = alert.severity == "Minor" and alert.urgency != "Immediate"
    return AlertClassification(
        type="weather",
        subtype=subtype,
        icon=icon,
        urgency_score=urgency_score(alert),
        relevance_score=_weather_relevance(alert),
        is_routine=routine,
        contextual_title="Weather Advisory" if routine else "Weather Alert",
    )


def _classify_security(alert: UniversalAlert, content: str) -> AlertClassification:
    subtype, icon = _pick_subtype(content, _SECURITY_SUBTYPES)
    routine = alert.severity == "Minor"
    return AlertClassification(
        type="security",
        subtype=subtype,
        icon=icon,
        urgency_score=urgency_score(alert),
        relevance_score=0.8,
        is_routine=routine,
        contextual_title="Security Notice" if routine else "Security Alert",
    )


def _classify_immigration(alert: UniversalAlert, content: str) -> AlertClassification:
    subtype, icon = _pick_subtype(content, _IMMIGRATION_SUBTYPES)
    routine = not _contains_any(content, ("urgent", "immediate"))
    return AlertClassification(
        type="immigration",
        subtype=subtype,
        icon=icon,
        urgency_score=urgency_score(alert),
        relevance_score=0.6,
        is_routine=routine,
        contextual_title="Service Notice" if routine else "Immigration Alert",
    )


def _classify_general(alert: UniversalAlert) -> AlertClassification:
    return AlertClassification(
        type="general",
        subtype="general alert",
        icon="info",
        urgency_score=urgency_score(alert),
        relevance_score=0.5,
        is_routine=alert.severity == "Minor",
        contextual_title="Public Notice",
    )


def classify_alert(alert: UniversalAlert) -> AlertClassification:
    """Semantic type, subtype and scores from the source name and text.

    The source name decides the type when it matches a known keyword set;
    otherwise the title and description are used.
    """
    source = alert.source.casefold()
    content = f"{alert.title} {alert.description}".casefold()

    if _contains_any(source, WEATHER_SOURCE_KEYWORDS):
        return _classify_weather(alert, content)
    if _contains_any(source, SECURITY_SOURCE_KEYWORDS):
        return _classify_security(alert, content)
    if _contains_any(source, IMMIGRATION_SOURCE_KEYWORDS):
        return _classify_immigration(alert, content)

    if _contains_any(content, ("weather", "storm", "temperature")):
        return _classify_weather(alert, content)
    if _contains_any(content, ("security", "cyber", "threat")):
        return _classify_security(alert, content)
    return _classify_general(alert)


def classify_alerts(alerts: Iterable[UniversalAlert]) -> list[ClassifiedAlert]:
    return [ClassifiedAlert(alert=a, classification=classify_alert(a)) for a in alerts]


def contextual_banner_title(alerts: Iterable[ClassifiedAlert]) -> str:
    alerts = list(alerts)
    if not alerts:
        return "No Active Alerts"

    critical = [a for a in alerts if not a.classification.is_routine]
    if not critical:
        return "Routine Notices & Updates"

    types = Counter(a.classification.type for a in critical)
    has_weather = types["weather"] > 0
    has_security = types["security"] > 0
    has_immigration = types["immigration"] > 0

    if has_weather and has_security:
        return "Weather & Security Alerts"
    if has_weather and has_immigration:
        return "Weather & Travel Updates"
    if has_weather:
        return "Weather & Public Safety Alerts"
    if has_security:
        return "Security & Safety Alerts"
    if has_immigration:
        return "Travel & Immigration Updates"
    return "Active Alerts & Notices"


def alert_statistics(alerts: Iterable[ClassifiedAlert]) -> dict:
    alerts = list(alerts)
    by_type = Counter(a.classification.type for a in alerts)
    routine = sum(1 for a in alerts if a.classification.is_routine)
    return {
        "total": len(alerts),
        "byType": dict(by_type),
        "routine": routine,
        "critical": len(alerts) - routine,
    }
