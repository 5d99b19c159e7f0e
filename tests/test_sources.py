from datetime import UTC, datetime
from pathlib import Path

import pytest

from ingest.feed_packs import load_feed_pack_sources
from ingest.sources import (
    AlertSource,
    SourceKind,
    ensure_sources,
    get_source,
    list_active_sources,
    resolve_source_kind,
    should_poll,
)


NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


def _source(**kwargs) -> AlertSource:
    values = {
        "id": "s1",
        "name": "Source",
        "kind": SourceKind.GENERIC,
        "api_endpoint": "https://example.org/feed",
        "polling_interval": 300,
    }
    values.update(kwargs)
    return AlertSource(**values)


def test_should_poll_without_previous_poll() -> None:
    assert should_poll(_source(last_poll_at=None), NOW)


def test_should_poll_respects_interval() -> None:
    assert not should_poll(_source(last_poll_at="2025-03-01T11:55:01Z"), NOW)
    assert should_poll(_source(last_poll_at="2025-03-01T11:55:00Z"), NOW)
    assert should_poll(_source(last_poll_at="2025-03-01T10:00:00Z"), NOW)


@pytest.mark.parametrize(
    ("raw", "kind"),
    [
        ("weather-geocmet", SourceKind.WEATHER_GEOMET),
        ("SECURITY_RSS", SourceKind.SECURITY_RSS),
        ("national", SourceKind.ALERT_READY),
        ("bc", SourceKind.BC_EMERGENCY),
        ("immigration", SourceKind.IMMIGRATION_TRAVEL),
        ("something-else", SourceKind.GENERIC),
        (None, SourceKind.GENERIC),
    ],
)
def test_resolve_source_kind(raw: str | None, kind: SourceKind) -> None:
    assert resolve_source_kind(raw) is kind


def test_resilient_kinds_and_api_key() -> None:
    assert _source(kind=SourceKind.WEATHER_GEOMET).is_resilient
    assert _source(kind=SourceKind.SECURITY_RSS).is_resilient
    assert not _source(kind=SourceKind.ALERT_READY).is_resilient
    assert _source(configuration={"api_key": "k"}).api_key == "k"
    assert _source().api_key is None


def test_ensure_sources_keeps_poll_state(db) -> None:
    ensure_sources(db, [_source()])
    with db.lock:
        db.conn.execute(
            "UPDATE alert_sources SET last_poll_at = ?, health_status = 'healthy' WHERE id = 's1';",
            ("2025-03-01T11:00:00Z",),
        )
        db.conn.commit()

    ensure_sources(db, [_source(name="Renamed", polling_interval=60)])
    source = get_source(db, "s1")
    assert source is not None
    assert source.name == "Renamed"
    assert source.polling_interval == 60
    assert source.last_poll_at == "2025-03-01T11:00:00Z"
    assert source.health_status == "healthy"


def test_list_active_sources_skips_inactive(db) -> None:
    ensure_sources(db, [_source(id="a"), _source(id="b", is_active=False)])
    assert [s.id for s in list_active_sources(db)] == ["a"]


def test_load_feed_pack_sources(tmp_path: Path) -> None:
    (tmp_path / "pack.yaml").write_text(
        """
- id: cyber
  name: Cyber Centre
  type: security_rss
  url: https://example.org/rss
  poll_seconds: 900
  configuration:
    api_key: secret
- id: local
  name: Local feed
  url: https://example.org/local.json
  enabled: false
""",
        encoding="utf-8",
    )
    packs = load_feed_pack_sources(tmp_path)
    sources = packs["pack"]
    assert sources[0].kind is SourceKind.SECURITY_RSS
    assert sources[0].polling_interval == 900
    assert sources[0].api_key == "secret"
    assert sources[1].kind is SourceKind.GENERIC
    assert not sources[1].is_active


def test_load_feed_pack_rejects_non_list(tmp_path: Path) -> None:
    (tmp_path / "bad.yaml").write_text("id: nope\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_feed_pack_sources(tmp_path)


def test_bundled_feed_pack_loads() -> None:
    feeds_dir = Path(__file__).resolve().parents[1] / "feeds"
    sources = load_feed_pack_sources(feeds_dir)["canada"]
    kinds = {s.kind for s in sources}
    assert SourceKind.WEATHER_GEOMET in kinds
    assert SourceKind.SECURITY_RSS in kinds
    assert SourceKind.IMMIGRATION_TRAVEL in kinds
