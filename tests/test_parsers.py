import json
from pathlib import Path

import pytest

from ingest.parsers.feed import parse_feed
from ingest.parsers.geojson import parse_geojson_alerts
from ingest.parsers.json import parse_json_records


FIXTURES = Path(__file__).resolve().parent / "fixtures"


def test_parse_rss_fixture_drops_untitled_items() -> None:
    data = (FIXTURES / "security.rss.xml").read_bytes()
    items = parse_feed(data)
    assert [i["title"] for i in items] == [
        "AL25-001 - Vulnerability affecting Example Server",
        "Phishing campaign targeting Canadians",
    ]
    assert "vulnerability" in items[0]["description"]
    assert items[0]["link"] == "https://www.cyber.gc.ca/en/alerts-advisories/al25-001"
    assert items[0]["guid"] == "https://www.cyber.gc.ca/en/alerts-advisories/al25-001"
    assert items[0]["pubDate"] == "2025-01-06T14:30:00Z"


def test_parse_atom_fixture() -> None:
    data = (FIXTURES / "immigration.atom.xml").read_bytes()
    items = parse_feed(data)
    assert len(items) == 1
    assert items[0]["title"] == "New visa processing measures announced"
    assert items[0]["guid"] == "urn:ircc:news:1"
    assert items[0]["author"] == "IRCC"
    assert items[0]["pubDate"] == "2025-01-08T10:00:00Z"


def test_parse_cap_fixture() -> None:
    data = (FIXTURES / "cap_alert.xml").read_bytes()
    items = parse_feed(data)
    assert len(items) == 1
    item = items[0]
    assert item["title"] == "snowfall warning in effect"
    assert item["severity"] == "Moderate"
    assert item["urgency"] == "Expected"
    assert item["area"] == "Ottawa North - Kanata - Orleans"
    assert item["expires"] == "2025-01-10T06:00:00Z"
    assert item["author"] == "Environment Canada"
    assert item["latitude"] == pytest.approx(45.25)
    assert item["longitude"] == pytest.approx(-75.875)


def _cap_alert(identifier: str, headline: str, polygon: str) -> str:
    return (
        "<alert xmlns='urn:oasis:names:tc:emergency:cap:1.2'>"
        f"<identifier>{identifier}</identifier>"
        "<sent>2025-01-09T12:00:00Z</sent><status>Actual</status>"
        f"<info><headline>{headline}</headline><severity>Severe</severity>"
        f"<area><areaDesc>Kingston</areaDesc><polygon>{polygon}</polygon></area>"
        "</info></alert>"
    )


def test_parse_cap_skips_alert_with_malformed_polygon() -> None:
    data = (
        "<alerts>"
        + _cap_alert("good-1", "good", "44.0,-76.0 44.2,-76.2")
        + _cap_alert("bad-1", "bad", "garbage")
        + _cap_alert("bad-2", "also bad", "44.0,north")
        + "</alerts>"
    )
    items = parse_feed(data)
    assert [i["title"] for i in items] == ["good"]
    assert items[0]["latitude"] == pytest.approx(44.1)
    assert items[0]["longitude"] == pytest.approx(-76.1)


def test_parse_rss_keeps_item_with_unreadable_geo() -> None:
    data = b"""<?xml version="1.0"?>
<rss version="2.0" xmlns:geo="http://www.w3.org/2003/01/geo/wgs84_pos#">
  <channel>
    <title>Advisories</title>
    <item>
      <title>Located advisory</title>
      <guid>adv-1</guid>
      <geo:lat>45.4</geo:lat>
      <geo:long>-75.7</geo:long>
    </item>
    <item>
      <title>Advisory with bad position</title>
      <guid>adv-2</guid>
      <geo:lat>n/a</geo:lat>
      <geo:long>n/a</geo:long>
    </item>
  </channel>
</rss>"""
    items = parse_feed(data)
    assert [i["title"] for i in items] == ["Located advisory", "Advisory with bad position"]
    assert items[0]["latitude"] == pytest.approx(45.4)
    assert items[0]["longitude"] == pytest.approx(-75.7)
    assert "latitude" not in items[1]
    assert "longitude" not in items[1]


def test_parse_feed_without_items_is_empty() -> None:
    data = b'<?xml version="1.0"?><rss version="2.0"><channel><title>x</title></channel></rss>'
    assert parse_feed(data) == []
    assert parse_feed(b"this is not xml at all") == []


def test_parse_geojson_skips_broken_features() -> None:
    data = (FIXTURES / "weather.geojson").read_bytes()
    records = parse_geojson_alerts(data)
    assert len(records) == 2

    first = records[0]
    assert first["id"] == "eccc-blizzard-1"
    assert first["title"] == "Blizzard warning"
    assert first["severity"] == "severe"
    assert first["effective"] == "2025-01-09T06:00:00Z"
    assert first["longitude"] == -68.5
    assert first["latitude"] == 63.7

    second = records[1]
    assert second["id"] == "f-2"
    assert second["expires"] is None
    assert second["longitude"] == -63.6
    assert second["latitude"] == 44.6


def test_parse_geojson_feature_without_properties_keeps_nulls() -> None:
    data = json.dumps(
        {"type": "FeatureCollection", "features": [{"type": "Feature", "geometry": None}]}
    )
    records = parse_geojson_alerts(data)
    assert len(records) == 1
    assert records[0]["title"] is None
    assert "latitude" not in records[0]


def test_parse_json_records_envelopes() -> None:
    assert parse_json_records(b'{"alerts": [{"title": "a"}]}') == [{"title": "a"}]
    assert parse_json_records(b'[{"title": "b"}, 3]') == [{"title": "b"}]
    assert parse_json_records(b'{"title": "c"}') == [{"title": "c"}]
    with pytest.raises(json.JSONDecodeError):
        parse_json_records(b"{not json")
