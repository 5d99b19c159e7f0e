from pathlib import Path

import httpx
from fastapi.testclient import TestClient

from app.main import create_app


FIXTURES = Path(__file__).resolve().parent / "fixtures"

CYBER_URL = "https://cyber.example.org/rss"
ALERT_READY_URL = "https://naad.example.org/live"
LIVE_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>NAAD</title>
    <item>
      <title>Tornado warning - Alert Ready</title>
      <description>Take shelter now.</description>
      <link>https://naad.example.org/alerts/1</link>
      <guid>naad-1</guid>
    </item>
  </channel>
</rss>
"""


def _transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == CYBER_URL:
            return httpx.Response(
                200,
                content=(FIXTURES / "security.rss.xml").read_bytes(),
                headers={"content-type": "application/rss+xml"},
            )
        if str(request.url) == ALERT_READY_URL:
            return httpx.Response(
                200,
                content=LIVE_FEED,
                headers={"content-type": "application/rss+xml"},
            )
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def test_ingest_sources_and_alerts_endpoints(settings) -> None:
    settings.feeds_dir.mkdir(parents=True)
    (settings.feeds_dir / "test.yaml").write_text(
        f"""
- id: cyber
  name: Canadian Centre for Cyber Security
  type: security-rss
  url: {CYBER_URL}
""",
        encoding="utf-8",
    )
    app = create_app(
        settings.model_copy(update={"alert_ready_url": ALERT_READY_URL}),
        transport=_transport(),
    )

    with TestClient(app) as client:
        sources = client.get("/api/sources").json()["sources"]
        assert [s["id"] for s in sources] == ["cyber"]
        assert sources[0]["kind"] == "security-rss"
        assert sources[0]["latest_metric"] is None

        report = client.post("/api/ingest").json()
        assert report["processed"] == 1
        assert report["failed"] == 0
        assert report["results"][0]["records_processed"] == 2

        metric = client.get("/api/sources").json()["sources"][0]["latest_metric"]
        assert metric["success"] is True
        assert metric["records_processed"] == 2

        data = client.get("/api/alerts").json()
        assert data["freshness"]["source"] == "mixed"
        assert data["statistics"]["total"] == 1
        assert data["alerts"][0]["title"] == "Tornado warning"
        assert data["alerts"][0]["classification"]["type"] == "weather"
        assert isinstance(data["bannerTitle"], str)
