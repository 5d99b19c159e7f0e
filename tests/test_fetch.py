import httpx
import pytest

from ingest.fetch import FetchError, accept_header_for, build_headers, fetch_with_retry
from ingest.sources import AlertSource, SourceKind


class _Recorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _source(kind: SourceKind, **kwargs) -> AlertSource:
    return AlertSource(
        id="src",
        name="Test source",
        kind=kind,
        api_endpoint="https://feeds.example.org/alerts",
        **kwargs,
    )


def _flaky_transport(failures: int, calls: list[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) <= failures:
            return httpx.Response(503)
        return httpx.Response(
            200, content=b"{}", headers={"content-type": "application/json"}
        )

    return httpx.MockTransport(handler)


def test_accept_headers_by_kind() -> None:
    assert "application/geo+json" in accept_header_for(SourceKind.WEATHER_GEOMET)
    assert accept_header_for(SourceKind.SECURITY_RSS).startswith("application/rss+xml")
    assert accept_header_for(SourceKind.IMMIGRATION_TRAVEL).startswith(
        "application/atom+xml"
    )
    assert accept_header_for(SourceKind.GENERIC) == "application/json, application/xml"


def test_build_headers_adds_bearer_and_extra_headers() -> None:
    source = _source(
        SourceKind.GENERIC,
        configuration={"api_key": "abc123", "headers": {"X-Client": "tests"}},
    )
    headers = build_headers(source, user_agent="UA/1.0")
    assert headers["Authorization"] == "Bearer abc123"
    assert headers["X-Client"] == "tests"
    assert headers["User-Agent"] == "UA/1.0"


@pytest.mark.asyncio
async def test_resilient_source_backs_off_then_succeeds() -> None:
    calls: list[httpx.Request] = []
    sleep = _Recorder()
    async with httpx.AsyncClient(transport=_flaky_transport(2, calls)) as client:
        result = await fetch_with_retry(
            client,
            _source(SourceKind.WEATHER_GEOMET),
            user_agent="UA/1.0",
            sleep=sleep,
        )
    assert result.status_code == 200
    assert result.attempts == 3
    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_resilient_source_gives_up_after_four_attempts() -> None:
    calls: list[httpx.Request] = []
    sleep = _Recorder()
    async with httpx.AsyncClient(transport=_flaky_transport(10, calls)) as client:
        with pytest.raises(FetchError) as excinfo:
            await fetch_with_retry(
                client,
                _source(SourceKind.SECURITY_RSS),
                user_agent="UA/1.0",
                sleep=sleep,
            )
    assert len(calls) == 4
    assert sleep.delays == [1.0, 2.0, 4.0]
    assert "4 attempts" in str(excinfo.value)
    assert "HTTP 503" in str(excinfo.value)
    assert excinfo.value.status_code == 503
    assert excinfo.value.attempts == 4
    assert excinfo.value.elapsed_ms is not None


@pytest.mark.asyncio
async def test_other_kinds_try_once() -> None:
    calls: list[httpx.Request] = []
    sleep = _Recorder()
    async with httpx.AsyncClient(transport=_flaky_transport(1, calls)) as client:
        with pytest.raises(FetchError) as excinfo:
            await fetch_with_retry(
                client, _source(SourceKind.ALERT_READY), user_agent="UA/1.0", sleep=sleep
            )
    assert len(calls) == 1
    assert sleep.delays == []
    assert str(excinfo.value) == "HTTP 503: Service Unavailable"


@pytest.mark.asyncio
async def test_network_errors_are_retried() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, content=b"<rss/>")

    sleep = _Recorder()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        result = await fetch_with_retry(
            client, _source(SourceKind.SECURITY_RSS), user_agent="UA/1.0", sleep=sleep
        )
    assert result.payload == b"<rss/>"
    assert sleep.delays == [1.0]
    assert result.attempts == 2
    assert result.response_time_ms >= 0


@pytest.mark.asyncio
async def test_request_carries_user_agent_and_accept() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"{}")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await fetch_with_retry(
            client,
            _source(SourceKind.IMMIGRATION_TRAVEL, configuration={"api_key": "t0k"}),
            user_agent="Security-Intelligence-Platform/1.0",
        )
    request = seen[0]
    assert request.headers["User-Agent"] == "Security-Intelligence-Platform/1.0"
    assert request.headers["Accept"].startswith("application/atom+xml")
    assert request.headers["Authorization"] == "Bearer t0k"
