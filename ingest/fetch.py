from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
import structlog

from ingest.sources import SECURITY_KINDS, WEATHER_KINDS, AlertSource, SourceKind


logger = structlog.stdlib.get_logger()

Sleep = Callable[[float], Awaitable[None]]

_WEATHER_ACCEPT = "application/json, application/geo+json, application/xml, text/xml"
_SECURITY_ACCEPT = "application/rss+xml, application/xml, text/xml"
_IMMIGRATION_ACCEPT = (
    "application/atom+xml, application/xml, text/xml, application/rss+xml"
)
_DEFAULT_ACCEPT = "application/json, application/xml"


class FetchError(Exception):
    def __init__(
        self,
        message: str,
        *,
        attempts: int = 1,
        status_code: int | None = None,
        elapsed_ms: int | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.status_code = status_code
        self.elapsed_ms = elapsed_ms


@dataclass(frozen=True)
class FetchResult:
    payload: bytes
    status_code: int
    content_type: str
    response_time_ms: int
    attempts: int

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")


def accept_header_for(kind: SourceKind) -> str:
    if kind in WEATHER_KINDS:
        return _WEATHER_ACCEPT
    if kind in SECURITY_KINDS:
        return _SECURITY_ACCEPT
    if kind == SourceKind.IMMIGRATION_TRAVEL:
        return _IMMIGRATION_ACCEPT
    return _DEFAULT_ACCEPT


def build_headers(source: AlertSource, *, user_agent: str) -> dict[str, str]:
    headers = {
        "User-Agent": user_agent,
        "Accept": accept_header_for(source.kind),
    }
    extra = source.configuration.get("headers")
    if isinstance(extra, dict):
        headers.update({str(k): str(v) for k, v in extra.items()})
    if source.api_key:
        headers["Authorization"] = f"Bearer {source.api_key}"
    return headers


async def fetch_once(
    client: httpx.AsyncClient,
    source: AlertSource,
    *,
    user_agent: str,
) -> httpx.Response:
    timeout = httpx.Timeout(connect=5.0, read=15.0, write=5.0, pool=5.0)
    response = await client.get(
        source.api_endpoint,
        headers=build_headers(source, user_agent=user_agent),
        timeout=timeout,
    )
    if not response.is_success:
        raise FetchError(
            f"HTTP {response.status_code}: {response.reason_phrase}",
            status_code=response.status_code,
        )
    return response


async def fetch_with_retry(
    client: httpx.AsyncClient,
    source: AlertSource,
    *,
    user_agent: str,
    max_retries: int = 3,
    backoff_base_ms: int = 1000,
    sleep: Sleep = asyncio.sleep,
) -> FetchResult:
    """Fetch a source, retrying with exponential backoff for resilient kinds.

    Resilient kinds get ``max_retries`` extra attempts, waiting
    ``backoff_base_ms * 2**attempt`` between them; other kinds get exactly
    one. Intermediate failures are logged; only the last one is raised, as a
    :class:`FetchError`.
    """
    total_attempts = max_retries + 1 if source.is_resilient else 1
    started = time.monotonic()
    last_error: Exception | None = None

    for attempt in range(total_attempts):
        try:
            response = await fetch_once(client, source, user_agent=user_agent)
        except (httpx.HTTPError, FetchError) as e:
            last_error = e
            logger.warning(
                "fetch_attempt_failed",
                source_id=source.id,
                attempt=attempt + 1,
                max_attempts=total_attempts,
                error=str(e),
            )
            if attempt + 1 < total_attempts:
                await sleep(backoff_base_ms * (2**attempt) / 1000.0)
            continue

        return FetchResult(
            payload=response.content,
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            response_time_ms=int((time.monotonic() - started) * 1000),
            attempts=attempt + 1,
        )

    elapsed_ms = int((time.monotonic() - started) * 1000)
    status_code = getattr(last_error, "status_code", None)
    if total_attempts > 1:
        message = f"{source.name} failed after {total_attempts} attempts: {last_error}"
    else:
        message = str(last_error)
    raise FetchError(
        message,
        attempts=total_attempts,
        status_code=status_code,
        elapsed_ms=elapsed_ms,
    ) from last_error
