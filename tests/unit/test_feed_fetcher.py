"""Unit tests for FeedFetcher using httpx.MockTransport."""

import httpx
import pytest

from timebox_sync.feeds.fetcher import (
    FeedFetcher,
    FeedFetchError,
    FeedHTTPError,
    FeedNetworkError,
    FeedTimeoutError,
    is_fetchable_url,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]

FEED_URL = "https://calendar.example.com/feed.ics"


def _fetcher(simple_settings, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    fetcher = FeedFetcher(simple_settings, client=client)
    fetcher._calculate_backoff = lambda attempt: 0.0
    return fetcher, client


@pytest.mark.parametrize(
    ("url", "ok"),
    [
        ("https://example.com/a.ics", True),
        ("http://example.com/a.ics", True),
        ("webcal://example.com/a.ics", False),
        ("file:///etc/passwd", False),
        ("", False),
    ],
)
def test_is_fetchable_url_when_scheme_given_then_only_http(url, ok):
    """Only http(s) URLs with a host are fetched."""
    assert is_fetchable_url(url) is ok


@pytest.mark.asyncio
async def test_fetch_when_ok_then_returns_body(simple_settings, sample_ics_simple):
    """A 200 response body is returned as text."""
    fetcher, client = _fetcher(
        simple_settings,
        lambda request: httpx.Response(
            200, text=sample_ics_simple, headers={"content-type": "text/calendar"}
        ),
    )
    try:
        assert await fetcher.fetch(FEED_URL) == sample_ics_simple
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_fetch_when_http_error_then_not_retried(simple_settings):
    """HTTP status errors raise FeedHTTPError immediately."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404)

    fetcher, client = _fetcher(simple_settings, handler)
    try:
        with pytest.raises(FeedHTTPError) as exc_info:
            await fetcher.fetch(FEED_URL)
    finally:
        await client.aclose()

    assert exc_info.value.status_code == 404
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_fetch_when_timeouts_persist_then_retried_then_timeout_error(simple_settings):
    """Timeouts are retried max_retries times before giving up."""
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("slow", request=request)

    fetcher, client = _fetcher(simple_settings, handler)
    try:
        with pytest.raises(FeedTimeoutError):
            await fetcher.fetch(FEED_URL)
    finally:
        await client.aclose()

    assert len(calls) == simple_settings.max_retries + 1


@pytest.mark.asyncio
async def test_fetch_when_network_error_then_recovers_on_retry(simple_settings):
    """A transient connection failure followed by success returns the body."""
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, text="BEGIN:VCALENDAR\nEND:VCALENDAR")

    fetcher, client = _fetcher(simple_settings, handler)
    try:
        assert (await fetcher.fetch(FEED_URL)).startswith("BEGIN:VCALENDAR")
    finally:
        await client.aclose()
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_fetch_when_network_error_persists_then_network_error(simple_settings):
    """Exhausted connection retries raise FeedNetworkError."""

    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    fetcher, client = _fetcher(simple_settings, handler)
    try:
        with pytest.raises(FeedNetworkError):
            await fetcher.fetch(FEED_URL)
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_fetch_when_empty_body_then_fetch_error(simple_settings):
    """Empty documents are an error for that feed."""
    fetcher, client = _fetcher(simple_settings, lambda request: httpx.Response(200, text="  "))
    try:
        with pytest.raises(FeedFetchError):
            await fetcher.fetch(FEED_URL)
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_fetch_when_url_not_http_then_rejected_without_request(simple_settings):
    """Non-http URLs never reach the transport."""
    calls = []
    fetcher, client = _fetcher(simple_settings, lambda request: calls.append(request))
    try:
        with pytest.raises(FeedFetchError):
            await fetcher.fetch("ftp://example.com/feed.ics")
    finally:
        await client.aclose()
    assert calls == []
