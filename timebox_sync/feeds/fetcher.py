"""HTTP fetching of external iCalendar feeds."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from ..core.http_client import get_shared_client

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3


class FeedFetchError(Exception):
    """Base exception for feed fetch errors."""


class FeedNetworkError(FeedFetchError):
    """Network error during feed fetch."""


class FeedTimeoutError(FeedFetchError):
    """Timeout during feed fetch."""


class FeedHTTPError(FeedFetchError):
    """Non-success HTTP status from the feed host."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def is_fetchable_url(url: str) -> bool:
    """Only absolute http(s) URLs with a host are fetched."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


class FeedFetcher:
    """Async HTTP client for downloading iCalendar documents."""

    def __init__(self, settings: Any = None, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize feed fetcher.

        Args:
            settings: Object providing request_timeout, max_retries and retry_backoff_factor
            client: Optional client to use instead of the shared one (tests inject
                one built on httpx.MockTransport)
        """
        self.request_timeout = float(getattr(settings, "request_timeout", 30))
        self.max_retries = int(getattr(settings, "max_retries", 2))
        self.backoff_factor = float(getattr(settings, "retry_backoff_factor", 1.5))
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client if self._client is not None else get_shared_client("feeds")

    def _calculate_backoff(self, attempt: int) -> float:
        """Exponential backoff with jitter to avoid synchronized retries."""
        base = min(self.backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base  # nosec B311
        return base + jitter

    async def fetch(self, url: str) -> str:
        """Download one feed document.

        Transient timeouts and network errors are retried; HTTP status errors are not.

        Raises:
            FeedFetchError: For invalid URLs and empty bodies
            FeedHTTPError: For non-2xx responses
            FeedTimeoutError: When every attempt timed out
            FeedNetworkError: When every attempt failed at the network layer
        """
        if not is_fetchable_url(url):
            raise FeedFetchError(f"Refusing to fetch non-http(s) URL: {url!r}")

        attempt = 0
        while True:
            try:
                logger.debug("Fetching feed %s (attempt %d)", url, attempt + 1)
                response = await self.client.get(url, timeout=self.request_timeout)
                response.raise_for_status()
                break
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                raise FeedHTTPError(
                    f"HTTP {status}: {e.response.reason_phrase}", status_code=status
                ) from e
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= self.max_retries:
                    if isinstance(e, httpx.TimeoutException):
                        raise FeedTimeoutError(f"Timed out fetching {url}") from e
                    raise FeedNetworkError(f"Network error fetching {url}: {e}") from e
                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "Feed fetch failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt + 1,
                    self.max_retries + 1,
                    backoff,
                    e,
                )
                await asyncio.sleep(backoff)
                attempt += 1

        content = response.text
        if not content or not content.strip():
            raise FeedFetchError(f"Empty feed document from {url}")

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(ct in content_type for ct in ("text/calendar", "text/plain")):
            logger.debug("Unexpected content type %s from %s", content_type, url)

        logger.debug("Fetched feed %s (%d bytes)", url, len(content))
        return content
