"""Concurrent feed collection and the fingerprint-keyed occurrence cache."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional

from ..core.async_utils import gather_settled
from ..models import ExternalOccurrence
from .fetcher import FeedFetcher
from .ics_parser import FeedParser

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "|"


def normalize_feed_urls(urls: Iterable[str]) -> list[str]:
    """Trim, drop blanks and deduplicate, keeping first-seen order."""
    seen: dict[str, None] = {}
    for url in urls:
        cleaned = (url or "").strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def feed_cache_key(urls: Iterable[str]) -> str:
    """Fingerprint of a configured URL set."""
    return KEY_SEPARATOR.join(normalize_feed_urls(urls))


class FeedCollector:
    """Fetches and parses several feeds concurrently, tolerating per-feed failure."""

    def __init__(
        self,
        settings: Any = None,
        fetcher: Optional[FeedFetcher] = None,
        parser: Optional[FeedParser] = None,
    ) -> None:
        self.fetcher = fetcher or FeedFetcher(settings)
        self.parser = parser or FeedParser(settings)

    async def collect_one(self, url: str) -> list[ExternalOccurrence]:
        """Fetch and expand one feed. Fetch errors propagate to collect_all."""
        content = await self.fetcher.fetch(url)
        return self.parser.parse(content, source_url=url).occurrences

    async def collect_all(self, urls: Iterable[str]) -> list[ExternalOccurrence]:
        """Occurrences from every feed that succeeded, in URL order."""
        unique = normalize_feed_urls(urls)
        if not unique:
            return []

        results = await gather_settled(*(self.collect_one(url) for url in unique))
        occurrences: list[ExternalOccurrence] = []
        for url, result in zip(unique, results):
            if isinstance(result, BaseException):
                logger.error("Feed %s failed: %s", url, result)
                continue
            logger.debug("Feed %s contributed %d occurrences", url, len(result))
            occurrences.extend(result)
        return occurrences


@dataclass
class _CacheEntry:
    key: str
    occurrences: list[ExternalOccurrence] = field(default_factory=list)


class FeedCache:
    """Occurrence cache keyed by the fingerprint of the configured URL set.

    A hit (same key, no forced refresh) returns the cached list unchanged. A key
    change or a forced refresh refetches every URL and replaces the entry.
    Callers that miss while a fetch for the same key is already running share
    that fetch instead of starting another one.
    """

    def __init__(self, collector: FeedCollector) -> None:
        self.collector = collector
        self._entry: Optional[_CacheEntry] = None
        self._inflight: dict[str, asyncio.Task] = {}
        self.fetch_count = 0

    @property
    def cached_key(self) -> Optional[str]:
        return self._entry.key if self._entry else None

    def invalidate(self) -> None:
        self._entry = None

    async def get_occurrences(
        self, urls: Iterable[str], force_refresh: bool = False
    ) -> list[ExternalOccurrence]:
        unique = normalize_feed_urls(urls)
        key = KEY_SEPARATOR.join(unique)
        if not key:
            return []
        if not force_refresh and self._entry is not None and self._entry.key == key:
            logger.debug("Feed cache hit (%d occurrences)", len(self._entry.occurrences))
            return self._entry.occurrences

        task = self._inflight.get(key)
        if task is None:
            logger.debug("Feed cache miss (force=%s), fetching %s", force_refresh, key)
            self.fetch_count += 1
            task = asyncio.create_task(self._fetch(key, unique))
            self._inflight[key] = task
        else:
            logger.debug("Joining in-flight fetch for %s", key)
        # One cancelled caller must not cancel the fetch the others wait on
        return await asyncio.shield(task)

    async def _fetch(self, key: str, urls: list[str]) -> list[ExternalOccurrence]:
        try:
            occurrences = await self.collector.collect_all(urls)
            self._entry = _CacheEntry(key=key, occurrences=occurrences)
            return occurrences
        finally:
            self._inflight.pop(key, None)
