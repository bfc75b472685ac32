"""Feed retrieval and parsing."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

import feedparser
import requests

from .exceptions import FetchError

logger = logging.getLogger(__name__)

SLOW_FETCH_SECONDS = 2.0


@dataclass
class ParsedFeed:
    """Entries parsed from a single feed document."""

    url: str
    title: Optional[str] = None
    entries: List[Any] = field(default_factory=list)


class FeedFetcher:
    """Downloads and parses RSS/Atom documents."""

    def __init__(
        self, timeout: float = 10.0, session: Optional[requests.Session] = None
    ) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()

    def fetch(self, url: str, category: str = "") -> ParsedFeed:
        """Fetch ``url`` and return its entries; raise FetchError on any failure."""
        logger.info("Fetching feed %s", url)
        start = time.monotonic()
        try:
            return self._fetch(url)
        finally:
            duration = time.monotonic() - start
            if duration > SLOW_FETCH_SECONDS:
                logger.warning(
                    "Slow RSS fetch detected (%.2fs) for category: %s, URL: %s",
                    duration,
                    category,
                    url,
                )

    def _fetch(self, url: str) -> ParsedFeed:
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(url, str(exc)) from exc

        parsed = feedparser.parse(response.content)
        entries = list(getattr(parsed, "entries", None) or [])
        if getattr(parsed, "bozo", 0):
            problem = getattr(parsed, "bozo_exception", None) or "malformed feed"
            if not entries:
                raise FetchError(url, f"Invalid RSS/Atom feed ({problem})")
            logger.debug("Feed %s parsed with recoverable issues: %s", url, problem)

        feed_meta = getattr(parsed, "feed", None) or {}
        logger.info("Collected %d entries from feed %s", len(entries), url)
        return ParsedFeed(url=url, title=feed_meta.get("title"), entries=entries)
