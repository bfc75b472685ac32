"""Category to feed URL resolution."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Tuple

from .models import FeedDescriptor

logger = logging.getLogger(__name__)

DEFAULT_FEEDS: Tuple[FeedDescriptor, ...] = (
    FeedDescriptor("all", "All News", "http://feeds.bbci.co.uk/news/rss.xml"),
    FeedDescriptor("world", "World", "http://feeds.bbci.co.uk/news/world/rss.xml"),
    FeedDescriptor(
        "business", "Business", "http://feeds.bbci.co.uk/news/business/rss.xml"
    ),
    FeedDescriptor("sport", "Sport", "http://feeds.bbci.co.uk/news/sport/rss.xml"),
    FeedDescriptor(
        "culture",
        "Culture",
        "http://feeds.bbci.co.uk/news/entertainment_and_arts/rss.xml",
    ),
)


def _enabled_urls(feeds: Iterable[FeedDescriptor]) -> Dict[str, str]:
    urls: Dict[str, str] = {}
    for feed in feeds:
        if feed.enabled and feed.id and feed.url:
            urls[feed.id] = feed.url
    return urls


class FeedRegistry:
    """Resolves a category key against an ordered list of feed descriptors."""

    def __init__(self, feeds: Iterable[FeedDescriptor]) -> None:
        self._feeds = list(feeds)

    def _feed_urls(self) -> Dict[str, str]:
        urls = _enabled_urls(self._feeds)
        if not urls:
            logger.info("No enabled feeds configured; falling back to default feeds")
            urls = _enabled_urls(DEFAULT_FEEDS)
        return urls

    def resolve(self, category: str) -> Tuple[str, str]:
        """Return ``(feed_id, url)`` for the category, else the first enabled feed."""
        urls = self._feed_urls()
        if category in urls:
            return category, urls[category]

        # TODO: confirm whether unknown categories should map to a fixed id such as "all"
        feed_id, url = next(iter(urls.items()))
        logger.debug(
            "Unknown category '%s'; using first configured feed '%s'", category, feed_id
        )
        return feed_id, url

    def options(self) -> List[Dict[str, str]]:
        """Return enabled feeds as ``{value, label}`` pairs for pickers."""
        enabled = [feed for feed in self._feeds if feed.enabled and feed.id]
        if not enabled:
            enabled = list(DEFAULT_FEEDS)
        return [{"value": feed.id, "label": feed.label or feed.id} for feed in enabled]
