"""High-level orchestration of the news read path."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .articles import normalize_entries
from .cache import MemoryStore, NewsCache, RedisStore, cache_key
from .config import AppConfig, AppConfigProvider, ConfigProvider
from .demo import demo_articles
from .exceptions import FetchError
from .feeds import FeedFetcher
from .models import Article
from .ranking import RateLimiter, RelevanceFilter
from .registry import FeedRegistry
from . import db

logger = logging.getLogger(__name__)

OVERFETCH_FACTOR = 3
DEFAULT_IDENTITY = "guest"


class NewsAggregator:
    """Serves article lists through the cache, falling back to demo data."""

    def __init__(
        self,
        config_provider: ConfigProvider,
        fetcher: FeedFetcher,
        cache: NewsCache,
        ranker: RelevanceFilter,
        demo_provider: Callable[[int], List[Article]] = demo_articles,
    ) -> None:
        self._config = config_provider
        self._fetcher = fetcher
        self._cache = cache
        self._ranker = ranker
        self._demo_provider = demo_provider

    def feed_options(self) -> List[dict]:
        """Enabled feeds as ``{value, label}`` pairs."""
        return FeedRegistry(self._config.get_feed_descriptors()).options()

    def fetch_news(
        self,
        count: int = 5,
        category: str = "all",
        use_ai: bool = False,
        criteria: str = "",
        identity: str = DEFAULT_IDENTITY,
    ) -> List[Article]:
        """Return at most ``count`` articles for the category; never raises."""
        count = max(1, int(count))
        use_ai = bool(use_ai)
        criteria = criteria or ""

        key = cache_key(category, count, use_ai, criteria)
        cached = self._cache.get(key)
        if cached is not None:
            logger.info("Serving %d cached articles for %s", len(cached.articles), key)
            return cached.articles

        registry = FeedRegistry(self._config.get_feed_descriptors())
        feed_id, url = registry.resolve(category)

        try:
            feed = self._fetcher.fetch(url, category=category)
        except FetchError as exc:
            logger.error("RSS error for feed '%s': %s", feed_id, exc.message)
            return self._demo_provider(count)

        max_items = count * OVERFETCH_FACTOR if use_ai else count
        articles = normalize_entries(feed.entries, max_items)

        if use_ai and criteria.strip() and articles:
            articles = self._ranker.rank(articles, criteria, count, identity)
        else:
            articles = articles[:count]

        self._cache.put(key, articles)
        return articles


def build_aggregator(
    config: AppConfig, provider: Optional[ConfigProvider] = None
) -> NewsAggregator:
    """Wire an aggregator from application configuration."""
    provider = provider or AppConfigProvider(config)

    engine = db.init_engine(config.cache.database)
    durable = db.SqlStore(db.get_session_factory(engine))
    if config.cache.redis_url:
        fast = RedisStore.from_url(config.cache.redis_url)
    else:
        logger.info("No Redis URL configured; using in-process fast cache")
        fast = MemoryStore()

    limiter = RateLimiter(durable, limit=config.ranking.hourly_limit)
    ranker = RelevanceFilter(
        limiter,
        provider.get_ranking_credential,
        model=config.ranking.model,
        timeout=config.ranking.timeout,
        temperature=config.ranking.temperature,
    )

    return NewsAggregator(
        config_provider=provider,
        fetcher=FeedFetcher(timeout=config.fetch_timeout),
        cache=NewsCache(fast, durable, ttl_seconds=config.cache.ttl_seconds),
        ranker=ranker,
    )
