"""Two-tier caching of aggregated article lists.

The fast tier (process memory or Redis) is a cache of the durable tier
(SQL). Reads fall through fast -> durable and refill the fast tier on a
durable hit; writes go to both tiers with the same TTL. Each tier expires
its own entries.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import redis
from sqlalchemy.exc import SQLAlchemyError

from .models import Article, CacheEntry

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 15 * 60
CACHE_KEY_PREFIX = "news_block_"


class KeyValueStore(Protocol):
    """Minimal TTL-aware string store."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent or expired."""

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""


class MemoryStore:
    """Process-local store used when no shared fast tier is configured."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._items: Dict[str, Tuple[float, str]] = {}

    def get(self, key: str) -> Optional[str]:
        item = self._items.get(key)
        if item is None:
            return None
        expires_at, value = item
        if self._clock() >= expires_at:
            self._items.pop(key, None)
            return None
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._items[key] = (self._clock() + ttl_seconds, value)


class RedisStore:
    """Shared fast tier backed by Redis."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Optional[str]:
        try:
            value = self._client.get(key)
        except redis.RedisError as exc:
            logger.warning("Redis read failed for %s: %s", key, exc)
            return None
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._client.setex(key, ttl_seconds, value)
        except redis.RedisError as exc:
            logger.warning("Redis write failed for %s: %s", key, exc)


def cache_key(category: str, count: int, use_ai: bool, criteria: str) -> str:
    """Deterministic fingerprint of the request parameters."""
    material = json.dumps(
        [category, int(count), bool(use_ai), criteria], ensure_ascii=False
    )
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}{digest}"


def _encode(articles: Sequence[Article], written_at: datetime) -> str:
    return json.dumps(
        {
            "written_at": written_at.isoformat(),
            "articles": [article.to_dict() for article in articles],
        },
        ensure_ascii=False,
    )


def _decode(key: str, raw: str) -> Optional[CacheEntry]:
    try:
        payload = json.loads(raw)
        articles: List[Article] = [
            Article.from_dict(item) for item in payload["articles"]
        ]
        written_at = datetime.fromisoformat(payload["written_at"])
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
        return None
    return CacheEntry(key=key, articles=articles, written_at=written_at)


class NewsCache:
    """Facade over the fast and durable tiers."""

    def __init__(
        self,
        fast: KeyValueStore,
        durable: KeyValueStore,
        ttl_seconds: int = CACHE_TTL_SECONDS,
    ) -> None:
        self.fast = fast
        self.durable = durable
        self.ttl_seconds = ttl_seconds

    def get(self, key: str) -> Optional[CacheEntry]:
        raw = self.fast.get(key)
        if raw is not None:
            entry = _decode(key, raw)
            if entry is not None:
                logger.debug("Fast cache hit for %s", key)
                return entry

        try:
            raw = self.durable.get(key)
        except SQLAlchemyError as exc:
            logger.warning("Durable cache read failed for %s: %s", key, exc)
            return None
        if raw is None:
            logger.debug("Cache miss for %s", key)
            return None

        entry = _decode(key, raw)
        if entry is None:
            return None
        logger.debug("Durable cache hit for %s; repopulating fast tier", key)
        self.fast.set(key, raw, self.ttl_seconds)
        return entry

    def put(self, key: str, articles: Sequence[Article]) -> CacheEntry:
        written_at = datetime.now(timezone.utc)
        raw = _encode(articles, written_at)
        self.fast.set(key, raw, self.ttl_seconds)
        try:
            self.durable.set(key, raw, self.ttl_seconds)
        except SQLAlchemyError as exc:
            logger.warning("Durable cache write failed for %s: %s", key, exc)
        logger.debug("Cached %d articles under %s", len(articles), key)
        return CacheEntry(key=key, articles=list(articles), written_at=written_at)
