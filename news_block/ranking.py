"""Relevance ranking of articles through the OpenAI chat API."""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, List, Optional, Sequence

from openai import OpenAI, OpenAIError
from sqlalchemy.exc import SQLAlchemyError

from .cache import KeyValueStore
from .exceptions import RankingUnavailable
from .models import Article, RateLimitCounter

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-3.5-turbo"
HOURLY_LIMIT = 100
QUOTA_WINDOW_SECONDS = 60 * 60
RANKING_TIMEOUT_SECONDS = 30.0
SLOW_RANKING_SECONDS = 5.0
RATE_LIMIT_KEY_PREFIX = "news_block_ai_calls_"

_JSON_ARRAY_PATTERN = re.compile(r"\[.*\]", re.DOTALL)


class RateLimiter:
    """Fixed-window call counter per identity.

    A window opens on the first recorded call and lasts ``window_seconds``;
    later calls in the same window only bump the count.
    """

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = HOURLY_LIMIT,
        window_seconds: int = QUOTA_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock

    def _key(self, identity: str) -> str:
        return f"{RATE_LIMIT_KEY_PREFIX}{identity}"

    def counter(self, identity: str) -> Optional[RateLimitCounter]:
        raw = self._store.get(self._key(identity))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            counter = RateLimitCounter(
                identity=identity,
                count=int(data["count"]),
                expires_at=float(data["expires_at"]),
            )
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring corrupt rate-limit counter for %s", identity)
            return None
        if counter.expired(self._clock()):
            return None
        return counter

    def exhausted(self, identity: str) -> bool:
        counter = self.counter(identity)
        return counter is not None and counter.count >= self.limit

    def record(self, identity: str) -> RateLimitCounter:
        now = self._clock()
        counter = self.counter(identity)
        if counter is None:
            counter = RateLimitCounter(
                identity=identity, count=1, expires_at=now + self.window_seconds
            )
        else:
            counter.count += 1

        ttl = max(1, int(counter.expires_at - now))
        payload = json.dumps({"count": counter.count, "expires_at": counter.expires_at})
        self._store.set(self._key(identity), payload, ttl)
        return counter


def build_prompt(articles: Sequence[Article], criteria: str, limit: int) -> str:
    """Compose the ranking instruction for the chat model."""
    listing = "".join(
        f"[{index}] Title: {article.title}\nDescription: {article.description}\n\n"
        for index, article in enumerate(articles)
    )
    return (
        f"Based on the user criteria: '{criteria}'\n\n"
        "Rank the following news articles by relevance (0-10 scale). "
        "Return ONLY a JSON array of objects with 'index' and 'score' properties, "
        f"ordered by score (highest first). Limit to top {limit} articles.\n\n"
        f"Articles:\n{listing}"
    )


def extract_json_array(text: str) -> Optional[Any]:
    """Decode the outermost ``[...]`` span of free text, if any."""
    match = _JSON_ARRAY_PATTERN.search(text)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except ValueError:
        return None


def parse_rankings(text: str) -> List[Any]:
    """Return the ranking list from a model reply.

    Strict JSON decoding is tried first; replies with prose around the
    array go through :func:`extract_json_array`.
    """
    try:
        decoded = json.loads(text)
    except ValueError:
        decoded = extract_json_array(text)
        if decoded is None:
            raise RankingUnavailable("Could not parse AI response")

    if not isinstance(decoded, list):
        raise RankingUnavailable("Invalid AI rankings format")
    return decoded


def _as_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def apply_rankings(
    articles: Sequence[Article], rankings: Sequence[Any], limit: int
) -> List[Article]:
    """Reorder articles by the service's ranking, skipping bad or repeated indices."""
    ranked: List[Article] = []
    seen = set()
    for ranking in rankings:
        if not isinstance(ranking, dict):
            continue
        index = _as_index(ranking.get("index"))
        if index is None or not 0 <= index < len(articles) or index in seen:
            continue
        seen.add(index)
        ranked.append(articles[index])
    return ranked[:limit]


class RelevanceFilter:
    """Ranks candidate articles against free-text criteria.

    Never raises: quota exhaustion, a missing credential and every service
    failure degrade to the first ``limit`` articles in their original order.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        credential_provider: Callable[[], Optional[str]],
        *,
        model: str = DEFAULT_MODEL,
        timeout: float = RANKING_TIMEOUT_SECONDS,
        temperature: float = 0.3,
        client_factory: Optional[Callable[[str], OpenAI]] = None,
    ) -> None:
        self._limiter = limiter
        self._credential_provider = credential_provider
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self._client_factory = client_factory or self._default_client

    def _default_client(self, api_key: str) -> OpenAI:
        return OpenAI(api_key=api_key, timeout=self.timeout)

    def rank(
        self,
        articles: Sequence[Article],
        criteria: str,
        limit: int,
        identity: str,
    ) -> List[Article]:
        fallback = list(articles[:limit])

        try:
            exhausted = self._limiter.exhausted(identity)
        except SQLAlchemyError as exc:
            logger.warning("Rate-limit counter unavailable for %s: %s", identity, exc)
            return fallback
        if exhausted:
            logger.warning("AI rate limit exceeded for %s", identity)
            return fallback

        api_key = self._credential_provider()
        if not api_key:
            logger.warning("OpenAI API key not configured; skipping AI filtering")
            return fallback

        try:
            rankings = self._request_rankings(api_key, articles, criteria, limit)
        except RankingUnavailable as exc:
            logger.warning("AI filtering unavailable, using feed order: %s", exc)
            return fallback

        try:
            self._limiter.record(identity)
        except SQLAlchemyError as exc:
            logger.warning("Could not record AI call for %s: %s", identity, exc)
        ranked = apply_rankings(articles, rankings, limit)
        logger.info(
            "AI ranking kept %d of %d articles for criteria '%s'",
            len(ranked),
            len(articles),
            criteria[:50],
        )
        return ranked

    def _request_rankings(
        self,
        api_key: str,
        articles: Sequence[Article],
        criteria: str,
        limit: int,
    ) -> List[Any]:
        prompt = build_prompt(articles, criteria, limit)
        logger.debug("Ranking request payload: %s", prompt)

        start = time.monotonic()
        try:
            client = self._client_factory(api_key)
            response = client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except OpenAIError as exc:
            raise RankingUnavailable(f"OpenAI error: {exc}") from exc

        duration = time.monotonic() - start
        if duration > SLOW_RANKING_SECONDS:
            logger.warning(
                "Slow AI filtering detected (%.2fs) for criteria: %s",
                duration,
                criteria[:50],
            )

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            content = None
        if not content:
            raise RankingUnavailable("Invalid OpenAI response")

        logger.debug("Ranking response text: %s", content)
        return parse_rankings(content)
