import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from news_block import aggregator
from news_block.aggregator import NewsAggregator, build_aggregator
from news_block.cache import MemoryStore, NewsCache, RedisStore
from news_block.config import AppConfig, CacheConfig
from news_block.demo import demo_articles
from news_block.exceptions import FetchError
from news_block.models import FeedDescriptor
from news_block.ranking import RateLimiter, RelevanceFilter

from conftest import BrokenStore, FakeFetcher, build_rss, simple_items


class StaticConfig:
    def __init__(self, feeds=None, credential="sk-test"):
        self.feeds = feeds or [
            FeedDescriptor("all", "All", "https://news.example.com/all.xml"),
            FeedDescriptor("business", "Business", "https://news.example.com/biz.xml"),
        ]
        self.credential = credential

    def get_feed_descriptors(self):
        return list(self.feeds)

    def get_ranking_credential(self):
        return self.credential


def _chat_response(text):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))]
    )


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.chat.completions.create.return_value = _chat_response(
        json.dumps([{"index": 5, "score": 9}, {"index": 2, "score": 8}, {"index": 0, "score": 1}])
    )
    return client


def _aggregator(news_cache, fetcher, clock, client, config=None):
    config = config or StaticConfig()
    limiter = RateLimiter(MemoryStore(clock=clock), clock=clock)
    ranker = RelevanceFilter(
        limiter,
        config.get_ranking_credential,
        client_factory=lambda api_key: client,
    )
    return NewsAggregator(config, fetcher, news_cache, ranker)


def test_plain_fetch_returns_first_items_in_feed_order(news_cache, clock, openai_client):
    fetcher = FakeFetcher(build_rss(simple_items(5)))
    news = _aggregator(news_cache, fetcher, clock, openai_client)

    result = news.fetch_news(3, "business", False, "")

    assert fetcher.calls == ["https://news.example.com/biz.xml"]
    assert [a.title for a in result] == ["Story 0", "Story 1", "Story 2"]
    assert result[0].link == "https://news.example.com/story-0"
    assert result[0].description == "Description for story 0."
    assert result[0].pub_date == "2024-01-01 10:00:00"
    openai_client.chat.completions.create.assert_not_called()


def test_ai_fetch_overfetches_and_returns_ranked_order(news_cache, clock, openai_client):
    fetcher = FakeFetcher(build_rss(simple_items(10)))
    news = _aggregator(news_cache, fetcher, clock, openai_client)

    result = news.fetch_news(2, "all", True, "technology")

    prompt = openai_client.chat.completions.create.call_args.kwargs["messages"][0][
        "content"
    ]
    assert "[5] Title: Story 5" in prompt
    assert "[6]" not in prompt
    assert [a.title for a in result] == ["Story 5", "Story 2"]


def test_second_identical_call_is_served_from_cache(news_cache, clock, openai_client):
    fetcher = FakeFetcher(build_rss(simple_items(5)))
    news = _aggregator(news_cache, fetcher, clock, openai_client)

    first = news.fetch_news(3, "all", False, "")
    second = news.fetch_news(3, "all", False, "")

    assert first == second
    assert len(fetcher.calls) == 1


@pytest.mark.parametrize(
    "params",
    [
        (4, "all", False, ""),
        (3, "business", False, ""),
        (3, "all", True, ""),
        (3, "all", False, "sport"),
    ],
)
def test_changing_any_parameter_misses_cache(news_cache, clock, openai_client, params):
    fetcher = FakeFetcher(build_rss(simple_items(5)))
    news = _aggregator(news_cache, fetcher, clock, openai_client)

    news.fetch_news(3, "all", False, "")
    news.fetch_news(*params)

    assert len(fetcher.calls) == 2


def test_fetch_error_returns_demo_articles_uncached(news_cache, clock, openai_client):
    fetcher = FakeFetcher(error=FetchError("https://news.example.com/all.xml", "boom"))
    news = _aggregator(news_cache, fetcher, clock, openai_client)

    result = news.fetch_news(4, "all", False, "")
    again = news.fetch_news(4, "all", False, "")

    assert [a.link for a in result] == [a.link for a in demo_articles(4)]
    assert len(again) == 4
    assert len(fetcher.calls) == 2


def test_fetch_error_with_large_count_returns_whole_demo_corpus(
    news_cache, clock, openai_client
):
    fetcher = FakeFetcher(error=FetchError("u", "boom"))
    news = _aggregator(news_cache, fetcher, clock, openai_client)

    assert len(news.fetch_news(25)) == 10


def test_malformed_ranking_reply_keeps_feed_order(news_cache, clock, openai_client):
    openai_client.chat.completions.create.return_value = _chat_response("not json")
    fetcher = FakeFetcher(build_rss(simple_items(9)))
    news = _aggregator(news_cache, fetcher, clock, openai_client)

    result = news.fetch_news(3, "all", True, "climate")

    assert [a.title for a in result] == ["Story 0", "Story 1", "Story 2"]


def test_use_ai_without_criteria_skips_ranking(news_cache, clock, openai_client):
    fetcher = FakeFetcher(build_rss(simple_items(9)))
    news = _aggregator(news_cache, fetcher, clock, openai_client)

    result = news.fetch_news(2, "all", True, "  ")

    assert [a.title for a in result] == ["Story 0", "Story 1"]
    openai_client.chat.completions.create.assert_not_called()


def test_result_never_exceeds_count(news_cache, clock, openai_client):
    fetcher = FakeFetcher(build_rss(simple_items(2)))
    news = _aggregator(news_cache, fetcher, clock, openai_client)

    assert len(news.fetch_news(5, "all", False, "")) == 2
    assert len(news.fetch_news(0, "all", False, "")) == 1


def test_feed_options_come_from_config(news_cache, clock, openai_client):
    news = _aggregator(news_cache, FakeFetcher(), clock, openai_client)

    assert news.feed_options() == [
        {"value": "all", "label": "All"},
        {"value": "business", "label": "Business"},
    ]


def test_build_aggregator_wires_memory_or_redis_fast_tier(monkeypatch, tmp_path):
    database = f"sqlite:///{tmp_path / 'cache.db'}"
    news = build_aggregator(AppConfig(cache=CacheConfig(database=database)))
    assert isinstance(news._cache.fast, MemoryStore)

    fake_redis = MagicMock()
    monkeypatch.setattr(
        aggregator.RedisStore, "from_url", classmethod(lambda cls, url: cls(fake_redis))
    )
    news = build_aggregator(
        AppConfig(cache=CacheConfig(database=database, redis_url="redis://cache:6379/0"))
    )
    assert isinstance(news._cache.fast, RedisStore)


def test_failing_durable_store_does_not_break_fetch(clock, openai_client):
    fetcher = FakeFetcher(build_rss(simple_items(9)))
    config = StaticConfig()
    ranker = RelevanceFilter(
        RateLimiter(BrokenStore(), clock=clock),
        config.get_ranking_credential,
        client_factory=lambda api_key: openai_client,
    )
    news = NewsAggregator(
        config, fetcher, NewsCache(MemoryStore(clock=clock), BrokenStore()), ranker
    )

    plain = news.fetch_news(2, "all", False, "")
    ranked = news.fetch_news(2, "all", True, "technology")

    assert [a.title for a in plain] == ["Story 0", "Story 1"]
    assert [a.title for a in ranked] == ["Story 0", "Story 1"]
    openai_client.chat.completions.create.assert_not_called()
