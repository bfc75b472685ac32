import textwrap
from types import SimpleNamespace

import feedparser
import pytest
from sqlalchemy.exc import OperationalError

from news_block import db
from news_block.cache import MemoryStore, NewsCache
from news_block.feeds import ParsedFeed


RSS_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/"
     xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Test Feed</title>
    <link>https://news.example.com/</link>
    <description>Test feed</description>
{items}
  </channel>
</rss>
"""


def build_rss(items):
    """Render ``items`` (raw <item> inner XML strings) into an RSS document."""
    rendered = "\n".join(
        "    <item>\n" + textwrap.indent(item.strip(), "      ") + "\n    </item>"
        for item in items
    )
    return RSS_TEMPLATE.format(items=rendered).encode("utf-8")


def simple_items(count):
    return [
        f"""
        <title>Story {i}</title>
        <link>https://news.example.com/story-{i}</link>
        <description>Description for story {i}.</description>
        <pubDate>Mon, 0{(i % 9) + 1} Jan 2024 10:00:00 +0000</pubDate>
        """
        for i in range(count)
    ]


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class BrokenStore:
    """Key-value store whose database is unavailable."""

    def get(self, key):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    def set(self, key, value, ttl_seconds):
        raise OperationalError("INSERT", {}, Exception("database is locked"))


class FakeFetcher:
    """Stands in for FeedFetcher, serving a parsed RSS document."""

    def __init__(self, document=None, error=None):
        self.document = document
        self.error = error
        self.calls = []

    def fetch(self, url, category=""):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        parsed = feedparser.parse(self.document)
        return ParsedFeed(url=url, title="Test Feed", entries=list(parsed.entries))


def fake_response(content=b"", status_error=None):
    def raise_for_status():
        if status_error is not None:
            raise status_error

    return SimpleNamespace(content=content, raise_for_status=raise_for_status)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_factory():
    engine = db.init_engine("sqlite:///:memory:")
    return db.get_session_factory(engine)


@pytest.fixture
def durable_store(session_factory, clock):
    return db.SqlStore(session_factory, clock=clock)


@pytest.fixture
def news_cache(durable_store, clock):
    return NewsCache(MemoryStore(clock=clock), durable_store)
