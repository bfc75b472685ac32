from datetime import datetime, timezone

from news_block.demo import demo_articles


def test_demo_articles_truncates_to_count():
    assert len(demo_articles(3)) == 3
    assert len(demo_articles(50)) == 10
    assert demo_articles(0) == []


def test_demo_articles_have_recent_synthetic_dates():
    now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    articles = demo_articles(10, now=now)

    assert articles[0].pub_date == "2024-06-01 10:00:00"
    assert articles[-1].pub_date == "2024-05-31 16:00:00"
    assert all(article.image for article in articles)
    assert len({article.link for article in articles}) == 10
