"""Error types raised inside news_block."""


class NewsBlockError(Exception):
    """Base class for news_block errors."""


class FetchError(NewsBlockError):
    """Raised when an RSS/Atom feed cannot be fetched or parsed."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        self.message = message
        super().__init__(f"Failed to fetch feed {url}: {message}")


class RankingUnavailable(NewsBlockError):
    """Raised when the relevance service cannot produce a usable ranking."""
