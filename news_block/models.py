"""Shared data models for news_block."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class FeedDescriptor:
    """Configuration for a single RSS feed."""

    id: str
    label: str
    url: str
    enabled: bool = True


@dataclass(frozen=True)
class Article:
    """Normalized feed item served to callers."""

    title: str
    link: str
    description: str
    pub_date: Optional[str] = None
    image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Return the wire representation of the article."""
        return {
            "title": self.title,
            "link": self.link,
            "description": self.description,
            "pubDate": self.pub_date,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Article":
        return cls(
            title=data.get("title") or "",
            link=data.get("link") or "",
            description=data.get("description") or "",
            pub_date=data.get("pubDate") or None,
            image=data.get("image") or None,
        )


@dataclass
class CacheEntry:
    """A cached result list for one request fingerprint."""

    key: str
    articles: List[Article] = field(default_factory=list)
    written_at: Optional[datetime] = None


@dataclass
class RateLimitCounter:
    """Fixed-window counter of ranking calls for one identity."""

    identity: str
    count: int
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at
