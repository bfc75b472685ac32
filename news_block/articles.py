"""Normalisation of raw feed entries into Article records."""

from __future__ import annotations

import html
import logging
import re
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, List, Mapping, Optional, Sequence

from bs4 import BeautifulSoup

from .models import Article

logger = logging.getLogger(__name__)

DESCRIPTION_WORDS = 30
PUB_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ELLIPSIS = "…"

_IMG_PATTERNS = (
    re.compile(r"""<img[^>]+src=["']([^"']+)["'][^>]*>""", re.IGNORECASE),
    re.compile(r"""<img[^>]+src=([^\s>]+)""", re.IGNORECASE),
)
_OG_IMAGE_PATTERN = re.compile(r"""og:image["']?\s+content=["']([^"']+)["']""")


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(name)
    return getattr(entry, name, None)


def _first(items: Any) -> Optional[Mapping[str, Any]]:
    if not items:
        return None
    try:
        item = items[0]
    except (TypeError, IndexError, KeyError):
        return None
    return item if isinstance(item, Mapping) else None


def _raw_description(entry: Any) -> str:
    return _field(entry, "summary") or _field(entry, "description") or ""


def _raw_content(entry: Any) -> str:
    content = _first(_field(entry, "content"))
    value = content.get("value") if content else None
    return value or ""


def _media_thumbnail_image(entry: Any) -> Optional[str]:
    thumbnail = _first(_field(entry, "media_thumbnail"))
    return thumbnail.get("url") if thumbnail else None


def _enclosure_image(entry: Any) -> Optional[str]:
    # feedparser keeps media:thumbnail on the entry, not on the enclosure.
    enclosure = _first(_field(entry, "enclosures"))
    if enclosure is None:
        return None
    return (
        _media_thumbnail_image(entry)
        or enclosure.get("href")
        or enclosure.get("url")
    )


def _media_content_image(entry: Any) -> Optional[str]:
    media = _first(_field(entry, "media_content"))
    if not media or not media.get("url"):
        return None
    if "image" in (media.get("type") or ""):
        return media["url"]
    return None


def _inline_img_image(entry: Any) -> Optional[str]:
    body = _raw_content(entry) or _raw_description(entry)
    for pattern in _IMG_PATTERNS:
        match = pattern.search(body)
        if match:
            return match.group(1).strip("'\"")
    return None


def _og_image(entry: Any) -> Optional[str]:
    match = _OG_IMAGE_PATTERN.search(_raw_description(entry))
    return match.group(1) if match else None


IMAGE_STRATEGIES: Sequence[Callable[[Any], Optional[str]]] = (
    _enclosure_image,
    _media_thumbnail_image,
    _media_content_image,
    _inline_img_image,
    _og_image,
)


def extract_image(entry: Any) -> Optional[str]:
    """Return the first image URL found by the strategies, in priority order."""
    for strategy in IMAGE_STRATEGIES:
        image = strategy(entry)
        if image:
            return image
    return None


def _strip_html(raw_value: str) -> str:
    """Return text content extracted from HTML fragments."""
    soup = BeautifulSoup(raw_value, "html.parser")
    text = soup.get_text(separator=" ", strip=True)
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


def trim_words(text: str, limit: int = DESCRIPTION_WORDS, more: str = ELLIPSIS) -> str:
    """Keep the first ``limit`` words, appending ``more`` when words were cut."""
    words = text.split()
    if len(words) <= limit:
        return " ".join(words)
    return " ".join(words[:limit]) + more


def format_pub_date(entry: Any) -> Optional[str]:
    """Render the entry date as ``YYYY-MM-DD HH:MM:SS`` in the feed's own zone."""
    raw = _field(entry, "published") or _field(entry, "updated")
    if raw:
        parsed: Optional[datetime] = None
        try:
            parsed = parsedate_to_datetime(raw)
        except (TypeError, ValueError, IndexError):
            try:
                parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
            except ValueError:
                parsed = None
        if parsed is not None:
            return parsed.strftime(PUB_DATE_FORMAT)
        logger.debug("Unrecognised date format: %r", raw)

    struct = _field(entry, "published_parsed") or _field(entry, "updated_parsed")
    if isinstance(struct, time.struct_time):
        return datetime(*struct[:6], tzinfo=timezone.utc).strftime(PUB_DATE_FORMAT)
    return None


def normalize_entry(entry: Any) -> Article:
    """Map a raw feed entry to an Article."""
    description = trim_words(_strip_html(_raw_description(entry)))
    return Article(
        title=html.unescape(_field(entry, "title") or ""),
        link=_field(entry, "link") or "",
        description=description,
        pub_date=format_pub_date(entry),
        image=extract_image(entry),
    )


def normalize_entries(entries: Sequence[Any], limit: int) -> List[Article]:
    """Normalise the first ``limit`` entries, keeping feed order."""
    articles = [normalize_entry(entry) for entry in list(entries)[:limit]]
    logger.debug("Normalised %d of %d feed entries", len(articles), len(entries))
    return articles
