"""Static articles served when live feeds cannot be fetched."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .articles import PUB_DATE_FORMAT
from .models import Article

_DEMO_CORPUS = (
    (
        "Breaking: Major Technology Breakthrough Announced",
        "technology-breakthrough",
        "Scientists have made a significant breakthrough in quantum computing "
        "technology, promising to revolutionize data processing and encryption "
        "methods worldwide.",
        "tech1",
    ),
    (
        "Global Climate Summit Reaches Historic Agreement",
        "climate-summit",
        "World leaders have signed a landmark agreement on climate action, "
        "committing to ambitious carbon reduction targets by 2030.",
        "climate1",
    ),
    (
        "Economic Growth Surpasses Expectations in Latest Quarter",
        "economic-growth",
        "The economy showed remarkable resilience with growth figures exceeding "
        "analyst predictions, driven by strong consumer spending and business "
        "investment.",
        "economy1",
    ),
    (
        "Championship Team Secures Dramatic Victory",
        "sports-victory",
        "In a thrilling finale, the home team secured victory in the final "
        "minutes, delighting fans and securing their place in history.",
        "sports1",
    ),
    (
        "New Art Exhibition Draws Record Crowds",
        "art-exhibition",
        "The highly anticipated contemporary art exhibition has broken attendance "
        "records, showcasing works from emerging and established artists alike.",
        "art1",
    ),
    (
        "Healthcare Innovation Promises Better Patient Outcomes",
        "healthcare-innovation",
        "A new medical technology has shown promising results in clinical trials, "
        "offering hope for improved treatment of chronic conditions.",
        "health1",
    ),
    (
        "Education Reform Proposals Unveiled",
        "education-reform",
        "Comprehensive education reforms have been proposed, focusing on digital "
        "literacy and preparing students for future workforce demands.",
        "education1",
    ),
    (
        "Space Exploration Mission Achieves Milestone",
        "space-mission",
        "The latest space mission has successfully achieved a critical milestone, "
        "bringing humanity closer to establishing a permanent presence beyond Earth.",
        "space1",
    ),
    (
        "Sustainability Initiative Launches in Major Cities",
        "sustainability",
        "Urban centers worldwide are implementing innovative sustainability "
        "programs, focusing on renewable energy and waste reduction.",
        "sustain1",
    ),
    (
        "Cultural Festival Celebrates Diversity and Unity",
        "cultural-festival",
        "Communities come together for an annual celebration of cultural heritage, "
        "featuring music, food, and traditions from around the world.",
        "culture1",
    ),
)


def demo_articles(count: int, now: Optional[datetime] = None) -> List[Article]:
    """Return up to ``count`` demo articles, newest first.

    Category is deliberately ignored; every caller gets the same corpus.
    """
    now = now or datetime.now(timezone.utc)
    articles = []
    for position, (title, slug, description, seed) in enumerate(_DEMO_CORPUS):
        published = now - timedelta(hours=2 * (position + 1))
        articles.append(
            Article(
                title=title,
                link=f"https://www.thetimes.co.uk/article/{slug}",
                description=description,
                pub_date=published.strftime(PUB_DATE_FORMAT),
                image=f"https://picsum.photos/seed/{seed}/800/450",
            )
        )
    return articles[: max(count, 0)]
