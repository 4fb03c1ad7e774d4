"""
Market news retrieval using RSS feeds.

Provides recent Bursa Malaysia headlines for the prompt builders. Uses free
sources only (no API keys required). Each headline is tagged
POSITIVE / NEGATIVE / NEUTRAL with a keyword heuristic.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime

import feedparser

from tools.models import NewsItem, NewsSentiment
from tools.sanitize import sanitize_prompt_text

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = (
    "https://news.google.com/rss/search?"
    "q=Bursa+Malaysia+stocks&hl=en-MY&gl=MY&ceid=MY:en"
)

_POSITIVE_WORDS = {
    "gain", "gains", "rise", "rises", "rising", "surge", "surges", "rally",
    "rallies", "jump", "jumps", "up", "higher", "record", "profit", "growth",
    "beat", "beats", "upgrade", "bullish", "strong", "rebound", "dividend",
}
_NEGATIVE_WORDS = {
    "fall", "falls", "falling", "drop", "drops", "decline", "declines", "slump",
    "plunge", "plunges", "down", "lower", "loss", "losses", "miss", "misses",
    "downgrade", "bearish", "weak", "selloff", "sell-off", "cut", "warning",
}

_WORD_RE = re.compile(r"[a-z][a-z\-]*")


def tag_sentiment(headline: str) -> NewsSentiment:
    """Keyword vote over the headline; ties are NEUTRAL."""
    words = _WORD_RE.findall(headline.lower())
    pos = sum(1 for w in words if w in _POSITIVE_WORDS)
    neg = sum(1 for w in words if w in _NEGATIVE_WORDS)
    if pos > neg:
        return NewsSentiment.POSITIVE
    if neg > pos:
        return NewsSentiment.NEGATIVE
    return NewsSentiment.NEUTRAL


class NewsRetrievalTool:
    """Retrieves recent market news via an RSS feed."""

    def __init__(self, feed_url: str = DEFAULT_FEED_URL):
        self.feed_url = feed_url

    def get_news(self, max_articles: int = 10) -> list[NewsItem]:
        """Fetch, de-duplicate and tag recent headlines, newest first.

        Raises whatever the feed parser raises; the aggregator decides the
        fallback.
        """
        feed = feedparser.parse(self.feed_url)
        if getattr(feed, "bozo", False) and not feed.entries:
            raise ValueError(f"Unreadable feed: {getattr(feed, 'bozo_exception', 'unknown error')}")

        seen_titles: set[str] = set()
        items: list[NewsItem] = []
        for entry in feed.entries:
            title = sanitize_prompt_text(_clean_title(entry.get("title", "")), source="news headline")
            key = title.lower()
            if not title or key in seen_titles:
                continue
            seen_titles.add(key)

            published = None
            if entry.get("published_parsed"):
                try:
                    published = datetime(*entry.published_parsed[:6], tzinfo=UTC)
                except (TypeError, ValueError):
                    published = None

            source = entry.get("source", {})
            items.append(NewsItem(
                title=title,
                source=source.get("title", "") if isinstance(source, dict) else "",
                url=entry.get("link", ""),
                published=published,
                sentiment=tag_sentiment(title),
            ))

        items.sort(
            key=lambda n: n.published or datetime.min.replace(tzinfo=UTC),
            reverse=True,
        )
        return items[:max_articles]


def _clean_title(raw: str) -> str:
    """Strip HTML tags and the trailing ' - Publisher' suffix Google News appends."""
    clean = re.sub(r"<[^>]+>", "", raw)
    clean = clean.replace("&amp;", "&").replace("&quot;", '"').replace("&#39;", "'")
    clean = re.sub(r"\s+-\s+[^-]+$", "", clean)
    return clean.strip()
