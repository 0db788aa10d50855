"""
RSS/Atom feed source for digestbot.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser
from bs4 import BeautifulSoup

from digestbot.core.article import Article
from digestbot.fetchers.base import articles_to_payload, make_article_id
from digestbot.utils.http import HttpClient

# Configure logging
logger = logging.getLogger(__name__)

FEED_HEADERS = {"Accept": "application/rss+xml, application/xml, text/xml, */*"}


def _entry_published(entry: Any) -> Optional[datetime]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime(*parsed[:6], tzinfo=timezone.utc)


def _entry_content(entry: Any) -> str:
    html = ""
    if entry.get("content"):
        html = entry["content"][0].get("value", "")
    html = html or entry.get("summary", "")
    return BeautifulSoup(html, "html.parser").get_text(" ", strip=True) if html else ""


class RSSSource:
    """
    Reads a single RSS or Atom feed.

    Every item gets the configured base tags plus the tags of any
    ``tag_rules`` keyword found in its title or content.
    """
    def __init__(self, name: str, http: HttpClient, url: str, tags: Optional[List[str]] = None,
                 tag_rules: Optional[Dict[str, str]] = None):
        """
        Initialize the RSSSource.

        Args:
            name: Configured source name
            http: Shared HTTP client
            url: Feed URL
            tags: Tags applied to every item
            tag_rules: Lower-case keyword -> tag mapping
        """
        self.name = name
        self.http = http
        self.base_url = url
        self.tags = list(tags or [])
        self.tag_rules = {keyword.lower(): tag for keyword, tag in (tag_rules or {}).items()}

    def tags_for(self, title: str, content: str) -> List[str]:
        text = f"{title} {content}".lower()
        tags = list(self.tags)
        for keyword, tag in self.tag_rules.items():
            if keyword in text and tag not in tags:
                tags.append(tag)
        return tags

    def parse_feed(self, raw: str) -> List[Article]:
        """
        Turn feed XML into articles, skipping items without a title or link.

        Args:
            raw: Feed document

        Returns:
            List of articles in feed order
        """
        feed = feedparser.parse(raw)
        if feed.bozo and not feed.entries:
            raise ValueError(f"Malformed feed from {self.base_url}: {feed.get('bozo_exception')}")

        articles = []
        for entry in feed.entries:
            title = (entry.get("title") or "").strip()
            link = (entry.get("link") or "").strip()
            if not title or not link:
                continue
            content = _entry_content(entry)
            articles.append(Article(
                id=make_article_id(self.name, link),
                title=title,
                content=content,
                url=link,
                source=self.name,
                published_at=_entry_published(entry) or datetime.now(timezone.utc),
                tags=self.tags_for(title, content),
            ))
        return articles

    async def fetch(self, limit: Optional[int] = None) -> str:
        """
        Fetch and parse the feed.

        Args:
            limit: Maximum number of items

        Returns:
            JSON-encoded list of articles
        """
        logger.info(f"Fetching RSS feed from {self.base_url}")
        raw = await self.http.get_text(self.base_url, headers=FEED_HEADERS)
        articles = self.parse_feed(raw)
        if not articles:
            logger.warning(f"No items found in RSS feed from {self.base_url}")
        if limit is not None:
            articles = articles[:limit]
        logger.info(f"Successfully parsed {len(articles)} articles from RSS feed")
        return articles_to_payload(articles)
