"""
dev.to article API source for digestbot.
"""
import logging
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from digestbot.core.article import Article, parse_datetime
from digestbot.fetchers.base import articles_to_payload, make_article_id
from digestbot.utils.http import HttpClient

# Configure logging
logger = logging.getLogger(__name__)


class DevToSource:
    """
    Polls the dev.to "latest articles" API for a set of tags.
    """
    base_url = "https://dev.to/api/articles/latest"

    def __init__(self, name: str, http: HttpClient, tags: Optional[List[str]] = None):
        """
        Initialize the DevToSource.

        Args:
            name: Configured source name
            http: Shared HTTP client
            tags: dev.to tags to request
        """
        self.name = name
        self.http = http
        self.tags = list(tags or ["javascript", "react", "typescript"])

    def _to_article(self, item: Dict[str, Any]) -> Optional[Article]:
        url = item.get("url") or item.get("canonical_url")
        if not url:
            return None
        content = item.get("body_markdown") or item.get("description") or ""
        if item.get("body_html") and not content:
            content = BeautifulSoup(item["body_html"], "html.parser").get_text(" ", strip=True)
        tags = item.get("tag_list") or []
        if isinstance(tags, str):
            tags = [tag.strip() for tag in tags.split(",") if tag.strip()]
        return Article(
            id=make_article_id(self.name, url),
            title=item.get("title") or "",
            content=content,
            url=url,
            source=self.name,
            published_at=parse_datetime(item.get("published_at")),
            tags=list(tags),
        )

    async def fetch(self, limit: Optional[int] = None) -> str:
        """
        Fetch the latest articles for the configured tags.

        Args:
            limit: Optional page size

        Returns:
            JSON-encoded list of articles
        """
        params = [("page", "1")] + [("tag", tag) for tag in self.tags]
        if limit is not None:
            params.append(("per_page", str(limit)))

        data = await self.http.get_json(self.base_url, params=params)
        if not isinstance(data, list):
            logger.warning(f"Unexpected dev.to response for {self.name}: {type(data).__name__}")
            return articles_to_payload([])

        articles = [article for article in (self._to_article(item) for item in data) if article]
        if limit is not None:
            articles = articles[:limit]
        logger.info(f"Fetched {len(articles)} articles from dev.to ({', '.join(self.tags)})")
        return articles_to_payload(articles)
