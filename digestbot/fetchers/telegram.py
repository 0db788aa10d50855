"""
Telegram public channel source for digestbot.

Scrapes the web preview at https://t.me/s/<channel>; no bot API access needed.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from bs4 import BeautifulSoup

from digestbot.core.article import Article, parse_datetime
from digestbot.fetchers.base import articles_to_payload, make_article_id
from digestbot.utils.http import HttpClient

# Configure logging
logger = logging.getLogger(__name__)

MOSCOW_TZ = timezone(timedelta(hours=3))


class TelegramSource:
    """
    Collects recent posts from a list of public Telegram channels.
    """
    base_url = "https://t.me/"

    def __init__(self, name: str, http: HttpClient, channels: List[str], lookback_days: int = 1,
                 now: Optional[Callable[[], datetime]] = None):
        """
        Initialize the TelegramSource.

        Args:
            name: Configured source name
            http: Shared HTTP client
            channels: Channel usernames without the leading @
            lookback_days: Number of calendar days (Moscow time) to keep, today included
            now: Clock override for tests
        """
        self.name = name
        self.http = http
        self.channels = [channel.lstrip("@") for channel in channels]
        self.lookback_days = max(1, lookback_days)
        self._now = now or (lambda: datetime.now(timezone.utc))

    def window_start(self) -> datetime:
        """Start of the oldest calendar day still inside the lookback window."""
        local_now = self._now().astimezone(MOSCOW_TZ)
        start_of_day = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        return start_of_day - timedelta(days=self.lookback_days - 1)

    def parse_posts(self, html: str, channel: str) -> List[Article]:
        """
        Extract posts from a channel preview page.

        Args:
            html: Page HTML
            channel: Channel username, used for logging

        Returns:
            Articles with empty titles; posts without text are skipped
        """
        soup = BeautifulSoup(html, "html.parser")
        articles = []
        for message in soup.select("div.tgme_widget_message[data-post]"):
            text_node = message.select_one("div.tgme_widget_message_text")
            if text_node is None:
                continue
            content = " ".join(text_node.get_text(" ", strip=True).split())
            if not content:
                continue

            time_node = message.select_one("time[datetime]")
            published_at = None
            if time_node is not None:
                try:
                    published_at = parse_datetime(time_node["datetime"])
                except ValueError:
                    logger.debug(f"Unparseable post time in {channel}: {time_node['datetime']}")

            url = f"https://t.me/{message['data-post']}"
            articles.append(Article(
                id=make_article_id(self.name, url),
                title="",
                content=content,
                url=url,
                source=self.name,
                published_at=published_at or self._now(),
            ))

        logger.info(f"Parsed {len(articles)} posts from Telegram channel {channel}")
        return articles

    async def _fetch_channel(self, channel: str) -> List[Article]:
        html = await self.http.get_text(f"https://t.me/s/{channel}")
        start = self.window_start()
        return [post for post in self.parse_posts(html, channel) if post.published_at >= start]

    async def fetch(self, limit: Optional[int] = None) -> str:
        """
        Fetch posts from every channel inside the lookback window.

        A failing channel is logged and skipped.

        Args:
            limit: Maximum number of posts across all channels

        Returns:
            JSON-encoded list of articles
        """
        articles: List[Article] = []
        for channel in self.channels:
            try:
                articles.extend(await self._fetch_channel(channel))
            except Exception as e:
                logger.error(f"Error fetching posts from channel {channel}: {e}")

        if limit is not None:
            articles = articles[:limit]
        return articles_to_payload(articles)
