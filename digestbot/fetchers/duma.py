"""
State Duma plenary transcript source for digestbot.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from digestbot.core.article import Article, parse_datetime
from digestbot.exceptions import ConfigurationError
from digestbot.fetchers.base import articles_to_payload, make_article_id
from digestbot.utils.http import HttpClient

# Configure logging
logger = logging.getLogger(__name__)

TRANSCRIPT_TAGS = ["финансы", "госдума", "заседание", "стенограмма"]


class DumaTranscriptSource:
    """
    Fetches yesterday's full plenary transcripts from the Duma open API.

    Each meeting becomes one article whose content is the transcript text.
    """
    base_url = "http://api.duma.gov.ru/api"

    def __init__(self, name: str, http: HttpClient, token: Optional[str], app_token: Optional[str],
                 today: Optional[Callable[[], date]] = None):
        """
        Initialize the DumaTranscriptSource.

        Args:
            name: Configured source name
            http: Shared HTTP client
            token: API token (FINANCIAL_GOV_KEY)
            app_token: Application token (FINANCIAL_GOV_APP_KEY)
            today: Calendar override for tests
        """
        self.name = name
        self.http = http
        self.token = token
        self.app_token = app_token
        self._today = today or (lambda: datetime.now(timezone.utc).date())

    def _meeting_to_article(self, meeting: Dict[str, Any], index: int, day: str) -> Article:
        number = meeting.get("number") or index + 1
        meeting_date = meeting.get("date") or day
        title = f"Заседание Государственной Думы №{number} от {meeting_date}"

        lines = meeting.get("lines")
        if isinstance(lines, list) and lines:
            content = "\n".join(str(line) for line in lines).strip()
        else:
            content = f"Стенограмма заседания Государственной Думы от {meeting_date}"

        try:
            published_at = parse_datetime(meeting_date)
        except ValueError:
            published_at = parse_datetime(day)

        url = f"{self.base_url}/transcriptFull/{day}.json#meeting-{number}"
        return Article(
            id=make_article_id(self.name, url),
            title=title,
            content=content,
            url=url,
            source=self.name,
            published_at=published_at,
            tags=list(TRANSCRIPT_TAGS),
        )

    def transform(self, data: Any, day: str) -> List[Article]:
        """
        Convert an API response into articles.

        Args:
            data: Decoded JSON response
            day: Requested date, YYYY-MM-DD

        Returns:
            One article per meeting; empty when the response has no meetings
        """
        meetings = data.get("meetings") if isinstance(data, dict) else None
        if not isinstance(meetings, list):
            logger.warning(f"No meetings found in Duma API response for date {day}")
            return []
        articles = [self._meeting_to_article(meeting, i, day) for i, meeting in enumerate(meetings)]
        logger.info(f"Transformed {len(articles)} meetings to articles")
        return articles

    async def fetch(self, limit: Optional[int] = None) -> str:
        """
        Fetch yesterday's transcripts.

        Args:
            limit: Maximum number of meetings

        Returns:
            JSON-encoded list of articles

        Raises:
            ConfigurationError: If the API tokens are not configured
        """
        if not self.token or not self.app_token:
            raise ConfigurationError("Duma API credentials not found in environment variables")

        day = (self._today() - timedelta(days=1)).isoformat()
        logger.info(f"Fetching transcripts from Duma API for date: {day}")
        data = await self.http.get_json(
            f"{self.base_url}/{self.token}/transcriptFull/{day}.json",
            params={"app_token": self.app_token},
        )
        articles = self.transform(data, day)
        if limit is not None:
            articles = articles[:limit]
        return articles_to_payload(articles)
