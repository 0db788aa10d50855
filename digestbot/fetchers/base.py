"""
Source adapter protocol and payload helpers for digestbot.
"""
import base64
import json
from typing import Iterable, Optional, Protocol

from digestbot.core.article import Article


class Source(Protocol):
    """
    A provider of raw articles.

    ``fetch`` returns a JSON-encoded array (or single object) of article
    items; decoding and stamping happen in the owning SourceGroup.
    """
    name: str
    base_url: str

    async def fetch(self, limit: Optional[int] = None) -> str:
        ...


def make_article_id(source_name: str, url: str) -> str:
    """Stable article id derived from the source name and the URL."""
    encoded = base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii")
    return f"{source_name}-{encoded}"


def articles_to_payload(articles: Iterable[Article]) -> str:
    """Encode articles the way adapters hand them to their group."""
    return json.dumps([article.to_dict() for article in articles], ensure_ascii=False)
