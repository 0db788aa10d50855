"""
Article data models for digestbot.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a timezone-aware datetime.

    Args:
        value: A datetime, an ISO string (a trailing "Z" is accepted) or None

    Returns:
        Aware datetime (naive values are assumed UTC), or None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class Article:
    """
    An article as produced by a source adapter.

    The title may be empty at fetch time; it is backfilled once before the
    article is persisted.
    """
    title: str
    content: str
    url: str
    source: str
    source_group: Optional[str] = None
    published_at: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Article":
        """
        Build an article from one item of an adapter payload.

        Args:
            data: Decoded JSON object

        Returns:
            Article instance

        Raises:
            ValueError: If the item is not an object or has no url
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected an object, got {type(data).__name__}")
        url = (data.get("url") or "").strip()
        if not url:
            raise ValueError("Article has no url")
        tags = data.get("tags") or []
        return cls(
            title=data.get("title") or "",
            content=data.get("content") or "",
            url=url,
            source=data.get("source") or "",
            source_group=data.get("source_group"),
            published_at=parse_datetime(data.get("published_at")),
            tags=[str(tag) for tag in tags],
            id=data.get("id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "source": self.source,
            "source_group": self.source_group,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "tags": list(self.tags),
        }


@dataclass
class PersistedArticle:
    """
    A row of the articles table.
    """
    id: int
    title: str
    url: str
    source: str
    published_at: Optional[datetime]
    sent: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


@dataclass
class DigestResult:
    """
    Model-produced digest for one article: a short summary plus humor items.
    """
    id: str
    article_id: str
    source: str
    title: str
    url: str
    summary: str
    memes: List[str] = field(default_factory=list)
    jokes: List[str] = field(default_factory=list)
    source_group: Optional[str] = None
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    degraded: bool = False  # placeholder content after a failed model call

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "id": self.id,
            "article_id": self.article_id,
            "source": self.source,
            "source_group": self.source_group,
            "title": self.title,
            "url": self.url,
            "summary": self.summary,
            "memes": list(self.memes),
            "jokes": list(self.jokes),
            "processed_at": self.processed_at.isoformat(),
            "degraded": self.degraded,
        }
