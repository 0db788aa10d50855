import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from digestbot.config import LLMConfig
from digestbot.core.article import Article, DigestResult
from digestbot.core.store import ArticleStore
from digestbot.core.summarizer import TITLE_SYSTEM_PROMPT

DEFAULT_DIGEST = {
    "summary": "Вышел новый релиз. Он стал быстрее.",
    "memes": ["мем 1", "мем 2"],
    "jokes": ["шутка 1"],
}


class FakeSource:
    """Adapter returning canned items as a JSON payload."""
    base_url = "fake://source"

    def __init__(self, name: str, items: Optional[List[Dict[str, Any]]] = None,
                 error: Optional[Exception] = None, payload: Optional[str] = None, delay: float = 0):
        self.name = name
        self.items = items or []
        self.error = error
        self.payload = payload
        self.delay = delay
        self.calls: List[Optional[int]] = []

    async def fetch(self, limit: Optional[int] = None) -> str:
        self.calls.append(limit)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.payload is not None:
            return self.payload
        items = self.items if limit is None else self.items[:limit]
        return json.dumps(items, ensure_ascii=False)


class FakeBackend:
    """
    Chat backend answering from a table keyed by a substring of the user prompt.

    Values may be strings or exceptions; unmatched prompts get DEFAULT_DIGEST.
    """
    def __init__(self, responses: Optional[Dict[str, Any]] = None, title: Any = "Сгенерированный заголовок",
                 delay: float = 0, delays: Optional[Dict[str, float]] = None):
        self.responses = responses or {}
        self.title = title
        self.delay = delay
        self.delays = delays or {}
        self.calls: List[List[Dict[str, str]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def chat(self, messages, max_tokens, temperature, presence_penalty, top_p) -> str:
        self.calls.append(messages)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = next((value for key, value in self.delays.items() if key in messages[-1]["content"]), self.delay)
            if delay:
                await asyncio.sleep(delay)
            if messages[0]["content"] == TITLE_SYSTEM_PROMPT:
                answer = self.title
            else:
                answer = json.dumps(DEFAULT_DIGEST, ensure_ascii=False)
                for key, value in self.responses.items():
                    if key in messages[1]["content"]:
                        answer = value
                        break
            if isinstance(answer, Exception):
                raise answer
            return answer
        finally:
            self.in_flight -= 1


class FakeChannel:
    def __init__(self, name: str = "fake", configured: bool = True, error: Optional[Exception] = None):
        self.name = name
        self.configured = configured
        self.error = error
        self.messages: List[str] = []

    def is_configured(self) -> bool:
        return self.configured

    async def send(self, message: str) -> None:
        if self.error is not None:
            raise self.error
        self.messages.append(message)


class FakeHttp:
    """Records requests and answers from canned responses keyed by URL."""
    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.requests: List[Dict[str, Any]] = []

    def _answer(self, url: str):
        answer = self.responses.get(url)
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def get_text(self, url, params=None, headers=None):
        self.requests.append({"method": "GET", "url": url, "params": params, "headers": headers})
        return self._answer(url)

    async def get_json(self, url, params=None, headers=None):
        self.requests.append({"method": "GET", "url": url, "params": params, "headers": headers})
        return self._answer(url)

    async def post_json(self, url, payload):
        self.requests.append({"method": "POST", "url": url, "payload": payload})
        answer = self._answer(url)
        return {"ok": True} if answer is None else answer


def make_item(url: str, title: str = "Title", published_at: Optional[str] = None, **extra) -> Dict[str, Any]:
    item = {
        "title": title,
        "content": f"Content of {url}",
        "url": url,
        "source": "upstream",
        "published_at": published_at or datetime.now(timezone.utc).isoformat(),
    }
    item.update(extra)
    return item


def make_article(url: str, title: str = "Title", source: str = "dev", source_group: Optional[str] = "frontend",
                 published_at: Optional[datetime] = None) -> Article:
    return Article(
        title=title,
        content=f"Content of {url}",
        url=url,
        source=source,
        source_group=source_group,
        published_at=published_at or datetime.now(timezone.utc),
    )


def make_result(url: str, source_group: Optional[str] = "frontend", title: str = "Title") -> DigestResult:
    return DigestResult(
        id=f"result-{url}",
        article_id=f"article-{url}",
        source="dev",
        source_group=source_group,
        title=title,
        url=url,
        summary="Кратко.",
        memes=["мем"],
        jokes=["шутка"],
    )


@pytest.fixture
def llm_config() -> LLMConfig:
    return LLMConfig(api_key="test-key", model="test-model", base_url="", concurrency=3)


@pytest.fixture
def store(tmp_path) -> ArticleStore:
    return ArticleStore(tmp_path / "db" / "articles.db")
