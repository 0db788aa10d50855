"""
Language-model summarization for digestbot.
"""
import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from digestbot.config import LLMConfig
from digestbot.core.article import Article, DigestResult
from digestbot.utils.llm import ChatBackend

# Configure logging
logger = logging.getLogger(__name__)

MAX_MEMES = 3
MAX_JOKES = 2
TITLE_MAX_TOKENS = 60

PARSE_FAILED_SUMMARY = "Не удалось обработать статью"
PARSE_FAILED_MEMES = ["Ошибка обработки"]
CALL_FAILED_SUMMARY = "Ошибка при обработке статьи"
CALL_FAILED_MEMES = ["Ошибка"]
RETRY_LATER_JOKES = ["Попробуйте позже"]

SYSTEM_PROMPT = """Ты - опытный журналист и мемолог. Твоя задача - анализировать новостные статьи и создавать краткие выжимки в 2 предложения, добавляя к ним релевантные мемы и шутки.

Твоя работа:
1. Прочитать статью полностью
2. Создать краткую выжимку ровно в 2 предложения, передающую суть статьи
3. Придумать 2-3 релевантных мема и 1-2 шутки по теме статьи
4. Ответить в формате JSON со следующей структурой:
{
  "summary": "Краткая выжимка в 2 предложения",
  "memes": ["мем1", "мем2", "мем3"],
  "jokes": ["шутка1", "шутка2"]
}

Важно:
- Выжимка должна быть информативной и лаконичной
- Мемы и шутки должны быть уместными и по теме
- Отвечай только в формате JSON без дополнительного текста"""

TITLE_SYSTEM_PROMPT = """Ты - редактор новостной ленты. Придумай короткий информативный заголовок (не длиннее 12 слов) для присланного текста.
Отвечай только заголовком, без кавычек и пояснений."""


class ResponseParseError(ValueError):
    """The model answer did not contain a usable digest object."""


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Find the first JSON object embedded in free-form model output.

    Args:
        text: Raw completion text, possibly wrapped in prose or code fences

    Returns:
        The decoded object

    Raises:
        ResponseParseError: If no decodable object is found
    """
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    raise ResponseParseError("JSON not found in response")


def parse_digest(text: str) -> Dict[str, Any]:
    """
    Validate a model answer and clamp the humor lists.

    Args:
        text: Raw completion text

    Returns:
        Dict with summary, memes (at most 3) and jokes (at most 2)

    Raises:
        ResponseParseError: If the structure is missing or malformed
    """
    parsed = extract_json_object(text)
    summary = parsed.get("summary")
    memes = parsed.get("memes")
    jokes = parsed.get("jokes")
    if not isinstance(summary, str) or not summary.strip() \
            or not isinstance(memes, list) or not isinstance(jokes, list):
        raise ResponseParseError("Invalid response structure")
    return {
        "summary": summary.strip(),
        "memes": [str(item) for item in memes[:MAX_MEMES]],
        "jokes": [str(item) for item in jokes[:MAX_JOKES]],
    }


def _new_id() -> str:
    return uuid.uuid4().hex


class Summarizer:
    """
    Produces a DigestResult per article through the chat backend.

    Articles are processed in chunks of ``config.concurrency``: calls inside
    a chunk run concurrently, and a chunk finishes before the next one starts.
    """
    def __init__(self, backend: ChatBackend, config: LLMConfig, show_progress: bool = False):
        self.backend = backend
        self.config = config
        self.chunk_size = max(1, config.concurrency)
        self.show_progress = show_progress
        self._results_count = 0

    @property
    def results_count(self) -> int:
        """Number of digests produced since the process started."""
        return self._results_count

    def _user_prompt(self, article: Article) -> str:
        published = article.published_at.isoformat() if article.published_at else "неизвестно"
        return (
            "Проанализируй следующую статью и создай выжимку с мемами и шутками:\n\n"
            f"Название: {article.title}\n"
            f"Источник: {article.source}\n"
            f"URL статьи: {article.url}\n"
            f"Дата публикации: {published}\n"
            f"Содержание: {article.content}"
        )

    async def _complete(self, system: str, user: str, max_tokens: Optional[int] = None) -> str:
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        return await self.backend.chat(
            messages,
            max_tokens=max_tokens or self.config.max_tokens,
            temperature=self.config.temperature,
            presence_penalty=self.config.presence_penalty,
            top_p=self.config.top_p,
        )

    def _result(self, article: Article, summary: str, memes: List[str], jokes: List[str],
                degraded: bool = False) -> DigestResult:
        return DigestResult(
            id=_new_id(),
            article_id=article.id or _new_id(),
            source=article.source,
            source_group=article.source_group,
            title=article.title,
            url=article.url,
            summary=summary,
            memes=memes,
            jokes=jokes,
            degraded=degraded,
        )

    async def process_article(self, article: Article) -> DigestResult:
        """
        Summarize one article. Never raises.

        Args:
            article: Article with a populated title

        Returns:
            DigestResult, degraded to placeholder text when the call or parsing failed
        """
        try:
            response = await self._complete(SYSTEM_PROMPT, self._user_prompt(article))
        except Exception as e:
            logger.error(f"Error processing article {article.title}: {e}")
            return self._result(article, CALL_FAILED_SUMMARY, list(CALL_FAILED_MEMES),
                                list(RETRY_LATER_JOKES), degraded=True)

        try:
            digest = parse_digest(response)
        except ResponseParseError as e:
            logger.error(f"Error parsing LLM response for {article.url}: {e}")
            return self._result(article, PARSE_FAILED_SUMMARY, list(PARSE_FAILED_MEMES),
                                list(RETRY_LATER_JOKES), degraded=True)

        logger.info(f"Processed article: {article.title}")
        return self._result(article, digest["summary"], digest["memes"], digest["jokes"])

    async def process_articles(self, articles: List[Article]) -> List[DigestResult]:
        """
        Summarize a batch of articles with bounded concurrency.

        Args:
            articles: Articles to summarize

        Returns:
            One DigestResult per article, in input order
        """
        if not articles:
            logger.warning("No articles to process")
            return []

        logger.info(f"Processing {len(articles)} articles...")
        chunks = [articles[i:i + self.chunk_size] for i in range(0, len(articles), self.chunk_size)]

        results: List[DigestResult] = []
        for chunk in tqdm(chunks, desc="Summarizing articles", disable=not self.show_progress):
            chunk_results = await asyncio.gather(*(self.process_article(article) for article in chunk))
            results.extend(chunk_results)

        self._results_count += len(results)
        logger.info(f"Successfully processed {len(results)} articles")
        return results

    async def generate_title(self, article: Article) -> str:
        """
        Ask the model for a headline for an untitled article.

        Args:
            article: Article without a title

        Returns:
            The generated title

        Raises:
            ValueError: If the model returned nothing usable
            Exception: Whatever the backend raised
        """
        response = await self._complete(
            TITLE_SYSTEM_PROMPT,
            f"Источник: {article.source}\n\nТекст: {article.content[:4000]}",
            max_tokens=TITLE_MAX_TOKENS,
        )
        title = response.strip().splitlines()[0].strip().strip('"«»\'') if response.strip() else ""
        if not title:
            raise ValueError(f"Empty title generated for {article.url}")
        return title
