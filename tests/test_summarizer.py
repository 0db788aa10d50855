import json

import pytest

from digestbot.config import LLMConfig
from digestbot.core.summarizer import (
    CALL_FAILED_SUMMARY,
    MAX_JOKES,
    MAX_MEMES,
    PARSE_FAILED_SUMMARY,
    ResponseParseError,
    Summarizer,
    extract_json_object,
    parse_digest,
)

from conftest import FakeBackend, make_article


def test_extract_json_object_from_fenced_prose() -> None:
    text = 'Вот ответ:\n```json\n{"summary": "S", "memes": [], "jokes": []}\n```\nУдачи {не json}'
    assert extract_json_object(text) == {"summary": "S", "memes": [], "jokes": []}


def test_extract_json_object_skips_braces_that_are_not_json() -> None:
    text = 'Шаблон {summary} не заполнен. {"summary": "S", "memes": ["m"], "jokes": ["j"]}'
    assert extract_json_object(text)["memes"] == ["m"]


def test_extract_json_object_without_object() -> None:
    with pytest.raises(ResponseParseError):
        extract_json_object("no json here [1, 2]")


def test_parse_digest_truncates_humor_lists() -> None:
    text = json.dumps({
        "summary": "  Две фразы. Ровно две.  ",
        "memes": ["m1", "m2", "m3", "m4", "m5"],
        "jokes": ["j1", "j2", "j3"],
    })
    digest = parse_digest(text)
    assert digest["summary"] == "Две фразы. Ровно две."
    assert digest["memes"] == ["m1", "m2", "m3"]
    assert digest["jokes"] == ["j1", "j2"]


@pytest.mark.parametrize("payload", [
    {"memes": [], "jokes": []},
    {"summary": "", "memes": [], "jokes": []},
    {"summary": "S", "memes": "m", "jokes": []},
    {"summary": "S", "memes": [], "jokes": None},
])
def test_parse_digest_rejects_invalid_structure(payload) -> None:
    with pytest.raises(ResponseParseError):
        parse_digest(json.dumps(payload))


@pytest.mark.asyncio
async def test_malformed_answer_degrades_only_that_article(llm_config: LLMConfig) -> None:
    articles = [make_article(f"https://example.com/{i}", title=f"Article {i}") for i in range(5)]
    backend = FakeBackend(responses={"https://example.com/2": "Извините, не могу ответить в JSON"})
    summarizer = Summarizer(backend, llm_config)

    results = await summarizer.process_articles(articles)

    assert [result.url for result in results] == [article.url for article in articles]
    degraded = [result for result in results if result.degraded]
    assert len(degraded) == 1
    assert degraded[0].url == "https://example.com/2"
    assert degraded[0].summary == PARSE_FAILED_SUMMARY
    assert all(result.summary == "Вышел новый релиз. Он стал быстрее." for result in results if not result.degraded)


@pytest.mark.asyncio
async def test_backend_failure_yields_call_failed_placeholder(llm_config: LLMConfig) -> None:
    backend = FakeBackend(responses={"https://example.com/boom": RuntimeError("connection reset")})
    summarizer = Summarizer(backend, llm_config)

    result = await summarizer.process_article(make_article("https://example.com/boom"))

    assert result.degraded
    assert result.summary == CALL_FAILED_SUMMARY
    assert result.source_group == "frontend"


@pytest.mark.asyncio
async def test_results_respect_humor_bounds(llm_config: LLMConfig) -> None:
    answer = json.dumps({"summary": "S.", "memes": list("abcdef"), "jokes": list("xyz")})
    summarizer = Summarizer(FakeBackend(responses={"example": answer}), llm_config)

    results = await summarizer.process_articles([make_article("https://example.com/a")])

    assert len(results[0].memes) <= MAX_MEMES
    assert len(results[0].jokes) <= MAX_JOKES


@pytest.mark.asyncio
async def test_chunks_bound_concurrent_model_calls() -> None:
    config = LLMConfig(api_key="k", model="m", base_url="", concurrency=2)
    backend = FakeBackend(delay=0.01)
    summarizer = Summarizer(backend, config)

    results = await summarizer.process_articles(
        [make_article(f"https://example.com/{i}") for i in range(5)]
    )

    assert len(results) == 5
    assert backend.max_in_flight == 2
    assert summarizer.results_count == 5


@pytest.mark.asyncio
async def test_empty_batch(llm_config: LLMConfig) -> None:
    summarizer = Summarizer(FakeBackend(), llm_config)
    assert await summarizer.process_articles([]) == []
    assert summarizer.results_count == 0


@pytest.mark.asyncio
async def test_generate_title_strips_quotes(llm_config: LLMConfig) -> None:
    summarizer = Summarizer(FakeBackend(title='«React 19 вышел»\nПояснение'), llm_config)
    assert await summarizer.generate_title(make_article("https://t.me/c/1", title="")) == "React 19 вышел"


@pytest.mark.asyncio
async def test_generate_title_rejects_empty_answer(llm_config: LLMConfig) -> None:
    summarizer = Summarizer(FakeBackend(title="   "), llm_config)
    with pytest.raises(ValueError):
        await summarizer.generate_title(make_article("https://t.me/c/1", title=""))


@pytest.mark.asyncio
async def test_results_keep_input_order_when_calls_finish_out_of_order() -> None:
    config = LLMConfig(api_key="k", model="m", base_url="", concurrency=3)
    urls = [f"https://example.com/{i}" for i in range(5)]
    backend = FakeBackend(delays={urls[0]: 0.05, urls[1]: 0.03, urls[2]: 0.01, urls[3]: 0.02, urls[4]: 0.001})
    summarizer = Summarizer(backend, config)

    results = await summarizer.process_articles([make_article(url) for url in urls])

    assert [result.url for result in results] == urls
