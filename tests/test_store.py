import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from digestbot.core.store import ArticleStore
from digestbot.exceptions import StoreError

from conftest import make_article


@pytest.mark.asyncio
async def test_insert_is_idempotent_per_url(store: ArticleStore) -> None:
    await store.init_schema()
    article = make_article("https://example.com/a", title="First")

    first = await store.insert(article)
    second = await store.insert(make_article("https://example.com/a", title="Second"))

    assert first is not None
    assert first.url == "https://example.com/a"
    assert first.sent is False
    assert second is None
    assert await store.exists_by_url("https://example.com/a")
    assert (await store.get_stats())["total"] == 1


@pytest.mark.asyncio
async def test_insert_defaults_missing_publish_date_to_now(store: ArticleStore) -> None:
    await store.init_schema()
    article = make_article("https://example.com/undated")
    article.published_at = None

    saved = await store.insert(article)

    assert saved.published_at is not None
    assert datetime.now(timezone.utc) - saved.published_at < timedelta(minutes=1)


@pytest.mark.asyncio
async def test_exists_by_url_for_unknown_url(store: ArticleStore) -> None:
    await store.init_schema()
    assert not await store.exists_by_url("https://example.com/missing")


@pytest.mark.asyncio
async def test_delete_old_articles_counts_old_and_undated_rows(store: ArticleStore) -> None:
    await store.init_schema()
    now = datetime.now(timezone.utc)
    await store.insert(make_article("https://example.com/old-1", published_at=now - timedelta(days=10)))
    await store.insert(make_article("https://example.com/old-2", published_at=now - timedelta(days=8)))
    await store.insert(make_article("https://example.com/fresh", published_at=now - timedelta(days=1)))
    with sqlite3.connect(store.db_path) as conn:
        conn.execute(
            "INSERT INTO articles (title, url, source, published_at) VALUES (?, ?, ?, NULL)",
            ("Undated", "https://example.com/undated", "dev"),
        )

    deleted = await store.delete_old_articles(7)

    assert deleted == 3
    assert await store.exists_by_url("https://example.com/fresh")
    assert not await store.exists_by_url("https://example.com/old-1")
    assert not await store.exists_by_url("https://example.com/undated")


@pytest.mark.asyncio
async def test_delete_older_than_handles_aware_cutoff(store: ArticleStore) -> None:
    await store.init_schema()
    moscow = timezone(timedelta(hours=3))
    published = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
    await store.insert(make_article("https://example.com/a", published_at=published))

    # 14:00 MSK is 11:00 UTC, before the publish time
    assert await store.delete_older_than(datetime(2024, 5, 10, 14, 0, tzinfo=moscow)) == 0
    assert await store.delete_older_than(datetime(2024, 5, 10, 16, 0, tzinfo=moscow)) == 1


@pytest.mark.asyncio
async def test_mark_sent_and_unsent_listing(store: ArticleStore) -> None:
    await store.init_schema()
    await store.insert(make_article("https://example.com/a"))
    await store.insert(make_article("https://example.com/b"))

    assert await store.mark_sent("https://example.com/a")
    assert not await store.mark_sent("https://example.com/unknown")

    unsent = await store.get_unsent_articles()
    assert [article.url for article in unsent] == ["https://example.com/b"]

    stats = await store.get_stats()
    assert stats == {"total": 2, "sent": 1, "unsent": 1, "old": 0}


@pytest.mark.asyncio
async def test_ping_reports_unreachable_database(tmp_path) -> None:
    healthy = ArticleStore(tmp_path / "articles.db")
    await healthy.init_schema()
    assert await healthy.ping()

    # A directory cannot be opened as a database file
    (tmp_path / "folder.db").mkdir()
    broken = ArticleStore(tmp_path / "folder.db")
    assert not await broken.ping()
    with pytest.raises(StoreError):
        await broken.init_schema()


class TrackingConnection(sqlite3.Connection):
    closed_count = 0

    def close(self):
        TrackingConnection.closed_count += 1
        super().close()


@pytest.mark.asyncio
async def test_every_connection_is_closed(store: ArticleStore, monkeypatch: pytest.MonkeyPatch) -> None:
    real_connect = sqlite3.connect
    opened = []

    def tracking_connect(*args, **kwargs):
        conn = real_connect(*args, factory=TrackingConnection, **kwargs)
        opened.append(conn)
        return conn

    monkeypatch.setattr(TrackingConnection, "closed_count", 0)
    monkeypatch.setattr(sqlite3, "connect", tracking_connect)

    await store.init_schema()
    await store.insert(make_article("https://example.com/a"))
    assert await store.exists_by_url("https://example.com/a")
    await store.mark_sent("https://example.com/a")
    await store.get_stats()

    assert opened
    assert TrackingConnection.closed_count == len(opened)
