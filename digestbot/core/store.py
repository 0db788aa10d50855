"""
Article persistence for digestbot.
"""
import asyncio
import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from digestbot.core.article import Article, PersistedArticle
from digestbot.exceptions import StoreError

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data") / "articles.db"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

SCHEMA = """
    CREATE TABLE IF NOT EXISTS articles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        url TEXT UNIQUE NOT NULL,
        source TEXT NOT NULL,
        published_at TIMESTAMP,
        sent BOOLEAN DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    CREATE INDEX IF NOT EXISTS idx_articles_title ON articles(title);
    CREATE INDEX IF NOT EXISTS idx_articles_published_at ON articles(published_at);
    CREATE INDEX IF NOT EXISTS idx_articles_sent ON articles(sent);
"""


def _to_db_timestamp(value: datetime) -> str:
    """Store every timestamp as naive UTC text so string comparison orders correctly."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def _from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(str(value)).replace(tzinfo=timezone.utc)


def _row_to_article(row: sqlite3.Row) -> PersistedArticle:
    return PersistedArticle(
        id=row["id"],
        title=row["title"],
        url=row["url"],
        source=row["source"],
        published_at=_from_db_timestamp(row["published_at"]),
        sent=bool(row["sent"]),
        created_at=_from_db_timestamp(row["created_at"]),
        updated_at=_from_db_timestamp(row["updated_at"]),
    )


class ArticleStore:
    """
    Keeps the history of seen articles, keyed by URL, in SQLite.

    Every query runs in a worker thread on its own connection, so callers
    can await store operations from concurrent tasks. URL uniqueness is
    enforced by the table constraint and inserts are INSERT OR IGNORE,
    which makes racing duplicate inserts harmless.
    """
    def __init__(self, db_path: Union[str, Path] = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        self._init_db_dir()

    def _init_db_dir(self):
        """Initialize the database directory."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, run one transaction on it and close it."""
        with closing(sqlite3.connect(self.db_path, timeout=30)) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    async def _run(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            logger.error(f"Error {operation}: {e}")
            raise StoreError(f"Error {operation}: {e}") from e

    async def init_schema(self) -> None:
        """Create the articles table and its indexes if they do not exist."""
        def _init():
            with self._connect() as conn:
                conn.executescript(SCHEMA)

        await self._run("initializing articles table", _init)
        logger.info("Articles table initialized successfully")

    async def ping(self) -> bool:
        """
        Check that the database answers queries.

        Returns:
            True if a trivial query succeeded, False otherwise
        """
        def _ping():
            with self._connect() as conn:
                conn.execute("SELECT 1").fetchone()

        try:
            await self._run("pinging database", _ping)
            return True
        except StoreError:
            return False

    async def exists_by_url(self, url: str) -> bool:
        """
        Check whether an article with this URL has been seen before.

        Args:
            url: Article URL

        Returns:
            True if a row exists for the URL
        """
        def _exists():
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT 1 FROM articles WHERE url = ? LIMIT 1", (url,)
                ).fetchone()
                return row is not None

        return await self._run("checking if article exists", _exists)

    async def insert(self, article: Article) -> Optional[PersistedArticle]:
        """
        Insert an article unless its URL is already stored.

        Args:
            article: The article to persist; a missing publish date defaults to now

        Returns:
            The new row, or None when the URL already existed
        """
        published_at = article.published_at or datetime.now(timezone.utc)

        def _insert():
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO articles (title, url, source, published_at, sent)
                    VALUES (?, ?, ?, ?, 0)
                    """,
                    (article.title, article.url, article.source, _to_db_timestamp(published_at)),
                )
                if cursor.rowcount == 0:
                    return None
                row = conn.execute(
                    "SELECT * FROM articles WHERE id = ?", (cursor.lastrowid,)
                ).fetchone()
                return _row_to_article(row)

        saved = await self._run("saving article", _insert)
        if saved is not None:
            logger.info(f"Saved new article: {article.title}")
        else:
            logger.info(f"Article already exists: {article.title}")
        return saved

    async def mark_sent(self, url: str) -> bool:
        """
        Flag an article as delivered. The flag is never cleared.

        Args:
            url: Article URL

        Returns:
            True if a row was updated
        """
        def _mark():
            with self._connect() as conn:
                cursor = conn.execute(
                    "UPDATE articles SET sent = 1, updated_at = CURRENT_TIMESTAMP WHERE url = ?",
                    (url,),
                )
                return cursor.rowcount > 0

        return await self._run("marking article as sent", _mark)

    async def delete_older_than(self, cutoff: datetime) -> int:
        """
        Delete articles published before the cutoff or without a publish date.

        Args:
            cutoff: Oldest publish date to keep

        Returns:
            Number of deleted rows
        """
        def _delete():
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM articles WHERE published_at < ? OR published_at IS NULL",
                    (_to_db_timestamp(cutoff),),
                )
                return cursor.rowcount

        deleted = await self._run("deleting old articles", _delete)
        logger.info(f"Deleted {deleted} old articles")
        return deleted

    async def delete_old_articles(self, days: int = 30) -> int:
        """Delete articles older than the given number of days."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        return await self.delete_older_than(cutoff)

    async def get_unsent_articles(self) -> List[PersistedArticle]:
        """Return articles that were persisted but never delivered, newest first."""
        def _unsent():
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM articles WHERE sent = 0 ORDER BY created_at DESC, id DESC"
                ).fetchall()
                return [_row_to_article(row) for row in rows]

        return await self._run("getting unsent articles", _unsent)

    async def get_stats(self, old_after_days: int = 30) -> Dict[str, int]:
        """
        Summarize the table contents.

        Args:
            old_after_days: Age in days after which an article counts as old

        Returns:
            Dict with total, sent, unsent and old counts
        """
        cutoff = _to_db_timestamp(datetime.now(timezone.utc) - timedelta(days=old_after_days))

        def _stats():
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT
                        COUNT(*) AS total,
                        COUNT(CASE WHEN sent = 1 THEN 1 END) AS sent,
                        COUNT(CASE WHEN sent = 0 THEN 1 END) AS unsent,
                        COUNT(CASE WHEN published_at < ? OR published_at IS NULL THEN 1 END) AS old
                    FROM articles
                    """,
                    (cutoff,),
                ).fetchone()
                return {key: row[key] for key in ("total", "sent", "unsent", "old")}

        return await self._run("getting article stats", _stats)
