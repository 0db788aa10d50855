"""
Pipeline orchestration for digestbot: fetch, deduplicate, summarize, notify.
"""
import asyncio
import dataclasses
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from digestbot.config import LLMConfig
from digestbot.core.article import Article, DigestResult
from digestbot.core.store import ArticleStore
from digestbot.core.summarizer import Summarizer
from digestbot.exceptions import ConfigurationError, NotInitializedError
from digestbot.fetchers.groups import SourceRegistry
from digestbot.notifications.router import NotificationRouter

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 7


class PipelineState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


def fallback_title(article: Article) -> str:
    """Deterministic title for an article the model could not name."""
    published = article.published_at or datetime.now(timezone.utc)
    return f"Post from {article.source} {published.strftime('%d.%m.%Y')}"


class Pipeline:
    """
    Runs the digest pipeline over the configured source groups.

    Runs are only accepted once ``initialize()`` has completed.
    """
    def __init__(self, registry: SourceRegistry, summarizer: Summarizer, store: ArticleStore,
                 llm_config: LLMConfig, router: Optional[NotificationRouter] = None,
                 default_limit: Optional[int] = None, retention_days: int = DEFAULT_RETENTION_DAYS):
        """
        Initialize the Pipeline.

        Args:
            registry: Source groups to fetch from
            summarizer: Digest producer
            store: Article history
            llm_config: Model settings, validated during initialization
            router: Optional notification router
            default_limit: Per-adapter limit used when a run passes none
            retention_days: Age after which persisted articles are purged
        """
        self.registry = registry
        self.summarizer = summarizer
        self.store = store
        self.llm_config = llm_config
        self.router = router
        self.default_limit = default_limit
        self.retention_days = retention_days
        self._state = PipelineState.UNINITIALIZED
        self._init_done: Optional[asyncio.Event] = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is PipelineState.READY

    def set_notification_router(self, router: NotificationRouter) -> None:
        self.router = router
        logger.info("Notification router set")

    def _validate_config(self) -> None:
        if not self.llm_config.api_key:
            raise ConfigurationError("LLM API key is required")
        if not self.llm_config.model:
            raise ConfigurationError("LLM model is required")

    async def initialize(self, bootstrap: bool = True) -> None:
        """
        Validate configuration, prepare the store and run every enabled group once.

        A call made while another initialization is in progress waits for it
        to finish instead of starting a second one.

        Args:
            bootstrap: Whether to perform the initial run per enabled source group

        Raises:
            ConfigurationError: If LLM credentials are missing
            StoreError: If the store cannot be prepared
            NotInitializedError: If the initialization this call waited for failed
        """
        if self._state is PipelineState.READY:
            logger.warning("Pipeline is already initialized")
            return
        if self._state is PipelineState.INITIALIZING:
            logger.info("Pipeline initialization in progress, waiting for it to finish")
            await self._init_done.wait()
            if not self.is_initialized:
                raise NotInitializedError("Concurrent pipeline initialization failed")
            return

        logger.info("Initializing pipeline...")
        self._state = PipelineState.INITIALIZING
        self._init_done = asyncio.Event()
        try:
            self._validate_config()
            await self.store.init_schema()
            await self.cleanup_old_articles(self.retention_days)

            if bootstrap:
                for group in self.registry.enabled_groups():
                    logger.info(f"Bootstrap run for source group {group.name}")
                    await self._run(group_id=group.id)
        except Exception as e:
            self._state = PipelineState.UNINITIALIZED
            logger.error(f"Failed to initialize pipeline: {e}")
            raise
        else:
            self._state = PipelineState.READY
            logger.info("Pipeline initialized successfully")
        finally:
            self._init_done.set()

    async def cleanup_old_articles(self, days: Optional[int] = None) -> int:
        """
        Purge articles older than ``days`` (or without a publish date).

        Args:
            days: Retention window; defaults to the configured one

        Returns:
            Number of deleted articles
        """
        deleted = await self.store.delete_old_articles(days if days is not None else self.retention_days)
        logger.info(f"Cleaned up {deleted} old articles")
        return deleted

    async def run(self, limit: Optional[int] = None, group_id: Optional[str] = None) -> List[DigestResult]:
        """
        Fetch, deduplicate, summarize and deliver news once.

        Args:
            limit: Per-adapter limit; the configured default applies when None
            group_id: Restrict the run to one source group

        Returns:
            Digests produced by this run, possibly empty

        Raises:
            NotInitializedError: If called before initialization completed
            StoreError: If persisting or marking articles failed
        """
        if not self.is_initialized:
            raise NotInitializedError("Pipeline is not initialized")
        return await self._run(limit, group_id)

    async def run_group(self, group_id: str, limit: Optional[int] = None) -> List[DigestResult]:
        return await self.run(limit=limit, group_id=group_id)

    async def run_default_group(self, limit: Optional[int] = None) -> List[DigestResult]:
        group = self.registry.default_group()
        if group is None:
            if not self.is_initialized:
                raise NotInitializedError("Pipeline is not initialized")
            logger.warning("No default source group configured")
            return []
        return await self.run_group(group.id, limit)

    async def backfill_titles(self, articles: List[Article]) -> List[Article]:
        """
        Give every untitled article a title. Never raises.

        Args:
            articles: Fetched articles

        Returns:
            One article per input, in order, each with a non-empty title
        """
        titled = []
        for article in articles:
            if article.title and article.title.strip():
                titled.append(article)
                continue
            try:
                logger.info(f"Generating title for article from {article.source}")
                title = await self.summarizer.generate_title(article)
            except Exception as e:
                logger.error(f"Error generating title for {article.url}: {e}")
                title = fallback_title(article)
            titled.append(dataclasses.replace(article, title=title))
        return titled

    async def _persist_unique(self, articles: List[Article]) -> List[Article]:
        unique = []
        for article in articles:
            if await self.store.exists_by_url(article.url):
                logger.info(f"Skipping duplicate article: {article.title}")
                continue
            if await self.store.insert(article) is None:
                logger.info(f"Article stored by a concurrent run, skipping: {article.url}")
                continue
            unique.append(article)
        return unique

    async def _notify(self, results: List[DigestResult], allow_broadcast: bool) -> None:
        try:
            dispatched = await self.router.dispatch(results, allow_broadcast=allow_broadcast)
        except Exception as e:
            logger.error(f"Failed to send notifications: {e}")
            return

        for result in results:
            if result.url in dispatched:
                await self.store.mark_sent(result.url)
        logger.info(f"Notifications dispatched and {len(dispatched)} articles marked as sent")

    async def _run(self, limit: Optional[int] = None, group_id: Optional[str] = None) -> List[DigestResult]:
        logger.info(f"Starting news processing{f' for group {group_id}' if group_id else ''}...")
        effective_limit = limit if limit is not None else self.default_limit

        if group_id:
            articles = await self.registry.fetch_group(group_id, effective_limit)
        else:
            articles = await self.registry.fetch_all(effective_limit)

        if not articles:
            logger.warning("No articles found to process")
            return []

        titled = await self.backfill_titles(articles)
        unique = await self._persist_unique(titled)
        if not unique:
            logger.warning("No new articles to process after deduplication")
            return []
        logger.info(f"Fetched {len(articles)} articles, {len(unique)} are unique")

        results = await self.summarizer.process_articles(unique)
        logger.info(f"Successfully processed {len(results)} articles")

        if self.router is not None and results:
            await self._notify(results, allow_broadcast=group_id is None and limit is None)

        return results

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "total_articles_processed": self.summarizer.results_count,
            "sources_count": len(self.registry.sources()),
            "is_initialized": self.is_initialized,
            "state": self._state.value,
        }

    async def health_check(self) -> Dict[str, Any]:
        """
        Report readiness of sources, model backend and store.

        Returns:
            Dict of booleans plus human-readable details
        """
        details = []

        sources = self.registry.sources()
        groups = self.registry.enabled_groups()
        sources_ok = bool(sources)
        if sources_ok:
            details.append(f"Sources: {len(sources)} adapters in {len(groups)} enabled groups")
        else:
            details.append("Sources: no enabled source adapters configured")

        llm_ok = bool(self.llm_config.api_key and self.llm_config.model)
        if llm_ok:
            details.append(f"LLM: model {self.llm_config.model} configured")
        else:
            details.append("LLM: API key or model missing")

        store_ok = await self.store.ping()
        details.append(f"Store: {'reachable' if store_ok else 'unreachable'} ({self.store.db_path})")
        details.append(f"Pipeline: {self._state.value}")

        return {
            "healthy": sources_ok and llm_ok and store_ok and self.is_initialized,
            "sources": sources_ok,
            "llm": llm_ok,
            "store": store_ok,
            "initialized": self.is_initialized,
            "details": details,
        }
