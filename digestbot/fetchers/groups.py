"""
Source groups and the registry that fans fetches out across them.
"""
import asyncio
import dataclasses
import json
import logging
from typing import Dict, List, Optional

from digestbot.config import SourceGroupConfig
from digestbot.core.article import Article
from digestbot.fetchers.base import Source
from digestbot.fetchers.factory import create_source
from digestbot.utils.http import HttpClient

# Configure logging
logger = logging.getLogger(__name__)


def _min_limit(*limits: Optional[int]) -> Optional[int]:
    values = [limit for limit in limits if limit is not None]
    return min(values) if values else None


class SourceGroup:
    """
    A named set of source adapters fetched together.

    Adapters run concurrently; a failing adapter or an unparseable payload
    is logged and contributes nothing, without affecting its siblings.
    """
    def __init__(self, group_id: str, name: str, sources: Dict[str, Source], enabled: bool = True,
                 limits: Optional[Dict[str, Optional[int]]] = None, fetch_timeout: Optional[float] = None):
        """
        Initialize the SourceGroup.

        Args:
            group_id: Identifier used for notification routing
            name: Human-readable name
            sources: Adapters keyed by their configured name
            enabled: Whether the group takes part in runs
            limits: Optional per-source item caps
            fetch_timeout: Optional overall timeout per adapter fetch, in seconds
        """
        self.id = group_id
        self.name = name
        self.enabled = enabled
        self._sources = dict(sources)
        self._limits = dict(limits or {})
        self.fetch_timeout = fetch_timeout

    @classmethod
    def from_config(cls, config: SourceGroupConfig, http: HttpClient,
                    fetch_timeout: Optional[float] = None) -> "SourceGroup":
        sources: Dict[str, Source] = {}
        limits: Dict[str, Optional[int]] = {}
        for source_config in config.sources:
            if source_config.name in sources:
                logger.warning(
                    f"Duplicate source name {source_config.name} in group {config.name}, keeping the first one"
                )
                continue
            source = create_source(source_config, http)
            if source is None:
                continue
            sources[source_config.name] = source
            limits[source_config.name] = source_config.limit
        logger.info(f"Initialized {len(sources)} sources for group {config.name}")
        return cls(config.id, config.name, sources, enabled=config.enabled, limits=limits,
                   fetch_timeout=fetch_timeout)

    def get_sources(self) -> List[Source]:
        return list(self._sources.values())

    def _parse_payload(self, source_name: str, payload: Optional[str]) -> List[Article]:
        if not payload:
            return []
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing articles from {source_name} in group {self.name}: {e}")
            return []

        items = data if isinstance(data, list) else [data]
        articles = []
        for item in items:
            try:
                article = Article.from_dict(item)
            except ValueError as e:
                logger.warning(f"Skipping malformed item from {source_name} in group {self.name}: {e}")
                continue
            articles.append(dataclasses.replace(article, source=source_name, source_group=self.id))
        return articles

    async def _fetch_source(self, source_name: str, source: Source, limit: Optional[int]) -> List[Article]:
        logger.info(f"Fetching articles from {source_name} in group {self.name}...")
        try:
            fetch = source.fetch(_min_limit(limit, self._limits.get(source_name)))
            if self.fetch_timeout:
                payload = await asyncio.wait_for(fetch, self.fetch_timeout)
            else:
                payload = await fetch
        except Exception as e:
            logger.error(f"Error fetching articles from {source_name} in group {self.name}: {e}")
            return []
        return self._parse_payload(source_name, payload)

    async def fetch(self, limit: Optional[int] = None) -> List[Article]:
        """
        Fetch from every adapter in the group concurrently.

        Args:
            limit: Optional cap per adapter; a smaller per-source limit wins

        Returns:
            Union of all adapters' articles, stamped with source name and group id
        """
        logger.info(f"Fetching articles from {len(self._sources)} sources in group {self.name}...")
        batches = await asyncio.gather(*(
            self._fetch_source(source_name, source, limit)
            for source_name, source in self._sources.items()
        ))
        articles = [article for batch in batches for article in batch]
        logger.info(f"Successfully fetched {len(articles)} articles from group {self.name}")
        return articles


class SourceRegistry:
    """
    Owns all source groups and fans fetch requests out to them.
    """
    def __init__(self, groups: List[SourceGroup], default_group_id: Optional[str] = None):
        self._groups: Dict[str, SourceGroup] = {group.id: group for group in groups}
        self.default_group_id = default_group_id
        logger.info(f"Initialized {len(self._groups)} source groups")

    @classmethod
    def from_config(cls, configs: List[SourceGroupConfig], http: HttpClient,
                    default_group_id: Optional[str] = None,
                    fetch_timeout: Optional[float] = None) -> "SourceRegistry":
        groups = [SourceGroup.from_config(config, http, fetch_timeout=fetch_timeout) for config in configs]
        return cls(groups, default_group_id=default_group_id)

    def groups(self) -> List[SourceGroup]:
        return list(self._groups.values())

    def enabled_groups(self) -> List[SourceGroup]:
        return [group for group in self._groups.values() if group.enabled]

    def get_group(self, group_id: str) -> Optional[SourceGroup]:
        return self._groups.get(group_id)

    def default_group(self) -> Optional[SourceGroup]:
        if self.default_group_id:
            return self._groups.get(self.default_group_id)
        return None

    def sources(self) -> List[Source]:
        """All adapters of enabled groups."""
        return [source for group in self.enabled_groups() for source in group.get_sources()]

    async def _fetch_group_safely(self, group: SourceGroup, limit: Optional[int]) -> List[Article]:
        try:
            return await group.fetch(limit)
        except Exception as e:
            logger.error(f"Error fetching articles from group {group.id}: {e}")
            return []

    async def fetch_all(self, limit: Optional[int] = None) -> List[Article]:
        """
        Fetch from every enabled group concurrently.

        Args:
            limit: Optional cap per adapter

        Returns:
            Articles from all groups that succeeded
        """
        groups = self.enabled_groups()
        if not groups:
            logger.warning("No source groups configured")
            return []

        batches = await asyncio.gather(*(self._fetch_group_safely(group, limit) for group in groups))
        articles = [article for batch in batches for article in batch]
        logger.info(f"Successfully fetched {len(articles)} articles from all source groups")
        return articles

    async def fetch_group(self, group_id: str, limit: Optional[int] = None) -> List[Article]:
        """
        Fetch from a single group.

        Args:
            group_id: Source group identifier
            limit: Optional cap per adapter

        Returns:
            The group's articles; empty for unknown or disabled groups
        """
        group = self._groups.get(group_id)
        if group is None:
            logger.warning(f"Source group {group_id} not found")
            return []
        if not group.enabled:
            logger.warning(f"Source group {group_id} is disabled")
            return []
        return await self._fetch_group_safely(group, limit)
