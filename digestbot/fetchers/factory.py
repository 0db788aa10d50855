"""
Source adapter factory for digestbot.
"""
import logging
import os
from typing import Optional

from digestbot.config import SourceConfig
from digestbot.fetchers.base import Source
from digestbot.fetchers.devto import DevToSource
from digestbot.fetchers.duma import DumaTranscriptSource
from digestbot.fetchers.rss import RSSSource
from digestbot.fetchers.telegram import TelegramSource
from digestbot.utils.http import HttpClient

# Configure logging
logger = logging.getLogger(__name__)

# Accepted type tags, including the names used by older configs
SOURCE_TYPES = {
    "devto": "devto",
    "dvp": "devto",
    "api": "devto",
    "telegram": "telegram",
    "scrape": "telegram",
    "rss": "rss",
    "rss-like": "rss",
    "duma": "duma",
    "financial": "duma",
}


def create_source(config: SourceConfig, http: HttpClient) -> Optional[Source]:
    """
    Create a source adapter from its configuration.

    Args:
        config: Source configuration with a type tag
        http: Shared HTTP client

    Returns:
        The adapter, or None when the type is unknown or required parameters are missing
    """
    kind = SOURCE_TYPES.get(config.type)

    if kind == "devto":
        return DevToSource(config.name, http, tags=config.tags or None)

    if kind == "telegram":
        if not config.channels:
            logger.warning(f"No channels specified for Telegram source {config.name}")
            return None
        return TelegramSource(config.name, http, config.channels, lookback_days=config.lookback_days)

    if kind == "rss":
        if not config.url:
            logger.warning(f"No feed url specified for RSS source {config.name}")
            return None
        return RSSSource(config.name, http, config.url, tags=config.tags, tag_rules=config.tag_rules)

    if kind == "duma":
        return DumaTranscriptSource(
            config.name,
            http,
            token=os.getenv("FINANCIAL_GOV_KEY"),
            app_token=os.getenv("FINANCIAL_GOV_APP_KEY"),
        )

    logger.error(f"Unknown source type: {config.type}")
    return None
