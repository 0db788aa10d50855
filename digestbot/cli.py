"""
Command-line interface for digestbot.
"""
import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv

from digestbot.config import Config, load_config
from digestbot.core.article import DigestResult
from digestbot.core.pipeline import Pipeline
from digestbot.core.scheduler import Scheduler
from digestbot.core.store import ArticleStore
from digestbot.core.summarizer import Summarizer
from digestbot.fetchers.groups import SourceRegistry
from digestbot.notifications.router import NotificationRouter
from digestbot.utils.http import HttpClient
from digestbot.utils.llm import ChatClient

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """
    Configure logging to a dated file and the console.

    Args:
        verbose: Log at DEBUG instead of INFO
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(f"digestbot_{datetime.now().strftime('%Y%m%d')}.log"),
            logging.StreamHandler()
        ]
    )


def parse_args(argv: Optional[List[str]] = None):
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="Digestbot - news digests with memes and jokes")
    parser.add_argument("--config", help="Path to YAML or JSON config file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Fetch, summarize and deliver news once")
    run_parser.add_argument("--limit", type=int, help="Maximum number of articles per source")
    run_parser.add_argument("--group", help="Only process this source group")

    subparsers.add_parser("serve", help="Run on the configured schedule until interrupted")

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete old articles from the store")
    cleanup_parser.add_argument("--days", type=int, help="Retention window in days")

    subparsers.add_parser("health", help="Check sources, model backend and store")
    subparsers.add_parser("stats", help="Show article store statistics")
    return parser.parse_args(argv)


class Services:
    """
    Every long-lived component, built once from the configuration.
    """
    def __init__(self, config: Config, show_progress: bool = False):
        llm_config = config.llm()
        self.http = HttpClient(
            timeout=float(config.get("http.timeout_seconds", 30)),
            max_concurrent=int(config.get("http.max_concurrent", 5)),
        )
        self.llm = ChatClient(llm_config)
        self.store = ArticleStore(config.get("store.path", "data/articles.db"))
        self.registry = SourceRegistry.from_config(
            config.source_groups(),
            self.http,
            default_group_id=config.get("sources.default_group_id"),
            fetch_timeout=config.get("sources.fetch_timeout_seconds"),
        )
        self.router = NotificationRouter.from_config(
            config.notification_groups(),
            self.http,
            unmatched=config.get("notifications.unmatched", "drop"),
        )
        self.pipeline = Pipeline(
            self.registry,
            Summarizer(self.llm, llm_config, show_progress=show_progress),
            self.store,
            llm_config,
            router=self.router,
            default_limit=config.get("sources.default_limit"),
            retention_days=int(config.get("store.retention_days", 7)),
        )
        self.scheduler = Scheduler(config.scheduler(), self.pipeline)

    async def close(self):
        self.scheduler.stop()
        await self.http.close()
        await self.llm.close()


def build_pipeline(config: Config, show_progress: bool = False) -> Services:
    """Construct the pipeline and its collaborators from the configuration."""
    return Services(config, show_progress=show_progress)


def print_results(results: List[DigestResult]):
    print(f"Processed {len(results)} new articles")
    for i, result in enumerate(results, 1):
        marker = " (degraded)" if result.degraded else ""
        print(f"{i}. [{result.source}] {result.title}{marker}")
        print(f"   {result.url}")


async def cmd_run(services: Services, args) -> int:
    await services.pipeline.initialize(bootstrap=False)
    if args.group:
        results = await services.pipeline.run_group(args.group, limit=args.limit)
    else:
        results = await services.pipeline.run(limit=args.limit)
    print_results(results)
    return 0


async def cmd_serve(services: Services, args) -> int:
    await services.pipeline.initialize()
    services.scheduler.start()
    if not services.scheduler.is_running:
        logger.error("Scheduler is not running, nothing to serve")
        return 1
    logger.info(f"Next scheduled run at {services.scheduler.next_fire_time().isoformat()}")
    await asyncio.Event().wait()
    return 0


async def cmd_cleanup(services: Services, args) -> int:
    await services.store.init_schema()
    deleted = await services.pipeline.cleanup_old_articles(args.days)
    print(f"Deleted {deleted} old articles")
    return 0


async def cmd_health(services: Services, args) -> int:
    await services.store.init_schema()
    report = await services.pipeline.health_check()
    for line in report["details"]:
        print(line)
    # A one-shot health command never initializes the pipeline
    ok = report["sources"] and report["llm"] and report["store"]
    print("OK" if ok else "UNHEALTHY")
    return 0 if ok else 1


async def cmd_stats(services: Services, args) -> int:
    await services.store.init_schema()
    stats = await services.store.get_stats(services.pipeline.retention_days)
    stats.update(services.pipeline.get_statistics())
    print(json.dumps(stats, indent=2, ensure_ascii=False))
    return 0


COMMANDS = {
    "run": cmd_run,
    "serve": cmd_serve,
    "cleanup": cmd_cleanup,
    "health": cmd_health,
    "stats": cmd_stats,
}


async def async_main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the application.
    """
    # Explicitly reload environment variables from .env file
    load_dotenv(override=True)

    args = parse_args(argv)
    setup_logging(args.verbose)

    config = load_config(args.config)
    services = build_pipeline(config, show_progress=args.command == "run")
    logger.info(f"Starting digestbot {args.command}")
    try:
        return await COMMANDS[args.command](services, args)
    finally:
        await services.close()


def main():
    """
    Entry point for the command-line script.
    """
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        return 1
    except Exception as e:
        logger.exception(f"An error occurred: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
